"""Record provider interface and shared HTTP plumbing."""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from patent_risk.errors import TransientProviderError
from patent_risk.models import PatentRecord


class RecordProvider(Protocol):
    name: str

    async def search(self, query: str, advanced: dict[str, Any] | None = None) -> list[PatentRecord]: ...


class HttpRecordProvider:
    """Base for httpx-backed providers; maps HTTP failures to TransientProviderError."""

    name = "http"

    def __init__(self, timeout_s: float = 60.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = timeout_s
        self._transport = transport

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise TransientProviderError(
                self.name,
                f"HTTP {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise TransientProviderError(self.name, f"{type(e).__name__}: {e}") from e


def text(value: Any) -> str:
    """Provider fields are often null or nested; downstream code only sees strings."""
    if value is None:
        return ""
    return str(value)
