"""Project PQ patent search (GET, token in query string)."""

from __future__ import annotations

from typing import Any

import httpx

from patent_risk.models import PatentRecord
from patent_risk.sources.base import HttpRecordProvider, text


class ProjectPQProvider(HttpRecordProvider):
    name = "projectpq"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        results_count: int = 50,
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout_s, transport)
        self.api_url = api_url
        self.api_key = api_key
        self.results_count = results_count

    async def search(self, query: str, advanced: dict[str, Any] | None = None) -> list[PatentRecord]:
        params = {"q": query, "n": self.results_count, "token": self.api_key}
        if advanced:
            params.update(advanced)
        payload = await self._request("GET", self.api_url, params=params)
        return parse_projectpq_response(payload)


def parse_projectpq_response(payload: Any) -> list[PatentRecord]:
    if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
        return []

    records = []
    for result in payload["results"]:
        if not isinstance(result, dict):
            continue
        assignee = result.get("assignee")
        if isinstance(assignee, dict):
            assignee = assignee.get("name")
        inventors = result.get("inventors")
        records.append(
            PatentRecord(
                patent_number=text(result.get("patentNumber") or result.get("publication_id")),
                title=text(result.get("title")),
                abstract=text(result.get("abstract")),
                publication_date=text(result.get("publicationDate") or result.get("publication_date")),
                assignee=text(assignee),
                inventors=[
                    text(inv.get("name") if isinstance(inv, dict) else inv)
                    for inv in inventors
                    if inv
                ]
                if isinstance(inventors, list)
                else [],
                application_number=text(result.get("applicationNumber")),
            )
        )
    return records
