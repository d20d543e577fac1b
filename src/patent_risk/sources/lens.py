"""Lens.org patent search (POST, bearer token).

Lens speaks Elasticsearch query_string syntax, so Project PQ style queries are
translated first (see patent_risk.query.to_lens_query).
"""

from __future__ import annotations

from typing import Any

import httpx

from patent_risk.models import PatentRecord
from patent_risk.query import to_lens_query
from patent_risk.sources.base import HttpRecordProvider, text

LENS_MAX_SIZE = 100


class LensProvider(HttpRecordProvider):
    name = "lens"

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
        self.results_count = min(results_count, LENS_MAX_SIZE)

    def build_payload(self, query: str, advanced: dict[str, Any] | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "query": {"query_string": {"query": to_lens_query(query)}},
            "size": self.results_count,
        }
        if advanced:
            payload.update(advanced)
            payload["size"] = min(int(payload.get("size") or self.results_count), LENS_MAX_SIZE)
        return payload

    async def search(self, query: str, advanced: dict[str, Any] | None = None) -> list[PatentRecord]:
        payload = await self._request(
            "POST",
            self.api_url,
            json=self.build_payload(query, advanced),
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        return parse_lens_response(payload)


def _patent_number(result: dict[str, Any]) -> str:
    # doc_key looks like "US_7654321_B2_20090210"
    parts = text(result.get("doc_key")).split("_")
    if len(parts) >= 3:
        return " ".join(parts[:3])
    fallback = [text(result.get(k)) for k in ("jurisdiction", "doc_number", "kind")]
    return " ".join(p for p in fallback if p)


def _title(biblio: dict[str, Any]) -> str:
    titles = biblio.get("invention_title")
    if not isinstance(titles, list) or not titles:
        return ""
    english = next((t for t in titles if isinstance(t, dict) and t.get("lang") == "en"), None)
    chosen = english or titles[0]
    return text(chosen.get("text")) if isinstance(chosen, dict) else ""


def _party_names(parties: list[Any] | None) -> list[str]:
    names = []
    for party in parties or []:
        if not isinstance(party, dict):
            continue
        name = (party.get("extracted_name") or {}).get("value")
        if name:
            names.append(text(name))
    return names


def parse_lens_response(payload: Any) -> list[PatentRecord]:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        return []

    records = []
    for result in payload["data"]:
        if not isinstance(result, dict):
            continue
        biblio = result.get("biblio") or {}
        parties = biblio.get("parties") or {}
        abstracts = result.get("abstract")
        abstract = ""
        if isinstance(abstracts, list) and abstracts and isinstance(abstracts[0], dict):
            abstract = text(abstracts[0].get("text"))
        applicants = _party_names(parties.get("applicants"))
        records.append(
            PatentRecord(
                patent_number=_patent_number(result),
                title=_title(biblio),
                abstract=abstract,
                publication_date=text(result.get("date_published")),
                assignee=applicants[0] if applicants else "",
                inventors=_party_names(parties.get("inventors")),
                application_number=text((biblio.get("application_reference") or {}).get("doc_number")),
            )
        )
    return records
