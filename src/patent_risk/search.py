"""Multi-source patent search.

Fans one query out to the selected record providers, one after another. A
provider that exhausts its retries counts as zero results; the others still
run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from patent_risk.config import Settings
from patent_risk.models import PatentRecord, SearchOutcome
from patent_risk.retry import RetryPolicy, Sleep, call_with_retry
from patent_risk.sources.base import RecordProvider
from patent_risk.sources.lens import LensProvider
from patent_risk.sources.projectpq import ProjectPQProvider
from patent_risk.utils.logging import BOLD, DIM, GREEN, RED, RESET, get_logger

log = get_logger(__name__)

ALL_SOURCES = "all"


def build_providers(settings: Settings) -> dict[str, RecordProvider]:
    """Providers in dispatch order."""
    return {
        "projectpq": ProjectPQProvider(
            settings.projectpq_api_url,
            settings.projectpq_api_key,
            settings.projectpq_results_count,
            settings.http_timeout_s,
        ),
        "lens": LensProvider(
            settings.lens_api_url,
            settings.lens_api_key,
            settings.lens_results_count,
            settings.http_timeout_s,
        ),
    }


def select_providers(providers: Mapping[str, RecordProvider], source: str) -> list[str]:
    source = (source or ALL_SOURCES).lower()
    if source == ALL_SOURCES:
        return list(providers)
    if source not in providers:
        choices = ", ".join([*providers, ALL_SOURCES])
        raise ValueError(f"Unknown search source '{source}' (expected one of: {choices})")
    return [source]


async def search_records(
    query: str,
    providers: Mapping[str, RecordProvider],
    policy: RetryPolicy,
    source: str = ALL_SOURCES,
    advanced: dict[str, Any] | None = None,
    sleep: Sleep = asyncio.sleep,
) -> SearchOutcome:
    selected = select_providers(providers, source)
    records: list[PatentRecord] = []
    counts: dict[str, int] = {name: 0 for name in providers}

    for name in selected:
        provider = providers[name]
        log.info(f"  {DIM}Searching {name}...{RESET}")
        try:
            found = await call_with_retry(
                lambda provider=provider: provider.search(query, advanced),
                policy,
                f"{name} search",
                sleep,
            )
        except Exception as e:
            log.error(f"  {RED}✗{RESET} {name} search failed, continuing without it: {e}")
            continue

        tagged = [record.model_copy(update={"source": name}) for record in found]
        counts[name] = len(tagged)
        records.extend(tagged)
        log.info(f"  {GREEN}✓{RESET} {name}: {len(tagged)} results")

    counts["total"] = len(records)
    log.info(f"  {BOLD}Total combined results: {len(records)}{RESET}")
    return SearchOutcome(records=records, sources=counts)
