"""Boolean query construction from a claim analysis. Pure, no I/O."""

from __future__ import annotations

import re
from datetime import date

from patent_risk.models import ClaimAnalysis, SearchQuery


def format_date_range(date_range: str) -> str:
    """Bracketed and named (`last_N_years`) ranges pass through; `X TO Y` gets brackets."""
    date_range = date_range.strip()
    if date_range.startswith("[") and date_range.endswith("]"):
        return date_range
    if date_range.startswith("last_"):
        return date_range
    return f"[{date_range}]"


def _group(terms: list[str]) -> str:
    return f"({' OR '.join(terms)})"


def build_query(analysis: ClaimAnalysis, date_range: str | None = None) -> SearchQuery:
    """AND together one OR-group per non-empty analysis field, date range last.

    An analysis with no keywords, concepts or codes produces an empty query;
    the date range alone is not a query.
    """
    parts = []
    if analysis.keywords:
        parts.append(_group([f'ABST/"{k}"' for k in analysis.keywords]))
    if analysis.concepts:
        parts.append(_group([f'(ABST/"{c}" OR TTL/"{c}")' for c in analysis.concepts]))
    if analysis.cpc_classes:
        parts.append(_group([f"CPC/{code}" for code in analysis.cpc_classes]))
    if analysis.ipc_classes:
        parts.append(_group([f"IPC/{code}" for code in analysis.ipc_classes]))

    if parts and date_range:
        parts.append(format_date_range(date_range))
    return SearchQuery(query=" AND ".join(parts))


# ── Lens translation ─────────────────────────────────────────────────────────

_FIELD_MAP = (
    (re.compile(r'ABST/("[^"]*")'), r"abstract.text:\1"),
    (re.compile(r'TTL/("[^"]*")'), r"title:\1"),
    (re.compile(r"CPC/([^\s()]+)"), r'class_cpc.symbol:"\1"'),
    (re.compile(r"IPC/([^\s()]+)"), r'class_ipc.symbol:"\1"'),
)
_BRACKET_RANGE = re.compile(r"\[([^\]]+?)\s+TO\s+([^\]]+?)\]")
_NAMED_TOKEN = re.compile(r"\blast_(\d+)_years?\b")


def to_lens_query(query: str, today: date | None = None) -> str:
    """Translate Project PQ field syntax into a Lens query_string expression."""
    today = today or date.today()
    result = query
    for pattern, replacement in _FIELD_MAP:
        result = pattern.sub(replacement, result)
    result = _BRACKET_RANGE.sub(r"date_published:[\1 TO \2]", result)

    def _named(match: re.Match) -> str:
        years = int(match.group(1))
        try:
            start = today.replace(year=today.year - years)
        except ValueError:  # Feb 29
            start = today.replace(year=today.year - years, day=28)
        return f"date_published:[{start.isoformat()} TO *]"

    return _NAMED_TOKEN.sub(_named, result)
