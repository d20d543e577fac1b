"""Plain-text rendering of analysis and search results."""

from __future__ import annotations

from typing import Any


def _heading(title: str, underline: str = "=") -> list[str]:
    return [title, underline * len(title), ""]


def _bullets(title: str, items: list[str], always: bool = True) -> list[str]:
    if not items and not always:
        return []
    return [f"{title}:", *(f"- {item}" for item in items), ""]


def _analysis_lines(analysis: dict[str, Any]) -> list[str]:
    return [
        f"Claim Text: {analysis.get('claim_text', '')}",
        "",
        *_bullets("Keywords", analysis.get("keywords") or []),
        *_bullets("Concepts", analysis.get("concepts") or []),
        *_bullets("CPC Classes", analysis.get("cpc_classes") or [], always=False),
        *_bullets("IPC Classes", analysis.get("ipc_classes") or [], always=False),
    ]


def _record_lines(records: list[dict[str, Any]]) -> list[str]:
    if not records:
        return ["No results found.", ""]
    lines = []
    for i, record in enumerate(records, start=1):
        lines += [
            f"Result {i}:",
            f"Title: {record.get('title', '')}",
            f"Patent Number: {record.get('patent_number', '')}",
            f"Publication Date: {record.get('publication_date', '')}",
            f"Assignee: {record.get('assignee', '')}",
            f"Inventors: {', '.join(record.get('inventors') or [])}",
            f"Abstract: {record.get('abstract', '')}",
        ]
        if record.get("source"):
            lines.append(f"Source: {record['source']}")
        if record.get("risk_score") is not None:
            lines.append(f"Conflict Risk: {record['risk_score']}/10")
            lines.append(f"Risk Assessment: {record.get('risk_explanation') or ''}")
        lines.append("")
    return lines


def _summary_lines(summary: dict[str, Any]) -> list[str]:
    lines = [
        *_heading("RISK SUMMARY"),
        f"Total Patents Analyzed: {summary.get('total_analyzed', 0)}",
        f"Average Risk Score: {summary.get('average_score', 0.0):.2f}/10",
        f"High Risk Patents: {len(summary.get('high_risk') or [])}",
        f"Medium Risk Patents: {len(summary.get('medium_risk') or [])}",
        f"Low Risk Patents: {len(summary.get('low_risk') or [])}",
        "",
    ]
    highest = summary.get("highest_risk")
    if highest:
        lines.append(
            f"Highest Risk Patent: {highest.get('patent_number', '')} "
            f"({highest.get('title', '')}) - Risk Score: {highest.get('risk_score')}/10"
        )
        lines.append("")
    lines += [f"Assessment: {summary.get('assessment', '')}", ""]
    return lines


def _results_block(payload: dict[str, Any], results_key: str) -> list[str]:
    lines: list[str] = []
    if payload.get(results_key) is not None:
        lines += _heading("SEARCH RESULTS")
        lines += _record_lines(payload[results_key])
    if payload.get("sources"):
        counts = ", ".join(f"{name}: {count}" for name, count in payload["sources"].items())
        lines += [f"Sources: {counts}", ""]
    if payload.get("risk_summary"):
        lines += _summary_lines(payload["risk_summary"])
    return lines


def render_analysis(payload: dict[str, Any]) -> str:
    lines = _heading("CLAIM ANALYSIS")
    lines += _analysis_lines(payload.get("analysis") or {})
    lines += _heading("GENERATED QUERY")
    lines += [(payload.get("query") or {}).get("query", ""), ""]
    lines += _results_block(payload, "search_results")
    return "\n".join(lines)


def render_multiple(results: list[dict[str, Any]]) -> str:
    lines = _heading("MULTIPLE CLAIM ANALYSIS")
    for result in results:
        lines += _heading(f"CLAIM {result.get('claim_number')}", "-")
        lines += _analysis_lines(result.get("analysis") or {})
        lines += ["GENERATED QUERY:", (result.get("query") or {}).get("query", ""), ""]
        lines += _results_block(result, "search_results")
    return "\n".join(lines)


def render_search(payload: dict[str, Any]) -> str:
    lines = _heading("SEARCH QUERY")
    lines += [payload.get("query", ""), ""]
    lines += _results_block(payload, "results")
    return "\n".join(lines)
