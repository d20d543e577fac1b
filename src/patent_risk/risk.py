"""Risk tiers and the summary built from scored patents. Pure functions."""

from __future__ import annotations

from patent_risk.models import PatentRecord, RiskEntry, RiskSummary

HIGH_RISK_MIN = 7
MEDIUM_RISK_MIN = 4


def risk_tier(score: int) -> str:
    if score >= HIGH_RISK_MIN:
        return "high"
    if score >= MEDIUM_RISK_MIN:
        return "medium"
    return "low"


def _is_scored(record: PatentRecord) -> bool:
    return isinstance(record.risk_score, int) and not isinstance(record.risk_score, bool)


def filter_by_threshold(records: list[PatentRecord], threshold: int = 0) -> list[PatentRecord]:
    """Keep scored records at or above `threshold`; no-op when threshold <= 0."""
    if threshold <= 0:
        return list(records)
    return [r for r in records if _is_scored(r) and r.risk_score >= threshold]


def summarize_risk(records: list[PatentRecord], threshold: int = 0) -> RiskSummary:
    scored = [r for r in records if _is_scored(r)]
    selected = [r for r in scored if r.risk_score >= threshold]
    summary = RiskSummary(total_analyzed=len(scored))

    if not selected:
        if not scored:
            summary.assessment = "No patents were assessed for risk."
        elif threshold > 0:
            summary.assessment = f"No patents met the minimum risk threshold of {threshold}."
        else:
            summary.assessment = "No patents were found to have any risk."
        return summary

    tiers = {"high": summary.high_risk, "medium": summary.medium_risk, "low": summary.low_risk}
    highest = selected[0]
    for record in selected:
        entry = RiskEntry(
            patent_number=record.patent_number,
            title=record.title,
            risk_score=record.risk_score,
        )
        tiers[risk_tier(record.risk_score)].append(entry)
        # strict > keeps the first occurrence on ties
        if record.risk_score > highest.risk_score:
            highest = record

    summary.average_score = sum(r.risk_score for r in selected) / len(selected)
    summary.highest_risk = highest

    if summary.high_risk:
        summary.assessment = (
            f"HIGH RISK: {len(summary.high_risk)} patents show significant conflict potential. "
            "Recommended action: Detailed review by patent attorney and possible claim revision."
        )
    elif summary.medium_risk:
        summary.assessment = (
            f"MEDIUM RISK: {len(summary.medium_risk)} patents show moderate conflict potential. "
            "Recommended action: Consider claim refinement to reduce overlap with existing patents."
        )
    else:
        summary.assessment = (
            "LOW RISK: All patents show minimal conflict potential. "
            "Recommended action: Proceed with patent application, but monitor for new prior art."
        )
    return summary
