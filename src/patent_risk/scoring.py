"""Batched conflict-risk scoring against a single claim.

Patents go to the reasoning provider in fixed-size batches. The first batch
opens a conversation (claim + scale + JSON shape); every later batch is sent
after replaying that conversation so scores stay consistent across batches.
Batches are therefore strictly sequential.

The conversation lives only in memory for one pass. If the process dies, or
a batch exhausts its retries, the whole pass is lost and the caller rescores
from the first batch; earlier batches are never kept.
"""

from __future__ import annotations

import asyncio

from pydantic import ValidationError

from patent_risk.agents.chains import ReasoningProvider, render_prompt
from patent_risk.agents.models import PatentAssessment
from patent_risk.errors import MalformedResponseError
from patent_risk.models import ConversationContext, PatentRecord
from patent_risk.parsing import SCORING_STRATEGIES, extract_json
from patent_risk.retry import RetryPolicy, Sleep, call_with_retry
from patent_risk.utils.logging import DIM, GREEN, RESET, YELLOW, get_logger

log = get_logger(__name__)

DEFAULT_BATCH_SIZE = 20
MIN_SCORE = 1
MAX_SCORE = 10


def make_batches(count: int, batch_size: int) -> list[range]:
    """Index ranges of `ceil(count / batch_size)` consecutive batches."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [
        range(start, min(start + batch_size, count))
        for start in range(0, count, batch_size)
    ]


def render_batch(records: list[PatentRecord], indices: range) -> str:
    blocks = []
    for i in indices:
        record = records[i]
        blocks.append(
            f"PATENT {i + 1}:\n"
            f"INDEX: {i}\n"
            f"Patent Number: {record.patent_number}\n"
            f"Title: {record.title}\n"
            f"Abstract: {record.abstract or 'No abstract available'}\n"
        )
    return "\n".join(blocks)


def batch_prompt(claim_text: str, records: list[PatentRecord], indices: range, first: bool) -> str:
    patents = render_batch(records, indices)
    if first:
        return render_prompt("score_first_batch_v1", claim_text=claim_text, patents=patents)
    return render_prompt(
        "score_next_batch_v1",
        patents=patents,
        first_index=indices.start,
        last_index=indices.stop - 1,
    )


def parse_assessments(response: str) -> list[PatentAssessment]:
    """Extract `patentAssessments`; unusable single entries are skipped."""
    payload = extract_json(response, SCORING_STRATEGIES)
    raw = payload.get("patentAssessments") if isinstance(payload, dict) else None
    if not isinstance(raw, list):
        raise MalformedResponseError(
            "Unexpected response format: missing patentAssessments array"
        )

    assessments = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            assessments.append(PatentAssessment.model_validate(item))
        except ValidationError as e:
            log.warning(f"  {YELLOW}–{RESET} Skipping malformed assessment {DIM}{item!r}: {e.error_count()} error(s){RESET}")
    return assessments


def apply_assessments(
    records: list[PatentRecord], assessments: list[PatentAssessment]
) -> list[PatentRecord]:
    """Copy of `records` with scores applied by original index."""
    scored = list(records)
    for assessment in assessments:
        if not 0 <= assessment.index < len(scored):
            continue
        score = min(max(assessment.risk_score, MIN_SCORE), MAX_SCORE)
        scored[assessment.index] = scored[assessment.index].model_copy(
            update={"risk_score": score, "risk_explanation": assessment.explanation}
        )
    return scored


async def score_records(
    claim_text: str,
    records: list[PatentRecord],
    llm: ReasoningProvider,
    policy: RetryPolicy,
    batch_size: int = DEFAULT_BATCH_SIZE,
    sleep: Sleep = asyncio.sleep,
) -> list[PatentRecord]:
    """Score every record against the claim; returns new records in input order.

    Raises the last provider/parse error if any batch exhausts its retries,
    which aborts the remaining batches.
    """
    if not records:
        log.info(f"  {DIM}No patents to assess risk for{RESET}")
        return records

    batches = make_batches(len(records), batch_size)
    log.info(f"  Assessing conflict risk for {len(records)} patents in {len(batches)} batch(es)...")

    context = ConversationContext()
    assessments: list[PatentAssessment] = []

    for number, indices in enumerate(batches, start=1):
        first = number == 1
        prompt = batch_prompt(claim_text, records, indices, first)
        # First batch goes out without history; later ones replay the conversation.
        history = None if first else context
        log.info(
            f"  {DIM}Batch {number}/{len(batches)} "
            f"(patents {indices.start + 1}-{indices.stop}){RESET}"
        )

        async def _attempt(prompt=prompt, history=history) -> tuple[str, list[PatentAssessment]]:
            response = await llm.complete(prompt, history)
            return response, parse_assessments(response)

        response, batch_assessments = await call_with_retry(
            _attempt, policy, f"Scoring batch {number}/{len(batches)}", sleep
        )
        context = context.append("user", prompt).append("assistant", response)
        assessments.extend(batch_assessments)

    scored = apply_assessments(records, assessments)
    log.info(
        f"  {GREEN}✓{RESET} Scored {sum(1 for r in scored if r.risk_score is not None)}"
        f"/{len(scored)} patents"
    )
    return scored
