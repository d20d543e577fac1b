"""Claim analysis stage: raw claim text to keywords, concepts and class codes."""

from __future__ import annotations

import asyncio

from patent_risk.agents.chains import ReasoningProvider, render_prompt
from patent_risk.agents.models import ClaimAnalysisPayload
from patent_risk.errors import MalformedResponseError
from patent_risk.models import ClaimAnalysis
from patent_risk.parsing import ANALYSIS_STRATEGIES, CLAIM_LIST_STRATEGIES, extract_json
from patent_risk.retry import RetryPolicy, Sleep, call_with_retry
from patent_risk.utils.logging import DIM, GREEN, RESET, get_logger

log = get_logger(__name__)


def parse_analysis_response(response: str) -> ClaimAnalysisPayload:
    payload = extract_json(response, ANALYSIS_STRATEGIES)
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Expected a JSON object from claim analysis, got {type(payload).__name__}"
        )
    return ClaimAnalysisPayload.model_validate(payload)


async def analyze_claim(
    claim_text: str,
    independent: bool,
    llm: ReasoningProvider,
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> ClaimAnalysis:
    prompt = render_prompt(
        "analyze_claim_v1",
        claim_text=claim_text,
        independent="Yes" if independent else "No",
    )

    async def _attempt() -> tuple[str, ClaimAnalysisPayload]:
        # Parsing inside the attempt: an unparsable answer is retried like a failed call.
        response = await llm.complete(prompt)
        return response, parse_analysis_response(response)

    response, payload = await call_with_retry(_attempt, policy, "Claim analysis", sleep)
    log.info(
        f"  {GREEN}✓{RESET} Claim analyzed {DIM}({len(payload.keywords)} keywords, "
        f"{len(payload.concepts)} concepts, "
        f"{len(payload.cpc_classes) + len(payload.ipc_classes)} class codes){RESET}"
    )
    return ClaimAnalysis(
        claim_text=claim_text,
        independent=independent,
        keywords=payload.keywords,
        concepts=payload.concepts,
        cpc_classes=payload.cpc_classes,
        ipc_classes=payload.ipc_classes,
        raw_response=response,
    )


def parse_claim_list(response: str) -> list[str]:
    payload = extract_json(response, CLAIM_LIST_STRATEGIES)
    if not isinstance(payload, list):
        raise MalformedResponseError("Claims splitter did not return an array of claims")
    claims = [item.strip() for item in payload if isinstance(item, str)]
    return [claim for claim in claims if claim]


async def split_claims(
    document: str,
    llm: ReasoningProvider,
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> list[str]:
    """Ask the reasoning provider to split a claims document into single claims."""
    prompt = render_prompt("split_claims_v1", document=document)

    async def _attempt() -> list[str]:
        return parse_claim_list(await llm.complete(prompt))

    claims = await call_with_retry(_attempt, policy, "Claims file parsing", sleep)
    log.info(f"  {GREEN}✓{RESET} Found {len(claims)} claims in the document")
    return claims
