"""Resumable claim analysis pipeline.

Single-claim jobs move through explicit states, each transition persisting a
checkpoint before the next one starts:

    FRESH ──analysis──▸ ANALYZED ──search──▸ SEARCHED ──scoring──▸ SCORED ──▸ COMPLETE

Resuming picks up at the state the checkpoint is in, so finished stages never
call a provider again. Scoring is all-or-nothing per record set: an
interrupted pass restarts from its first batch.

Multi-claim jobs checkpoint per claim instead: each claim runs the whole
sequence, then the result list and the claim's processed marker are persisted.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from patent_risk.agents.chains import ReasoningLLM, ReasoningProvider
from patent_risk.analysis import analyze_claim, split_claims
from patent_risk.artifacts import save_result
from patent_risk.checkpoint import CheckpointStore, derive_job_id, get_checkpoint_store
from patent_risk.config import Settings
from patent_risk.errors import NoClaimsFoundError
from patent_risk.models import (
    ClaimResult,
    Job,
    PatentRecord,
    RiskSummary,
    SearchOutcome,
    SearchQuery,
)
from patent_risk.query import build_query, format_date_range
from patent_risk.retry import Sleep, reasoning_policy, record_policy
from patent_risk.risk import filter_by_threshold, summarize_risk
from patent_risk.scoring import score_records
from patent_risk.search import ALL_SOURCES, build_providers, search_records
from patent_risk.sources.base import RecordProvider
from patent_risk.utils.logging import BOLD, DIM, GREEN, RESET, YELLOW, get_logger, job_logger

log = get_logger(__name__)


class JobState(str, Enum):
    FRESH = "fresh"
    ANALYZED = "analyzed"
    SEARCHED = "searched"
    SCORED = "scored"
    COMPLETE = "complete"


_ORDER = list(JobState)


def resolve_state(job: Job | None) -> JobState:
    """Where a single-claim job stands, judged from its checkpoint."""
    if job is None:
        return JobState.FRESH
    if job.completed:
        return JobState.COMPLETE
    data = job.data if isinstance(job.data, dict) else {}
    if "risk_summary" in data:
        return JobState.SCORED
    if "candidates" in data:
        return JobState.SEARCHED
    if "analysis" in data:
        return JobState.ANALYZED
    return JobState.FRESH


@dataclass
class AnalyzeOptions:
    date_range: str | None = None
    independent: bool = True
    execute: bool = False
    checkpoint_id: str | None = None
    resume: bool = False
    risk_threshold: int = 0
    source: str = ALL_SOURCES
    concurrency: int = 1  # multi-claim jobs only


@dataclass
class SearchOptions:
    date_range: str | None = None
    claim: str | None = None
    risk_threshold: int = 0
    source: str = ALL_SOURCES


class Pipeline:
    def __init__(
        self,
        settings: Settings,
        store: CheckpointStore,
        llm: ReasoningProvider,
        providers: dict[str, RecordProvider],
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.store = store
        self.llm = llm
        self.providers = providers
        self.reasoning_policy = reasoning_policy(settings)
        self.record_policy = record_policy(settings)
        self._sleep = sleep
        self._steps = {
            JobState.FRESH: self._step_analyze,
            JobState.ANALYZED: self._step_search,
            JobState.SEARCHED: self._step_score,
            JobState.SCORED: self._step_complete,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> Pipeline:
        return cls(
            settings,
            get_checkpoint_store(settings),
            ReasoningLLM(settings),
            build_providers(settings),
        )

    async def close(self) -> None:
        await self.store.close()

    # ── single claim ─────────────────────────────────────────────────────────

    async def analyze(self, claim_text: str | None, options: AnalyzeOptions) -> dict[str, Any]:
        """Analyze one claim; with `execute`, also search, score and summarize.

        `claim_text` may be None when resuming: the stored analysis supplies it.
        """
        if claim_text is None and not (options.resume and options.checkpoint_id):
            raise ValueError("Claim text is required unless resuming an explicit checkpoint")
        job_id = derive_job_id(options.checkpoint_id, claim_text or "")
        jlog = job_logger(job_id)

        state = JobState.FRESH
        data: dict[str, Any] = {}
        if options.resume and await self.store.exists(job_id):
            job = await self.store.get(job_id)
            state = resolve_state(job)
            data = dict(job.data) if isinstance(job.data, dict) else {}
            jlog.info(f"{BOLD}Resuming from checkpoint{RESET} {DIM}(state: {state.value}){RESET}")
            if state is JobState.COMPLETE:
                jlog.info("Checkpoint was already completed. Returning saved results.")
                save_result(self.settings.results_dir, job_id, data)
                return data
        else:
            jlog.info(f"{BOLD}ANALYZE{RESET} starting new analysis")

        if claim_text is None:
            claim_text = (data.get("analysis") or {}).get("claim_text")
            if not claim_text:
                raise ValueError(f"Checkpoint '{job_id}' holds no claim to resume from")

        target = JobState.COMPLETE if options.execute else JobState.ANALYZED
        while _ORDER.index(state) < _ORDER.index(target):
            data = await self._steps[state](job_id, claim_text, data, options)
            state = _ORDER[_ORDER.index(state) + 1]

        if state is JobState.COMPLETE:
            save_result(self.settings.results_dir, job_id, data)
        return data

    async def _step_analyze(
        self, job_id: str, claim_text: str, data: dict[str, Any], options: AnalyzeOptions
    ) -> dict[str, Any]:
        analysis = await analyze_claim(
            claim_text, options.independent, self.llm, self.reasoning_policy, self._sleep
        )
        query = build_query(analysis, options.date_range)
        data = {
            "analysis": analysis.model_dump(mode="json"),
            "query": query.model_dump(mode="json"),
        }
        await self.store.put(job_id, Job(id=job_id, data=data))
        return data

    async def _step_search(
        self, job_id: str, claim_text: str, data: dict[str, Any], options: AnalyzeOptions
    ) -> dict[str, Any]:
        query = SearchQuery.model_validate(data.get("query") or {})
        outcome = await self._search(query, options.source)
        data = {
            **data,
            "candidates": [r.model_dump(mode="json") for r in outcome.records],
            "sources": outcome.sources,
        }
        await self.store.put(job_id, Job(id=job_id, data=data))
        return data

    async def _step_score(
        self, job_id: str, claim_text: str, data: dict[str, Any], options: AnalyzeOptions
    ) -> dict[str, Any]:
        candidates = [PatentRecord.model_validate(r) for r in data.get("candidates") or []]
        scored = await score_records(
            claim_text,
            candidates,
            self.llm,
            self.reasoning_policy,
            self.settings.scoring_batch_size,
            self._sleep,
        )
        results, summary = self._summarize(scored, options.risk_threshold)
        data = {key: value for key, value in data.items() if key != "candidates"}
        data["search_results"] = [r.model_dump(mode="json") for r in results]
        data["risk_summary"] = summary.model_dump(mode="json")
        await self.store.put(job_id, Job(id=job_id, data=data))
        return data

    async def _step_complete(
        self, job_id: str, claim_text: str, data: dict[str, Any], options: AnalyzeOptions
    ) -> dict[str, Any]:
        await self.store.mark_completed(job_id)
        return data

    # ── multiple claims ──────────────────────────────────────────────────────

    async def analyze_multiple(self, claims_path: str | Path, options: AnalyzeOptions) -> list[dict[str, Any]]:
        """Analyze every claim in a claims file, checkpointing after each claim."""
        path = Path(claims_path)
        job_id = derive_job_id(options.checkpoint_id, path.name)
        jlog = job_logger(job_id)
        artifact = f"multiple-{job_id}"

        claims: list[str] = []
        results: list[dict[str, Any]] = []
        processed: set[str] = set()
        if options.resume and await self.store.exists(job_id):
            job = await self.store.get(job_id)
            data = job.data if isinstance(job.data, dict) else {}
            results = list(data.get("results") or [])
            if job.completed:
                jlog.info("Checkpoint was already completed. Returning saved results.")
                save_result(self.settings.results_dir, artifact, results)
                return results
            claims = list(data.get("claims") or [])
            processed = set(job.processed)
            jlog.info(f"{BOLD}Resuming from checkpoint{RESET} {DIM}({len(processed)} claim(s) done){RESET}")

        if not claims:
            jlog.info(f"{BOLD}ANALYZE-MULTIPLE{RESET} reading claims from {path}")
            document = path.read_text(encoding="utf-8")
            claims = await split_claims(document, self.llm, self.reasoning_policy, self._sleep)
            if not claims:
                raise NoClaimsFoundError(f"No claims found in {path}")
            await self.store.put(
                job_id,
                Job(id=job_id, data={"claims": claims, "results": results}, processed=sorted(processed)),
            )

        pending = [i for i in range(len(claims)) if str(i) not in processed]
        for i in range(len(claims)):
            if str(i) in processed:
                jlog.info(f"  {DIM}Skipping already processed claim {i + 1} of {len(claims)}{RESET}")

        semaphore = asyncio.Semaphore(max(1, options.concurrency))
        # Serializes result bookkeeping and checkpoint writes across workers
        write_lock = asyncio.Lock()

        async def _process(index: int) -> None:
            async with semaphore:
                jlog.info(f"Analyzing claim {index + 1} of {len(claims)}...")
                result = await self._analyze_one(index, claims[index], options)
            async with write_lock:
                results[:] = [r for r in results if r.get("claim_number") != index + 1]
                results.append(result)
                results.sort(key=lambda r: r.get("claim_number", 0))
                await self.store.patch_field(job_id, "data", {"claims": claims, "results": results})
                await self.store.append_processed(job_id, str(index))

        tasks = [asyncio.create_task(_process(i)) for i in pending]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        await self.store.mark_completed(job_id)
        jlog.info(f"{GREEN}▸{RESET} {len(results)} claim(s) analyzed")
        save_result(self.settings.results_dir, artifact, results)
        return results

    async def _analyze_one(self, index: int, claim: str, options: AnalyzeOptions) -> dict[str, Any]:
        # Claims split out of a file are treated as independent
        analysis = await analyze_claim(claim, True, self.llm, self.reasoning_policy, self._sleep)
        query = build_query(analysis, options.date_range)
        result = ClaimResult(claim_number=index + 1, analysis=analysis, query=query)
        if options.execute:
            outcome = await self._search(query, options.source)
            scored = await score_records(
                claim,
                outcome.records,
                self.llm,
                self.reasoning_policy,
                self.settings.scoring_batch_size,
                self._sleep,
            )
            result.search_results, result.risk_summary = self._summarize(scored, options.risk_threshold)
            result.sources = outcome.sources
        return result.model_dump(mode="json")

    # ── raw query search ─────────────────────────────────────────────────────

    async def search(self, query_text: str, options: SearchOptions) -> dict[str, Any]:
        """Run a hand-written query; score against `options.claim` when given."""
        final_query = query_text
        if options.date_range:
            date_clause = format_date_range(options.date_range)
            if options.date_range not in query_text and date_clause not in query_text:
                final_query = f"{query_text} AND {date_clause}"
        search_id = derive_job_id(None, final_query)
        log.info(f"{BOLD}SEARCH{RESET} {final_query}")

        outcome = await self._search(SearchQuery(query=final_query), options.source)
        results = outcome.records
        summary = None
        if options.claim:
            scored = await score_records(
                options.claim,
                results,
                self.llm,
                self.reasoning_policy,
                self.settings.scoring_batch_size,
                self._sleep,
            )
            results, summary = self._summarize(scored, options.risk_threshold)

        payload = {
            "query": final_query,
            "results": [r.model_dump(mode="json") for r in results],
            "risk_summary": summary.model_dump(mode="json") if summary else None,
            "sources": outcome.sources,
        }
        save_result(self.settings.results_dir, f"search-{search_id}", payload)
        return payload

    # ── shared ───────────────────────────────────────────────────────────────

    async def _search(self, query: SearchQuery, source: str) -> SearchOutcome:
        if not query.query.strip():
            log.warning(f"  {YELLOW}–{RESET} Empty query (nothing extracted from the claim), skipping search")
            return SearchOutcome(sources={**{name: 0 for name in self.providers}, "total": 0})
        return await search_records(
            query.query,
            self.providers,
            self.record_policy,
            source,
            query.advanced or None,
            self._sleep,
        )

    @staticmethod
    def _summarize(scored: list[PatentRecord], threshold: int) -> tuple[list[PatentRecord], RiskSummary]:
        results = filter_by_threshold(scored, threshold)
        if threshold > 0:
            log.info(f"  Filtered from {len(scored)} to {len(results)} patents (threshold {threshold})")
        return results, summarize_risk(scored, threshold)
