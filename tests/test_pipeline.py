import json
from pathlib import Path

import pytest

from conftest import FakeLLM, FakeProvider, make_records
from patent_risk.checkpoint import derive_job_id
from patent_risk.errors import NoClaimsFoundError, TransientProviderError, UnparsableResponseError
from patent_risk.models import Job
from patent_risk.pipeline import AnalyzeOptions, JobState, Pipeline, SearchOptions, resolve_state

CLAIM = "A lithium battery comprising a silicon anode and a solid electrolyte."

ANALYSIS_PREFIX = "Please analyze the following patent claim"
SPLIT_PREFIX = "I have a text file"


def test_resolve_state():
    assert resolve_state(None) is JobState.FRESH
    assert resolve_state(Job(id="a")) is JobState.FRESH
    assert resolve_state(Job(id="a", data={"analysis": {}, "query": {}})) is JobState.ANALYZED
    assert resolve_state(Job(id="a", data={"analysis": {}, "candidates": []})) is JobState.SEARCHED
    assert resolve_state(Job(id="a", data={"analysis": {}, "risk_summary": {}})) is JobState.SCORED
    assert resolve_state(Job(id="a", data={}, completed=True)) is JobState.COMPLETE


@pytest.mark.asyncio
async def test_analyze_without_execute_stops_after_query(pipeline, store, llm, providers, settings):
    result = await pipeline.analyze(CLAIM, AnalyzeOptions(date_range="last_10_years"))
    job_id = derive_job_id(None, CLAIM)

    assert result["analysis"]["keywords"] == ["battery", "electrode"]
    assert result["query"]["query"].endswith("AND last_10_years")
    assert "search_results" not in result
    assert providers["projectpq"].queries == []
    job = await store.get(job_id)
    assert resolve_state(job) is JobState.ANALYZED
    assert not job.completed
    assert not (Path(settings.results_dir) / f"{job_id}.json").exists()


@pytest.mark.asyncio
async def test_full_run_completes_and_writes_artifact(pipeline, store, llm, providers, settings):
    options = AnalyzeOptions(date_range="last_10_years", execute=True, checkpoint_id="job-1", risk_threshold=5)
    llm.score_for = lambda i: 8 if i < 2 else 3

    result = await pipeline.analyze(CLAIM, options)

    assert result["sources"] == {"projectpq": 3, "lens": 2, "total": 5}
    assert [r["risk_score"] for r in result["search_results"]] == [8, 8]
    assert result["risk_summary"]["total_analyzed"] == 5
    assert "candidates" not in result
    job = await store.get("job-1")
    assert job.completed
    artifact = json.loads((Path(settings.results_dir) / "job-1.json").read_text(encoding="utf-8"))
    assert artifact == result


@pytest.mark.asyncio
async def test_resume_of_completed_job_makes_no_calls(settings, store, sleep):
    stored = {"analysis": {"claim_text": CLAIM}, "query": {"query": "q"}, "search_results": [], "risk_summary": {}}
    await store.put("done", Job(id="done", data=stored, completed=True))
    llm = FakeLLM()
    providers = {"projectpq": FakeProvider("projectpq", make_records(1))}
    pipeline = Pipeline(settings, store, llm, providers, sleep)

    result = await pipeline.analyze(None, AnalyzeOptions(checkpoint_id="done", resume=True, execute=True))

    assert result == stored
    assert llm.calls == []
    assert providers["projectpq"].queries == []


@pytest.mark.asyncio
async def test_resume_from_analyzed_skips_analysis(pipeline, store, llm, providers):
    await pipeline.analyze(CLAIM, AnalyzeOptions(checkpoint_id="job-2"))
    assert len(llm.prompts_starting(ANALYSIS_PREFIX)) == 1

    result = await pipeline.analyze(None, AnalyzeOptions(checkpoint_id="job-2", resume=True, execute=True))

    assert len(llm.prompts_starting(ANALYSIS_PREFIX)) == 1
    assert len(providers["lens"].queries) == 1
    assert len(result["search_results"]) == 5
    assert (await store.get("job-2")).completed


@pytest.mark.asyncio
async def test_resume_after_scoring_failure_reuses_search(settings, store, providers, sleep):
    # Analysis succeeds, then the scoring batch exhausts its 3 attempts.
    failing = FakeLLM(responses=[json.dumps({"keywords": ["anode"]}), "garbage", "garbage", "garbage"])
    pipeline = Pipeline(settings, store, failing, providers, sleep)
    with pytest.raises(UnparsableResponseError):
        await pipeline.analyze(CLAIM, AnalyzeOptions(checkpoint_id="job-3", execute=True))
    assert resolve_state(await store.get("job-3")) is JobState.SEARCHED
    assert len(providers["projectpq"].queries) == 1

    llm = FakeLLM()
    pipeline = Pipeline(settings, store, llm, providers, sleep)
    result = await pipeline.analyze(CLAIM, AnalyzeOptions(checkpoint_id="job-3", resume=True, execute=True))

    assert len(providers["projectpq"].queries) == 1
    assert llm.prompts_starting(ANALYSIS_PREFIX) == []
    assert len(result["search_results"]) == 5
    assert (await store.get("job-3")).completed


@pytest.mark.asyncio
async def test_resume_of_scored_job_only_marks_complete(settings, store, sleep):
    stored = {"analysis": {"claim_text": CLAIM}, "query": {"query": "q"}, "search_results": [], "risk_summary": {}}
    await store.put("job-4", Job(id="job-4", data=stored))
    llm = FakeLLM()
    pipeline = Pipeline(settings, store, llm, {}, sleep)

    result = await pipeline.analyze(None, AnalyzeOptions(checkpoint_id="job-4", resume=True, execute=True))

    assert result == stored
    assert llm.calls == []
    assert (await store.get("job-4")).completed


@pytest.mark.asyncio
async def test_failing_record_provider_does_not_fail_the_run(settings, store, llm, sleep):
    providers = {
        "projectpq": FakeProvider("projectpq", error=TransientProviderError("projectpq", "HTTP 500")),
        "lens": FakeProvider("lens", make_records(2, "LENS")),
    }
    pipeline = Pipeline(settings, store, llm, providers, sleep)
    result = await pipeline.analyze(CLAIM, AnalyzeOptions(execute=True))

    assert len(providers["projectpq"].queries) == settings.record_max_attempts
    assert result["sources"]["projectpq"] == 0
    assert [r["source"] for r in result["search_results"]] == ["lens", "lens"]
    assert result["risk_summary"]["total_analyzed"] == 2


@pytest.mark.asyncio
async def test_empty_analysis_skips_search(settings, store, providers, sleep):
    llm = FakeLLM(analysis={"keywords": [], "concepts": []})
    pipeline = Pipeline(settings, store, llm, providers, sleep)
    result = await pipeline.analyze(CLAIM, AnalyzeOptions(date_range="last_10_years", execute=True))

    assert result["query"]["query"] == ""
    assert result["search_results"] == []
    assert providers["projectpq"].queries == []
    assert result["risk_summary"]["assessment"] == "No patents were assessed for risk."


@pytest.mark.asyncio
async def test_resume_requires_claim_or_checkpoint(pipeline):
    with pytest.raises(ValueError):
        await pipeline.analyze(None, AnalyzeOptions())


# ── multiple claims ──────────────────────────────────────────────────────────


@pytest.fixture
def claims_file(tmp_path):
    path = tmp_path / "claims.txt"
    path.write_text("1. A battery.\n2. The battery of claim 1.\n3. A method.", encoding="utf-8")
    return path


@pytest.mark.asyncio
async def test_analyze_multiple(settings, store, providers, sleep, claims_file):
    llm = FakeLLM(claims=["1. A battery.", "2. The battery of claim 1.", "3. A method."])
    pipeline = Pipeline(settings, store, llm, providers, sleep)

    results = await pipeline.analyze_multiple(claims_file, AnalyzeOptions(execute=True, concurrency=2))

    assert [r["claim_number"] for r in results] == [1, 2, 3]
    assert all(r["sources"]["total"] == 5 for r in results)
    job = await store.get(derive_job_id(None, "claims.txt"))
    assert job.completed
    assert sorted(job.processed) == ["0", "1", "2"]
    assert job.data["claims"] == ["1. A battery.", "2. The battery of claim 1.", "3. A method."]
    artifact = Path(settings.results_dir) / f"multiple-{job.id}.json"
    assert json.loads(artifact.read_text(encoding="utf-8")) == results


@pytest.mark.asyncio
async def test_analyze_multiple_resumes_remaining_claims(settings, store, providers, sleep, claims_file):
    claims = ["1. A battery.", "2. The battery of claim 1.", "3. A method."]
    done = {"claim_number": 1, "analysis": {"claim_text": claims[0]}, "query": {"query": "q"}}
    await store.put("multi", Job(id="multi", data={"claims": claims, "results": [done]}, processed=["0"]))
    llm = FakeLLM()
    pipeline = Pipeline(settings, store, llm, providers, sleep)

    results = await pipeline.analyze_multiple(claims_file, AnalyzeOptions(checkpoint_id="multi", resume=True))

    assert llm.prompts_starting(SPLIT_PREFIX) == []
    assert len(llm.prompts_starting(ANALYSIS_PREFIX)) == 2
    assert results[0] == done
    assert [r["claim_number"] for r in results] == [1, 2, 3]
    assert (await store.get("multi")).completed


@pytest.mark.asyncio
async def test_analyze_multiple_with_no_claims(settings, store, providers, sleep, claims_file):
    pipeline = Pipeline(settings, store, FakeLLM(claims=[]), providers, sleep)
    with pytest.raises(NoClaimsFoundError):
        await pipeline.analyze_multiple(claims_file, AnalyzeOptions())


# ── raw search ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_search_appends_date_range_and_scores(pipeline, llm, providers, settings):
    payload = await pipeline.search(
        '(ABST/"anode")', SearchOptions(date_range="last_5_years", claim=CLAIM, risk_threshold=0)
    )

    assert payload["query"] == '(ABST/"anode") AND last_5_years'
    assert providers["lens"].queries == ['(ABST/"anode") AND last_5_years']
    assert all(r["risk_score"] == 5 for r in payload["results"])
    assert payload["risk_summary"]["total_analyzed"] == 5
    search_id = derive_job_id(None, payload["query"])
    assert (Path(settings.results_dir) / f"search-{search_id}.json").exists()


@pytest.mark.asyncio
async def test_search_without_claim_is_unscored(pipeline, llm):
    payload = await pipeline.search("(CPC/H01M) AND last_5_years", SearchOptions(date_range="last_5_years"))
    assert payload["query"] == "(CPC/H01M) AND last_5_years"
    assert payload["risk_summary"] is None
    assert llm.calls == []


# ── fresh runs over an existing job id ───────────────────────────────────────


@pytest.mark.asyncio
async def test_fresh_multiple_run_does_not_inherit_old_markers(settings, store, providers, sleep, claims_file):
    claims = ["1. A battery.", "2. The battery of claim 1."]
    old_results = [
        {"claim_number": 1, "analysis": {"claim_text": claims[0]}, "query": {"query": "old"}},
        {"claim_number": 2, "analysis": {"claim_text": claims[1]}, "query": {"query": "old"}},
    ]
    await store.put("m", Job(id="m", data={"claims": claims, "results": old_results}, processed=["0", "1"]))

    # Split, claim 1 analyzed, then claim 2 exhausts its 3 attempts.
    crashing = FakeLLM(responses=[json.dumps(claims), json.dumps({"keywords": ["battery"]}), "x", "x", "x"])
    pipeline = Pipeline(settings, store, crashing, providers, sleep)
    with pytest.raises(UnparsableResponseError):
        await pipeline.analyze_multiple(claims_file, AnalyzeOptions(checkpoint_id="m"))

    job = await store.get("m")
    assert job.processed == ["0"]
    assert not job.completed
    assert [r["query"]["query"] for r in job.data["results"]] != ["old"]
    assert [r["claim_number"] for r in job.data["results"]] == [1]

    llm = FakeLLM()
    pipeline = Pipeline(settings, store, llm, providers, sleep)
    results = await pipeline.analyze_multiple(claims_file, AnalyzeOptions(checkpoint_id="m", resume=True))

    assert [r["claim_number"] for r in results] == [1, 2]
    assert llm.prompts_starting(SPLIT_PREFIX) == []
    assert len(llm.prompts_starting(ANALYSIS_PREFIX)) == 1
    assert (await store.get("m")).completed


@pytest.mark.asyncio
async def test_fresh_single_run_over_completed_job_then_resume(settings, store, providers, sleep):
    stale = {"analysis": {"claim_text": CLAIM}, "query": {"query": "stale"}, "search_results": [], "risk_summary": {}}
    await store.put("s", Job(id="s", data=stale, completed=True))

    failing = FakeLLM(responses=[json.dumps({"keywords": ["anode"]}), "garbage", "garbage", "garbage"])
    pipeline = Pipeline(settings, store, failing, providers, sleep)
    with pytest.raises(UnparsableResponseError):
        await pipeline.analyze(CLAIM, AnalyzeOptions(checkpoint_id="s", execute=True))

    job = await store.get("s")
    assert not job.completed
    assert resolve_state(job) is JobState.SEARCHED

    llm = FakeLLM()
    pipeline = Pipeline(settings, store, llm, providers, sleep)
    result = await pipeline.analyze(None, AnalyzeOptions(checkpoint_id="s", resume=True, execute=True))

    assert result["query"]["query"] != "stale"
    assert len(result["search_results"]) == 5
    assert all(r["risk_score"] == 5 for r in result["search_results"])
    assert len(providers["projectpq"].queries) == 1
    assert (await store.get("s")).completed


@pytest.mark.asyncio
async def test_resume_of_completed_multiple_job_makes_no_calls(settings, store, sleep, claims_file):
    results = [
        {"claim_number": 1, "analysis": {"claim_text": "1. A battery."}, "query": {"query": "q1"}},
        {"claim_number": 2, "analysis": {"claim_text": "2. A method."}, "query": {"query": "q2"}},
    ]
    await store.put("done-m", Job(id="done-m", data={"claims": [], "results": results}, completed=True))
    llm = FakeLLM()
    providers = {"lens": FakeProvider("lens", make_records(1))}
    pipeline = Pipeline(settings, store, llm, providers, sleep)

    returned = await pipeline.analyze_multiple(
        claims_file, AnalyzeOptions(checkpoint_id="done-m", resume=True, execute=True)
    )

    assert [r["claim_number"] for r in returned] == [1, 2]
    assert returned == results
    assert llm.calls == []
    assert providers["lens"].queries == []
