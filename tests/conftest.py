import json
import re

import pytest

from patent_risk.checkpoint import MemoryCheckpointStore
from patent_risk.config import Settings
from patent_risk.models import PatentRecord
from patent_risk.pipeline import Pipeline

_INDEX_LINE = re.compile(r"^INDEX: (\d+)$", re.MULTILINE)

ANALYSIS = {
    "keywords": ["battery", "electrode"],
    "concepts": ["energy storage"],
    "cpcClasses": ["H01M10/05"],
    "ipcClasses": [],
}


class FakeLLM:
    """Scripted reasoning provider.

    Queued `responses` are returned first (an Exception instance is raised
    instead); after that the prompt kind decides the answer. Every call is
    recorded as (prompt, context).
    """

    def __init__(self, analysis=None, claims=None, score_for=None, responses=None):
        self.analysis = ANALYSIS if analysis is None else analysis
        self.claims = claims or []
        self.score_for = score_for or (lambda index: 5)
        self.responses = list(responses or [])
        self.calls = []

    async def complete(self, prompt, context=None):
        self.calls.append((prompt, context))
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        if prompt.startswith("Please analyze the following patent claim"):
            return json.dumps(self.analysis)
        if prompt.startswith("I have a text file"):
            return json.dumps(self.claims)
        indices = [int(i) for i in _INDEX_LINE.findall(prompt)]
        return json.dumps({
            "patentAssessments": [
                {"index": i, "patentNumber": f"US{i}", "riskScore": self.score_for(i), "explanation": f"overlap {i}"}
                for i in indices
            ]
        })

    def prompts_starting(self, prefix):
        return [prompt for prompt, _ in self.calls if prompt.startswith(prefix)]


class FakeProvider:
    def __init__(self, name, records=None, error=None):
        self.name = name
        self.records = records or []
        self.error = error
        self.queries = []

    async def search(self, query, advanced=None):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.records)


def make_records(count, prefix="US"):
    return [
        PatentRecord(patent_number=f"{prefix}{i}", title=f"Patent {i}", abstract=f"Abstract {i}")
        for i in range(count)
    ]


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        checkpoint_backend="memory",
        checkpoint_dir=str(tmp_path / "checkpoints"),
        results_dir=str(tmp_path / "results"),
        reasoning_max_attempts=3,
        record_max_attempts=3,
        scoring_batch_size=20,
    )


@pytest.fixture
def store():
    return MemoryCheckpointStore()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def providers():
    return {
        "projectpq": FakeProvider("projectpq", make_records(3, "PQ")),
        "lens": FakeProvider("lens", make_records(2, "LENS")),
    }


@pytest.fixture
def pipeline(settings, store, llm, providers, sleep):
    return Pipeline(settings, store, llm, providers, sleep)
