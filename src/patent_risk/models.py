from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Job(BaseModel):
    """Persisted state of one checkpointed unit of work."""

    id: str
    timestamp: int = 0  # epoch milliseconds of the last write
    data: Any = Field(default_factory=dict)
    processed: list[str] = Field(default_factory=list)
    completed: bool = False


class ClaimAnalysis(BaseModel):
    claim_text: str
    independent: bool = True
    keywords: list[str] = Field(default_factory=list)
    concepts: list[str] = Field(default_factory=list)
    cpc_classes: list[str] = Field(default_factory=list)
    ipc_classes: list[str] = Field(default_factory=list)
    raw_response: str = ""  # kept for debugging prompts

    @property
    def is_empty(self) -> bool:
        return not (self.keywords or self.concepts or self.cpc_classes or self.ipc_classes)


class SearchQuery(BaseModel):
    query: str = ""
    advanced: dict[str, Any] = Field(default_factory=dict)


class PatentRecord(BaseModel):
    patent_number: str = ""
    title: str = ""
    abstract: str = ""
    publication_date: str = ""
    assignee: str = ""
    inventors: list[str] = Field(default_factory=list)
    application_number: str = ""
    source: str | None = None  # provider that returned the record
    risk_score: int | None = None
    risk_explanation: str | None = None


class RiskEntry(BaseModel):
    patent_number: str
    title: str
    risk_score: int


class RiskSummary(BaseModel):
    total_analyzed: int = 0
    high_risk: list[RiskEntry] = Field(default_factory=list)
    medium_risk: list[RiskEntry] = Field(default_factory=list)
    low_risk: list[RiskEntry] = Field(default_factory=list)
    average_score: float = 0.0
    highest_risk: PatentRecord | None = None
    assessment: str = ""


class SearchOutcome(BaseModel):
    records: list[PatentRecord] = Field(default_factory=list)
    # per-provider counts plus "total"
    sources: dict[str, int] = Field(default_factory=dict)


class ClaimResult(BaseModel):
    """Result of one claim inside a multi-claim job."""

    claim_number: int
    analysis: ClaimAnalysis
    query: SearchQuery
    search_results: list[PatentRecord] | None = None
    risk_summary: RiskSummary | None = None
    sources: dict[str, int] | None = None


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class ConversationContext(BaseModel):
    """Append-only prompt/response log of one scoring pass.

    Immutable: `append` returns a new context, so a context can only be carried
    forward explicitly and never leaks between jobs.
    """

    model_config = ConfigDict(frozen=True)

    turns: tuple[Turn, ...] = ()

    def append(self, role: Literal["user", "assistant"], content: str) -> ConversationContext:
        return ConversationContext(turns=(*self.turns, Turn(role=role, content=content)))
