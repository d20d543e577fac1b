"""Pydantic models for structured reasoning-provider output."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClaimAnalysisPayload(BaseModel):
    """JSON object returned by the claim analysis prompt.

    Sparse output is valid: a missing or non-list field becomes an empty list.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    keywords: list[str] = Field(default_factory=list)
    concepts: list[str] = Field(default_factory=list)
    cpc_classes: list[str] = Field(default_factory=list, alias="cpcClasses")
    ipc_classes: list[str] = Field(default_factory=list, alias="ipcClasses")

    @field_validator("keywords", "concepts", "cpc_classes", "ipc_classes", mode="before")
    @classmethod
    def _strings_only(cls, value):
        if not isinstance(value, list):
            return []
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class PatentAssessment(BaseModel):
    """One entry of `patentAssessments` in a scoring response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    index: int
    patent_number: str = Field(default="", alias="patentNumber")
    risk_score: int = Field(alias="riskScore")
    explanation: str = ""

    @field_validator("risk_score", mode="before")
    @classmethod
    def _round_score(cls, value):
        if isinstance(value, float):
            return round(value)
        return value

    @field_validator("explanation", "patent_number", mode="before")
    @classmethod
    def _text(cls, value):
        return "" if value is None else str(value)
