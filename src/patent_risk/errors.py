"""Error taxonomy for the analysis pipeline.

Retry policy is decided by the caller, not by the error: provider errors and
response-shape errors raised inside a retried operation are retried up to the
dependency's attempt ceiling, everything else surfaces immediately.
"""

from __future__ import annotations


class PatentRiskError(Exception):
    """Base class for every error the pipeline raises on purpose."""


class TransientProviderError(PatentRiskError):
    """Network, HTTP or rate-limit failure talking to an external provider."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class UnparsableResponseError(PatentRiskError):
    """Reasoning output contained no extractable JSON."""

    def __init__(self, message: str, response: str = "") -> None:
        super().__init__(message)
        self.response = response


class MalformedResponseError(PatentRiskError):
    """Reasoning output was JSON but not the shape the stage asked for."""


class NotFoundError(PatentRiskError):
    """Checkpoint requested but absent."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Checkpoint '{job_id}' does not exist")
        self.job_id = job_id


class PersistenceError(PatentRiskError):
    """Checkpoint write or update failed."""


class NoClaimsFoundError(PatentRiskError):
    """A claims file yielded no claims."""
