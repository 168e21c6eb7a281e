from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from creaticon.agent.artifacts import FailureKind, GenerationAttempt


class GenerationError(Exception):
    """Base class for errors raised while producing generated output."""


class FatalGenerationError(GenerationError):
    """An error that retrying the same work cannot fix."""


class GenerationCancelled(GenerationError):
    """The caller cancelled an in-flight generation call."""


class ProviderCallError(GenerationError):
    """One provider call failed; `failure` says how the dispatcher should react."""

    def __init__(self, failure: FailureKind, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.failure = failure
        self.status_code = status_code


class ProviderAuthenticationError(FatalGenerationError):
    def __init__(self, provider: str, message: str, attempts: list[GenerationAttempt]):
        super().__init__(f"Provider {provider} rejected the configured credentials: {message}")
        self.provider = provider
        self.attempts = attempts


class ProvidersExhaustedError(FatalGenerationError):
    def __init__(self, attempts: list[GenerationAttempt]):
        reasons = "; ".join(
            f"{attempt.provider}: {attempt.failure} ({attempt.error})" for attempt in attempts
        ) or "no providers configured"
        super().__init__(f"All providers failed: {reasons}")
        self.attempts = attempts

    @property
    def failures(self) -> list[dict]:
        return [
            {
                "provider": attempt.provider,
                "failure": attempt.failure,
                "status_code": attempt.status_code,
                "error": attempt.error,
            }
            for attempt in self.attempts
        ]


class PipelineNotFoundError(KeyError):
    def __init__(self, pipeline_id: str):
        super().__init__(pipeline_id)
        self.pipeline_id = pipeline_id

    def __str__(self) -> str:
        return f"Pipeline not found: {self.pipeline_id}"


class StorageError(Exception):
    """The artifact store failed to complete an operation."""
