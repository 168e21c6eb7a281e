import asyncio
import logging
import time

from creaticon.agent.artifacts import (
    GenerationAttempt,
    GenerationCall,
    GenerationRequest,
    GenerationResult,
    ProviderSpec,
)
from creaticon.agent.errors import (
    ProviderAuthenticationError,
    ProviderCallError,
    ProvidersExhaustedError,
)
from creaticon.agent.llm_client import LLMClient, normalize_output
from creaticon.core.config import settings

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class ProviderDispatcher:
    """Runs one generation call against an ordered provider list, falling back on failure."""

    def __init__(
        self,
        client: LLMClient | None = None,
        *,
        rate_limit_backoff_seconds: float | None = None,
    ):
        self.client = client or LLMClient()
        self.rate_limit_backoff_seconds = (
            rate_limit_backoff_seconds
            if rate_limit_backoff_seconds is not None
            else settings.RATE_LIMIT_BACKOFF_SECONDS
        )

    async def dispatch(
        self,
        request: GenerationRequest,
        call: GenerationCall,
        providers: list[ProviderSpec],
        cancel: asyncio.Event | None = None,
    ) -> GenerationResult:
        ordered = sorted(providers, key=lambda spec: spec.priority)
        attempts: list[GenerationAttempt] = []
        dispatch_started = time.perf_counter()

        for idx, spec in enumerate(ordered, start=1):
            attempt = GenerationAttempt(provider=spec.name)
            started = time.perf_counter()
            logger.info(
                "Issuing %s generation to provider %s (%s/%s, model %s)...",
                request.kind,
                spec.name,
                idx,
                len(ordered),
                spec.model,
            )
            try:
                raw_text = await self.client.complete(spec, call, cancel=cancel)
            except ProviderCallError as exc:
                attempt.elapsed_ms = _elapsed_ms(started)
                attempt.failure = exc.failure
                attempt.status_code = exc.status_code
                attempt.error = str(exc)
                if exc.failure == "authentication":
                    attempt.status = "fatal-error"
                    attempts.append(attempt)
                    logger.error("Provider %s rejected credentials: %s", spec.name, exc)
                    raise ProviderAuthenticationError(spec.name, str(exc), attempts) from exc

                attempt.status = "retryable-error"
                attempts.append(attempt)
                has_next = idx < len(ordered)
                logger.warning(
                    "Provider %s failed (%s): %s.%s",
                    spec.name,
                    exc.failure,
                    exc,
                    " Falling back to next provider..." if has_next else "",
                )
                if exc.failure == "rate-limited" and has_next and self.rate_limit_backoff_seconds > 0:
                    await asyncio.sleep(self.rate_limit_backoff_seconds)
                continue

            attempt.elapsed_ms = _elapsed_ms(started)
            attempt.raw_text = raw_text
            attempt.status = "success"
            attempts.append(attempt)
            logger.info(
                "Successfully received %s characters from %s in %.0fms.",
                len(raw_text),
                spec.name,
                attempt.elapsed_ms,
            )
            return GenerationResult(
                provider=spec.name,
                text=normalize_output(raw_text, request.kind),
                raw_text=raw_text,
                attempts=attempts,
                elapsed_ms=_elapsed_ms(dispatch_started),
            )

        logger.error("All %s providers failed for %s generation.", len(ordered), request.kind)
        raise ProvidersExhaustedError(attempts)
