import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TypeVar

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from creaticon.agent.artifacts import DOCUMENT_KINDS, GenerationCall, ProviderSpec, TargetKind
from creaticon.agent.errors import GenerationCancelled, ProviderCallError
from creaticon.agent.providers import ProviderFormat, get_format
from creaticon.agent.stream_decoder import SSEStreamDecoder
from creaticon.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

DOCTYPE = "<!DOCTYPE html>"

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_WHOLE_FENCE = re.compile(r"^\s*```[\w-]*\s*([\s\S]*?)\s*```\s*$")
_FENCE_LINE = re.compile(r"^\s*```[\w-]*\s*$", re.MULTILINE)


def _strip_code_fences(text: str) -> str:
    if not text:
        return ""
    whole = _WHOLE_FENCE.match(text)
    if whole:
        return whole.group(1).strip()
    # Unterminated or embedded fences: drop the marker lines and keep the content.
    return _FENCE_LINE.sub("", text).strip()


def _first_json_span(text: str) -> str | None:
    """First balanced top-level JSON object or array; brackets inside strings are skipped."""
    start = re.search(r"[\[{]", text)
    if start is None:
        return None
    opener = text[start.start()]
    closer = "}" if opener == "{" else "]"
    depth = 0
    in_string = escaped = False
    for index in range(start.start(), len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start.start():index + 1]
    return None


def _json_candidates(raw_text: str) -> list[str]:
    text = (raw_text or "").strip()
    if not text:
        return []
    candidates = []
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    candidates.append(text)
    # Some models prefix the object with a bare "json" label.
    if text[:4].lower() == "json":
        candidates.append(text[4:].lstrip(": \n\r\t"))
    for candidate in list(candidates):
        span = _first_json_span(candidate)
        if span:
            candidates.append(span)
    return list(dict.fromkeys(c.strip() for c in candidates if c.strip()))


def parse_structured(raw_text: str, schema: type[T]) -> T:
    """Parse model text into `schema`, trying each plausible JSON span in turn."""
    candidates = _json_candidates(raw_text)
    if not candidates:
        raise ValueError("Model returned no content to parse")
    errors: list[str] = []
    for candidate in candidates:
        try:
            return schema.model_validate(json.loads(candidate, strict=False))
        except (json.JSONDecodeError, ValidationError) as exc:
            errors.append(str(exc))
    raise ValueError(f"No parseable {schema.__name__} in model output: " + " | ".join(errors[:3]))


def normalize_output(text: str, kind: TargetKind) -> str:
    """Strip code fences and make sure document kinds start with a doctype. Never rejects."""
    cleaned = _strip_code_fences(text or "")
    if kind in DOCUMENT_KINDS and cleaned and DOCTYPE.lower() not in cleaned.lower():
        cleaned = f"{DOCTYPE}\n{cleaned}"
    return cleaned


def classify_status(spec: ProviderSpec, status_code: int) -> str:
    if status_code in spec.auth_status_codes:
        return "authentication"
    if status_code in spec.rate_limit_status_codes:
        return "rate-limited"
    return "server"


class LLMClient:
    """Issues one generation call against one provider and returns the raw accumulated text.

    Every failure is raised as `ProviderCallError` with its classified failure kind, so
    the dispatcher can decide between falling back, backing off and giving up.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout: float | None = None,
    ):
        self._http_client = http_client
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def complete(
        self,
        spec: ProviderSpec,
        call: GenerationCall,
        cancel: asyncio.Event | None = None,
    ) -> str:
        if cancel is None:
            return await self._complete(spec, call)
        if cancel.is_set():
            raise GenerationCancelled(f"Generation cancelled before calling {spec.name}")

        reader = asyncio.create_task(self._complete(spec, call))
        watcher = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait({reader, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            if not reader.done():
                reader.cancel()
        if reader.cancelled() or not reader.done():
            # Let the reader unwind so the httpx response is closed before we return.
            await asyncio.gather(reader, return_exceptions=True)
            logger.info("Generation call to %s cancelled mid-flight.", spec.name)
            raise GenerationCancelled(f"Generation cancelled while reading from {spec.name}")
        return reader.result()

    async def _complete(self, spec: ProviderSpec, call: GenerationCall) -> str:
        fmt = get_format(spec.family)
        if spec.supports_streaming:
            text = await self._stream(spec, call, fmt)
        elif spec.family == "openai":
            text = await self._openai_sdk(spec, call)
        else:
            text = await self._post(spec, call, fmt)
        if not text.strip():
            raise ProviderCallError("malformed-response", f"Provider {spec.name} returned no output")
        return text

    async def _post(self, spec: ProviderSpec, call: GenerationCall, fmt: ProviderFormat) -> str:
        try:
            async with self._http() as client:
                response = await client.post(
                    spec.endpoint(),
                    headers=fmt.build_headers(spec),
                    json=fmt.build_payload(spec, call, stream=False),
                )
        except httpx.TransportError as exc:
            raise ProviderCallError("network", f"{type(exc).__name__}: {exc}") from exc
        if not response.is_success:
            raise ProviderCallError(
                classify_status(spec, response.status_code),
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return fmt.parse_body(response.json())
        except ValueError as exc:
            raise ProviderCallError("malformed-response", str(exc)) from exc

    async def _stream(self, spec: ProviderSpec, call: GenerationCall, fmt: ProviderFormat) -> str:
        decoder = SSEStreamDecoder()
        parts: list[str] = []
        try:
            async with self._http() as client:
                async with client.stream(
                    "POST",
                    spec.endpoint(),
                    headers=fmt.build_headers(spec),
                    json=fmt.build_payload(spec, call, stream=True),
                ) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ProviderCallError(
                            classify_status(spec, response.status_code),
                            f"HTTP {response.status_code}: {body[:200]}",
                            status_code=response.status_code,
                        )
                    async for chunk in response.aiter_bytes():
                        if self._consume(decoder.feed(chunk), fmt, parts):
                            break
                    else:
                        tail = decoder.finish()
                        if tail is not None:
                            self._consume([tail], fmt, parts)
        except httpx.TransportError as exc:
            raise ProviderCallError("network", f"{type(exc).__name__}: {exc}") from exc
        return "".join(parts)

    @staticmethod
    def _consume(events, fmt: ProviderFormat, parts: list[str]) -> bool:
        """Append each event's delta to `parts`; return True once the stream has terminated."""
        for event in events:
            if event.kind == "done":
                return True
            try:
                delta = fmt.parse_stream_event(json.loads(event.data))
            except ValueError as exc:
                raise ProviderCallError("malformed-response", f"Unparseable stream event: {exc}") from exc
            if delta.text:
                parts.append(delta.text)
            if delta.terminal:
                return True
        return False

    async def _openai_sdk(self, spec: ProviderSpec, call: GenerationCall) -> str:
        endpoint = spec.endpoint()
        base_url = endpoint.removesuffix("/chat/completions")
        client_kwargs = {
            "base_url": base_url,
            "api_key": spec.api_key,
            "timeout": self.timeout,
            "max_retries": 0,
        }
        if self._http_client is not None:
            client_kwargs["http_client"] = self._http_client
        client = AsyncOpenAI(**client_kwargs)
        try:
            response = await client.chat.completions.create(
                model=spec.model,
                messages=[message.model_dump() for message in call.messages],
                temperature=call.temperature,
                max_tokens=call.max_tokens,
            )
        except openai.APIStatusError as exc:
            raise ProviderCallError(
                classify_status(spec, exc.status_code),
                f"HTTP {exc.status_code}: {exc.message}",
                status_code=exc.status_code,
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderCallError("network", f"{type(exc).__name__}: {exc}") from exc

        if not getattr(response, "choices", None):
            logger.error("Received 0 choices from %s: %s", spec.name, response)
            raise ProviderCallError("malformed-response", f"Provider {spec.name} returned no choices")
        return response.choices[0].message.content or ""
