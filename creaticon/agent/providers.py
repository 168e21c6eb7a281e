"""
Per-family request builders and response parsers.

Each supported provider family has exactly one format object that knows how to
shape the outgoing request and how to pull generated text out of either a whole
response body or one decoded stream event. Parsers raise `ValueError` when the
payload does not have the expected shape; the client classifies that as a
malformed response.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from creaticon.agent.artifacts import GenerationCall, ProviderFamily, ProviderSpec
from creaticon.core.config import Settings

ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class StreamDelta:
    text: str = ""
    terminal: bool = False


class ProviderFormat:
    family: ClassVar[ProviderFamily]

    def build_headers(self, spec: ProviderSpec) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {spec.api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, spec: ProviderSpec, call: GenerationCall, *, stream: bool) -> dict[str, Any]:
        raise NotImplementedError

    def parse_body(self, body: Any) -> str:
        raise NotImplementedError

    def parse_stream_event(self, payload: Any) -> StreamDelta:
        raise NotImplementedError


class OpenAIFormat(ProviderFormat):
    family = "openai"

    def build_payload(self, spec, call, *, stream):
        return {
            "model": spec.model,
            "messages": [message.model_dump() for message in call.messages],
            "temperature": call.temperature,
            "max_tokens": call.max_tokens,
            "stream": stream,
        }

    def parse_body(self, body):
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError(f"Missing choices[0].message.content: {exc!r}") from exc
        return content or ""

    def parse_stream_event(self, payload):
        try:
            choice = payload["choices"][0]
        except (KeyError, IndexError, TypeError):
            # Usage-only trailer chunks carry no choices.
            return StreamDelta()
        delta = (choice.get("delta") or {}).get("content") or ""
        return StreamDelta(text=delta)


class AnthropicFormat(ProviderFormat):
    family = "anthropic"

    def build_headers(self, spec):
        return {
            "x-api-key": spec.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def build_payload(self, spec, call, *, stream):
        system = "\n\n".join(m.content for m in call.messages if m.role == "system")
        payload: dict[str, Any] = {
            "model": spec.model,
            "max_tokens": call.max_tokens,
            "temperature": call.temperature,
            "messages": [m.model_dump() for m in call.messages if m.role != "system"],
            "stream": stream,
        }
        if system:
            payload["system"] = system
        return payload

    def parse_body(self, body):
        try:
            return body["content"][0]["text"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError(f"Missing content[0].text: {exc!r}") from exc

    def parse_stream_event(self, payload):
        if not isinstance(payload, dict):
            raise ValueError("Anthropic stream event is not an object")
        event_type = payload.get("type")
        if event_type == "message_stop":
            return StreamDelta(terminal=True)
        if event_type == "error":
            raise ValueError(f"Anthropic stream error: {payload.get('error')}")
        if event_type == "content_block_delta":
            return StreamDelta(text=(payload.get("delta") or {}).get("text") or "")
        return StreamDelta()


class GeminiFormat(ProviderFormat):
    family = "gemini"

    def build_headers(self, spec):
        return {"x-goog-api-key": spec.api_key, "Content-Type": "application/json"}

    def build_payload(self, spec, call, *, stream):
        system = "\n\n".join(m.content for m in call.messages if m.role == "system")
        payload: dict[str, Any] = {
            "contents": [
                {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
                for m in call.messages
                if m.role != "system"
            ],
            "generationConfig": {
                "temperature": call.temperature,
                "maxOutputTokens": call.max_tokens,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    def parse_body(self, body):
        try:
            parts = body["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ValueError(f"Missing candidates[0].content.parts: {exc!r}") from exc

    def parse_stream_event(self, payload):
        if isinstance(payload, dict) and not payload.get("candidates"):
            return StreamDelta()
        return StreamDelta(text=self.parse_body(payload))


class HuggingFaceFormat(ProviderFormat):
    family = "huggingface"

    def build_payload(self, spec, call, *, stream):
        prompt = "\n\n".join(m.content for m in call.messages)
        return {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": call.max_tokens,
                "temperature": call.temperature,
                "do_sample": True,
                "top_p": 0.9,
                "return_full_text": False,
            },
            "stream": stream,
        }

    def parse_body(self, body):
        if isinstance(body, list):
            if not body or not isinstance(body[0], dict):
                raise ValueError("Empty generation list")
            return body[0].get("generated_text") or ""
        if isinstance(body, dict) and "generated_text" in body:
            return body["generated_text"] or ""
        raise ValueError("Missing generated_text")

    def parse_stream_event(self, payload):
        if not isinstance(payload, dict):
            raise ValueError("Hugging Face stream event is not an object")
        token = payload.get("token") or {}
        if token.get("special"):
            return StreamDelta()
        return StreamDelta(text=token.get("text") or "")


FORMATS: dict[str, ProviderFormat] = {
    fmt.family: fmt
    for fmt in (OpenAIFormat(), AnthropicFormat(), GeminiFormat(), HuggingFaceFormat())
}


def get_format(family: ProviderFamily) -> ProviderFormat:
    try:
        return FORMATS[family]
    except KeyError as exc:
        raise ValueError(f"Unsupported provider family: {family}") from exc


def default_providers(config: Settings) -> list[ProviderSpec]:
    """Build the fallback list from every provider that has a key configured."""
    candidates = [
        (config.OPENROUTER_API_KEY, dict(
            name="openrouter",
            family="openai",
            model=config.MODEL_OPENROUTER,
            supports_streaming=True,
            endpoint_template=f"{config.OPENROUTER_BASE_URL.rstrip('/')}/chat/completions",
        )),
        (config.OPENAI_API_KEY, dict(
            name="openai",
            family="openai",
            model=config.MODEL_OPENAI,
            supports_streaming=False,
            endpoint_template=f"{config.OPENAI_BASE_URL.rstrip('/')}/chat/completions",
        )),
        (config.ANTHROPIC_API_KEY, dict(
            name="anthropic",
            family="anthropic",
            model=config.MODEL_ANTHROPIC,
            supports_streaming=True,
            endpoint_template="https://api.anthropic.com/v1/messages",
        )),
        (config.GEMINI_API_KEY, dict(
            name="gemini",
            family="gemini",
            model=config.MODEL_GEMINI,
            supports_streaming=True,
            endpoint_template=(
                "https://generativelanguage.googleapis.com/v1beta/models/"
                "{model}:streamGenerateContent?alt=sse"
            ),
        )),
        (config.HUGGINGFACE_API_KEY, dict(
            name="huggingface",
            family="huggingface",
            model=config.MODEL_HUGGINGFACE,
            supports_streaming=False,
            endpoint_template="https://api-inference.huggingface.co/models/{model}",
        )),
    ]
    providers: list[ProviderSpec] = []
    for priority, (api_key, fields) in enumerate(candidates):
        if not api_key:
            continue
        providers.append(ProviderSpec(priority=priority, api_key=api_key, **fields))
    return providers
