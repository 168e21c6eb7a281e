import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from creaticon.agent.artifacts import ChatMessage, GenerationCall, GenerationRequest, ProviderSpec
from creaticon.agent.dispatcher import ProviderDispatcher
from creaticon.agent.errors import (
    GenerationCancelled,
    ProviderAuthenticationError,
    ProviderCallError,
    ProvidersExhaustedError,
)
from creaticon.agent.extractor import extract

NAV_ICONS = """```html
<html>
<head><style>.icon { width: 24px; }</style></head>
<body>
  <nav class="navigation">
    <svg data-name="home" viewBox="0 0 24 24"><path d="M3 12l9-9 9 9"/></svg>
    <svg data-name="search" viewBox="0 0 24 24"><circle cx="11" cy="11" r="8"/></svg>
    <svg data-name="menu" viewBox="0 0 24 24"><path d="M3 6h18M3 12h18M3 18h18"/></svg>
    <svg data-name="back" viewBox="0 0 24 24"><path d="M15 18l-6-6 6-6"/></svg>
    <svg data-name="profile" viewBox="0 0 24 24"><circle cx="12" cy="8" r="4"/></svg>
  </nav>
</body>
</html>
```"""


class ScriptedClient:
    """Stands in for LLMClient: each provider name maps to a list of outcomes to replay."""

    def __init__(self, outcomes):
        self.outcomes = {name: list(values) for name, values in outcomes.items()}
        self.calls = []

    async def complete(self, spec, call, cancel=None):
        self.calls.append(spec.name)
        outcome = self.outcomes[spec.name].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _provider(name, priority):
    return ProviderSpec(
        name=name,
        priority=priority,
        family="openai",
        model=f"{name}-model",
        supports_streaming=True,
        endpoint_template=f"https://{name}.test/v1/chat/completions",
        api_key="k",
    )


REQUEST = GenerationRequest(description="5 navigation icons", kind="icon-pack")
CALL = GenerationCall(messages=[ChatMessage(role="user", content="5 navigation icons")])


@pytest.mark.asyncio
async def test_first_provider_success_skips_the_rest():
    client = ScriptedClient({"a": [NAV_ICONS], "b": ["unused"]})
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=0)

    result = await dispatcher.dispatch(REQUEST, CALL, [_provider("a", 0), _provider("b", 1)])

    assert client.calls == ["a"]
    assert result.provider == "a"
    assert [a.status for a in result.attempts] == ["success"]
    assert result.raw_text == NAV_ICONS
    assert result.text.startswith("<!DOCTYPE html>")


@pytest.mark.asyncio
async def test_providers_are_tried_in_priority_order_not_list_order():
    client = ScriptedClient({
        "late": ["<svg></svg>"],
        "early": [ProviderCallError("server", "HTTP 500", status_code=500)],
    })
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=0)

    result = await dispatcher.dispatch(REQUEST, CALL, [_provider("late", 5), _provider("early", 1)])

    assert client.calls == ["early", "late"]
    assert result.provider == "late"
    assert [(a.provider, a.status, a.failure) for a in result.attempts] == [
        ("early", "retryable-error", "server"),
        ("late", "success", None),
    ]


@pytest.mark.asyncio
async def test_authentication_failure_stops_fallback():
    client = ScriptedClient({
        "a": [ProviderCallError("authentication", "HTTP 401", status_code=401)],
        "b": ["<svg></svg>"],
    })
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=0)

    with pytest.raises(ProviderAuthenticationError) as excinfo:
        await dispatcher.dispatch(REQUEST, CALL, [_provider("a", 0), _provider("b", 1)])

    assert client.calls == ["a"]
    assert excinfo.value.provider == "a"
    assert excinfo.value.attempts[0].status == "fatal-error"
    assert excinfo.value.attempts[0].status_code == 401


@pytest.mark.asyncio
async def test_all_failures_raise_exhausted_with_every_attempt():
    client = ScriptedClient({
        "a": [ProviderCallError("network", "ConnectError")],
        "b": [ProviderCallError("malformed-response", "no output")],
    })
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=0)

    with pytest.raises(ProvidersExhaustedError) as excinfo:
        await dispatcher.dispatch(REQUEST, CALL, [_provider("a", 0), _provider("b", 1)])

    failures = excinfo.value.failures
    assert [f["provider"] for f in failures] == ["a", "b"]
    assert [f["failure"] for f in failures] == ["network", "malformed-response"]


@pytest.mark.asyncio
async def test_empty_provider_list_is_exhausted():
    dispatcher = ProviderDispatcher(ScriptedClient({}), rate_limit_backoff_seconds=0)

    with pytest.raises(ProvidersExhaustedError) as excinfo:
        await dispatcher.dispatch(REQUEST, CALL, [])

    assert excinfo.value.attempts == []


@pytest.mark.asyncio
async def test_rate_limit_backs_off_before_falling_back():
    client = ScriptedClient({
        "a": [ProviderCallError("rate-limited", "HTTP 429", status_code=429)],
        "b": ["<svg></svg>"],
    })
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=3)

    with patch("creaticon.agent.dispatcher.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await dispatcher.dispatch(REQUEST, CALL, [_provider("a", 0), _provider("b", 1)])

    sleep.assert_awaited_once_with(3)
    assert result.provider == "b"


@pytest.mark.asyncio
async def test_rate_limit_on_last_provider_does_not_sleep():
    client = ScriptedClient({"a": [ProviderCallError("rate-limited", "HTTP 429", status_code=429)]})
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=3)

    with patch("creaticon.agent.dispatcher.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(ProvidersExhaustedError):
            await dispatcher.dispatch(REQUEST, CALL, [_provider("a", 0)])

    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancellation_propagates_without_trying_other_providers():
    client = ScriptedClient({"a": [GenerationCancelled("stop")], "b": ["<svg></svg>"]})
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=0)

    with pytest.raises(GenerationCancelled):
        await dispatcher.dispatch(REQUEST, CALL, [_provider("a", 0), _provider("b", 1)], asyncio.Event())

    assert client.calls == ["a"]


@pytest.mark.asyncio
async def test_named_navigation_icons_after_first_provider_fails():
    client = ScriptedClient({
        "primary": [ProviderCallError("server", "HTTP 503", status_code=503)],
        "secondary": [NAV_ICONS],
    })
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=0)

    result = await dispatcher.dispatch(REQUEST, CALL, [_provider("primary", 0), _provider("secondary", 1)])
    artifacts = extract(result.text, REQUEST.kind)

    assert len(result.attempts) == 2
    assert result.attempts[0].status == "retryable-error"
    assert result.attempts[1].status == "success"

    icons = [a for a in artifacts if a.type == "icon"]
    assert [icon.semantic_name for icon in icons] == ["home", "search", "menu", "back", "profile"]
    assert {icon.category for icon in icons} == {"navigation"}
    assert len({icon.id for icon in icons}) == 5
    assert all(icon.bounding_size == 24 for icon in icons)
    assert [a.type for a in artifacts].count("stylesheet") == 1


@pytest.mark.asyncio
async def test_five_unnamed_icons_take_fallback_names_in_order():
    bare = "<html><body>" + '<svg viewBox="0 0 24 24"><path d="M4 4h16"/></svg>' * 5 + "</body></html>"
    client = ScriptedClient({"stub": [bare]})
    dispatcher = ProviderDispatcher(client, rate_limit_backoff_seconds=0)
    request = GenerationRequest(description="set of 5 navigation icons", kind="icon-pack")

    result = await dispatcher.dispatch(request, CALL, [_provider("stub", 0)])
    icons = extract(result.text, request.kind)

    assert [icon.semantic_name for icon in icons] == ["home", "user", "settings", "search", "menu"]
    assert [icon.category for icon in icons] == ["general"] * 5
    assert [icon.id for icon in icons] == [f"icon-{i}" for i in range(5)]
