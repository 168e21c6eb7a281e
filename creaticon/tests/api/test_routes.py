import io
import json
import zipfile

import httpx
import pytest

from creaticon.agent.artifact_store import InMemoryArtifactStore
from creaticon.agent.artifacts import GenerationAttempt, GenerationResult, ProviderSpec
from creaticon.agent.errors import ProviderAuthenticationError, ProvidersExhaustedError
from creaticon.agent.llm_client import normalize_output
from creaticon.agent.orchestrator import GenerationOrchestrator
from creaticon.agent.renderer import RenderScheduler
from creaticon.core.config import settings
from creaticon.main import create_app

API = settings.API_V1_STR
ANALYSIS = json.dumps({"app_type": "weather", "estimated_icon_count": 2})
ICONS = (
    '<html><body><nav><svg data-name="sun" viewBox="0 0 24 24"></svg>'
    '<svg data-name="cloud" viewBox="0 0 32 32"></svg></nav></body></html>'
)
ICON_ARTIFACT = {"type": "icon", "id": "icon-0", "semantic_name": "sun", "raw_markup": "<svg></svg>"}


class ScriptedDispatcher:
    def __init__(self, outputs):
        self.outputs = list(outputs)

    async def dispatch(self, request, call, providers, cancel=None):
        raw = self.outputs.pop(0)
        if isinstance(raw, Exception):
            raise raw
        return GenerationResult(provider="scripted", text=normalize_output(raw, request.kind), raw_text=raw)


def _app(outputs=()):
    providers = [
        ProviderSpec(
            name="backup",
            priority=1,
            family="anthropic",
            model="claude",
            endpoint_template="https://anthropic.test/v1/messages",
            api_key="secret-b",
        ),
        ProviderSpec(
            name="primary",
            priority=0,
            family="openai",
            model="gpt",
            supports_streaming=True,
            endpoint_template="https://openai.test/v1/chat/completions",
            api_key="secret-a",
        ),
    ]
    orchestrator = GenerationOrchestrator(ScriptedDispatcher(outputs), providers=providers)
    scheduler = RenderScheduler(debounce_ms=5, max_concurrent=3)
    return create_app(orchestrator=orchestrator, scheduler=scheduler, store=InMemoryArtifactStore())


def _client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_check_and_provider_listing_hides_keys():
    async with _client(_app()) as client:
        health = await client.get(f"{API}/utils/health-check/")
        providers = await client.get(f"{API}/utils/providers/")

    assert health.json() is True
    assert [p["name"] for p in providers.json()] == ["primary", "backup"]
    assert "secret" not in providers.text


@pytest.mark.asyncio
async def test_generate_returns_artifacts():
    async with _client(_app([ANALYSIS, ICONS])) as client:
        response = await client.post(f"{API}/generate", json={"description": "weather icons", "kind": "icon-pack"})

    assert response.status_code == 200
    body = response.json()
    assert body["analysis"]["app_type"] == "weather"
    assert [a["semantic_name"] for a in body["artifacts"]] == ["sun", "cloud"]
    assert [a["bounding_size"] for a in body["artifacts"]] == [24, 32]


@pytest.mark.asyncio
async def test_generate_rejects_unknown_kind():
    async with _client(_app()) as client:
        response = await client.post(f"{API}/generate", json={"description": "x", "kind": "poster"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_generate_reports_exhausted_providers():
    exhausted = ProvidersExhaustedError([
        GenerationAttempt(provider="primary", status="retryable-error", failure="network"),
    ])
    async with _client(_app([ANALYSIS, exhausted])) as client:
        response = await client.post(f"{API}/generate", json={"description": "icons", "kind": "icon-pack"})

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["type"] == "providers_exhausted"
    assert detail["failures"][0]["failure"] == "network"


@pytest.mark.asyncio
async def test_generate_reports_authentication_failure():
    auth = ProviderAuthenticationError("primary", "HTTP 401", [])
    async with _client(_app([auth])) as client:
        response = await client.post(f"{API}/generate", json={"description": "icons", "kind": "icon-pack"})

    assert response.status_code == 502
    assert response.json()["detail"]["provider"] == "primary"


@pytest.mark.asyncio
async def test_generate_stream_emits_progress_events():
    async with _client(_app([ANALYSIS, ICONS])) as client:
        response = await client.post(
            f"{API}/generate/stream", json={"description": "icons", "kind": "icon-pack"}
        )

    events = [
        json.loads(line.removeprefix("data:").strip())
        for line in response.text.splitlines()
        if line.startswith("data:")
    ]
    assert events[0]["status"] == "starting"
    assert events[-1]["status"] == "completed"


@pytest.mark.asyncio
async def test_pipeline_lifecycle():
    app = _app([ANALYSIS])
    async with _client(app) as client:
        started = await client.post(
            f"{API}/pipelines",
            json={
                "request": {"description": "icons", "kind": "icon-pack"},
                "options": {"pause_after_analysis": True},
            },
        )
        assert started.status_code == 202
        pipeline_id = started.json()["id"]

        await app.state.orchestrator.engine.wait(pipeline_id)
        paused = await client.get(f"{API}/pipelines/{pipeline_id}")
        active = await client.get(f"{API}/pipelines", params={"active": True})
        cancelled = await client.post(f"{API}/pipelines/{pipeline_id}/cancel")

    assert paused.json()["status"] == "paused"
    assert [p["id"] for p in active.json()] == [pipeline_id]
    assert cancelled.json()["status"] == "failed"
    assert cancelled.json()["error"] == "Pipeline cancelled"


@pytest.mark.asyncio
async def test_unknown_pipeline_is_404():
    async with _client(_app()) as client:
        read = await client.get(f"{API}/pipelines/pipeline_missing")
        resume = await client.post(f"{API}/pipelines/pipeline_missing/resume", json={"feedback": {"a": "b"}})
        cancel = await client.post(f"{API}/pipelines/pipeline_missing/cancel")

    assert [read.status_code, resume.status_code, cancel.status_code] == [404, 404, 404]


@pytest.mark.asyncio
async def test_render_job_lifecycle():
    async with _client(_app()) as client:
        rendered = await client.post(
            f"{API}/render",
            json={"artifact_id": "sun", "artifact": ICON_ARTIFACT, "options": {"theme": "dark"}},
        )
        stats = await client.get(f"{API}/render/sun")
        jobs = await client.get(f"{API}/render")
        cleared = await client.delete(f"{API}/render/sun")
        missing = await client.delete(f"{API}/render/sun")

    assert rendered.json()["success"] is True
    assert "#0f172a" in rendered.json()["rendered"]
    assert stats.json()["render_count"] == 1
    assert [job["artifact_id"] for job in jobs.json()] == ["sun"]
    assert cleared.status_code == 204
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_library_save_download_delete():
    async with _client(_app()) as client:
        saved = await client.post(
            f"{API}/library",
            json={"name": "Weather icons", "kind": "icon-pack", "artifacts": [ICON_ARTIFACT]},
        )
        entry_id = saved.json()["id"]
        listed = await client.get(f"{API}/library", params={"kind": "icon-pack"})
        other_kind = await client.get(f"{API}/library", params={"kind": "component"})
        download = await client.get(f"{API}/library/{entry_id}/download")
        deleted = await client.delete(f"{API}/library/{entry_id}")
        gone = await client.get(f"{API}/library/{entry_id}")

    assert saved.status_code == 201
    assert [e["id"] for e in listed.json()] == [entry_id]
    assert other_kind.json() == []
    assert download.headers["content-type"] == "application/zip"
    assert 'filename="Weather-icons.zip"' in download.headers["content-disposition"]
    names = zipfile.ZipFile(io.BytesIO(download.content)).namelist()
    assert "icons/sun.svg" in names
    assert deleted.status_code == 204
    assert gone.status_code == 404
