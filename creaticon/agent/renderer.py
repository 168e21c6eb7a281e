"""
Debounced, concurrency-bounded preview rendering.

Every artifact id owns one render job. Requests for the same id inside the
debounce window collapse into a single render of the newest payload, and all
callers from that window receive the same result. A global in-flight counter
bounds how many renders execute at once across every job.
"""
import asyncio
import html
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from creaticon.agent.artifacts import (
    Artifact,
    BundleArtifact,
    ComponentArtifact,
    IconArtifact,
    RenderError,
    RenderErrorType,
    RenderJobStats,
    RenderOptions,
    RenderPerformance,
    RenderResult,
    StylesheetArtifact,
    utc_now,
)
from creaticon.agent.output_validator import EXPORT_MARKER, find_unbalanced_bracket
from creaticon.core.config import settings

logger = logging.getLogger(__name__)

TOO_MANY_RENDERS = "Too many concurrent renders. Please wait and retry."
JOB_CLEARED = "Render job cleared before it ran."

MIN_DEBOUNCE_MS, MAX_DEBOUNCE_MS = 100, 2000
MIN_CONCURRENT, MAX_CONCURRENT = 1, 10

VIEWPORT_WIDTHS = {"mobile": 480, "tablet": 768, "desktop": 1200}
THEME_VARIABLES = {
    "light": {"--preview-bg": "#ffffff", "--preview-fg": "#111827", "--preview-muted": "#6b7280"},
    "dark": {"--preview-bg": "#0f172a", "--preview-fg": "#f8fafc", "--preview-muted": "#94a3b8"},
}
HEAVY_DEPENDENCY_SIZES = {
    "styled-components": 50000,
    "@emotion": 30000,
    "framer-motion": 100000,
    "lodash": 70000,
}

# (error type, pattern) in match order; the first hit wins.
ERROR_PATTERNS: list[tuple[RenderErrorType, re.Pattern]] = [
    ("syntax", re.compile(r"SyntaxError|Unexpected token")),
    ("import", re.compile(r"Cannot resolve module|Module not found")),
    ("props", re.compile(r"Props|property")),
    ("styling", re.compile(r"style|CSS")),
]
ERROR_SUGGESTIONS: dict[str, list[str]] = {
    "syntax": [
        "Check for missing brackets, parentheses or semicolons",
        "Verify JSX syntax is correct",
        "Ensure all tags are properly closed",
    ],
    "import": [
        "Check that all imported modules are available",
        "Verify import paths are correct",
        "Consider removing unused imports",
    ],
    "props": [
        "Check prop types and default values",
        "Verify required props are provided",
        "Check for typos in prop names",
    ],
    "styling": [
        "Check CSS syntax and property names",
        "Verify styled-components or CSS-in-JS syntax",
        "Ensure CSS classes are properly defined",
    ],
    "runtime": [
        "Check for undefined variables or functions",
        "Verify component logic and state management",
        "Check browser console for additional details",
    ],
}


class Sandbox(Protocol):
    async def execute(self, document: str, options: RenderOptions) -> str: ...


class PreviewSandbox:
    """Builds the isolated preview page. Script execution happens in the viewer, not here."""

    CONTENT_SECURITY_POLICY = (
        "default-src 'none'; style-src 'unsafe-inline'; img-src data:; "
        "script-src 'unsafe-inline' 'unsafe-eval' https://unpkg.com"
    )
    COMPONENT_RUNTIME = (
        '<script crossorigin src="https://unpkg.com/react@18/umd/react.development.js"></script>\n'
        '<script crossorigin src="https://unpkg.com/react-dom@18/umd/react-dom.development.js"></script>\n'
        '<script src="https://unpkg.com/@babel/standalone/babel.min.js"></script>'
    )

    async def execute(self, document: str, options: RenderOptions) -> str:
        runtime = self.COMPONENT_RUNTIME if 'type="text/babel"' in document else ""
        return (
            "<!DOCTYPE html>\n<html>\n<head>\n"
            '<meta charset="utf-8">\n'
            f'<meta http-equiv="Content-Security-Policy" content="{self.CONTENT_SECURITY_POLICY}">\n'
            f"{runtime}\n</head>\n<body>\n{document}\n</body>\n</html>\n"
        )


def classify_render_error(message: str) -> RenderError:
    error_type: RenderErrorType = "runtime"
    for candidate, pattern in ERROR_PATTERNS:
        if pattern.search(message):
            error_type = candidate
            break
    return RenderError(type=error_type, message=message, suggestions=list(ERROR_SUGGESTIONS[error_type]))


def estimate_size(artifact: Artifact) -> int:
    if isinstance(artifact, ComponentArtifact):
        size = len(artifact.source_code.encode("utf-8"))
        for dependency in artifact.dependencies:
            for heavy, extra in HEAVY_DEPENDENCY_SIZES.items():
                if dependency == heavy or dependency.startswith(f"{heavy}/"):
                    size += extra
        return size
    if isinstance(artifact, BundleArtifact):
        return len((artifact.html + artifact.css + artifact.js).encode("utf-8"))
    if isinstance(artifact, IconArtifact):
        return len(artifact.raw_markup.encode("utf-8"))
    return len(artifact.css.encode("utf-8"))


def prevalidate(artifact: Artifact) -> tuple[list[RenderError], list[str]]:
    """Cheap structural checks that run before the sandbox is touched."""
    warnings: list[str] = []
    if isinstance(artifact, ComponentArtifact):
        source = artifact.source_code
        if not source.strip():
            return [RenderError(type="syntax", message="Component source is empty",
                                suggestions=list(ERROR_SUGGESTIONS["syntax"]))], warnings
        if not EXPORT_MARKER.search(source):
            return [RenderError(type="syntax", message="Component must have a default or named export",
                                suggestions=["Add `export default` for the component"])], warnings
        issue = find_unbalanced_bracket(source)
        if issue is not None:
            return [RenderError(
                type="syntax",
                message=issue.message,
                position=issue.position,
                line=issue.line,
                column=issue.column,
                suggestions=list(ERROR_SUGGESTIONS["syntax"]),
            )], warnings
        if not re.search(r"""from\s+['"]react['"]""", source):
            warnings.append("Consider importing React explicitly for better compatibility")
        return [], warnings

    if isinstance(artifact, IconArtifact):
        markup = artifact.raw_markup
    elif isinstance(artifact, BundleArtifact):
        markup = artifact.html + artifact.css + artifact.js
    else:
        markup = artifact.css
    if not markup.strip():
        return [RenderError(type="syntax", message="Nothing to render: markup is empty")], warnings
    return [], warnings


def _artifact_markup(artifact: Artifact) -> str:
    if isinstance(artifact, IconArtifact):
        return artifact.raw_markup
    if isinstance(artifact, StylesheetArtifact):
        return f"<style>\n{artifact.css}\n</style>"
    if isinstance(artifact, BundleArtifact):
        parts = []
        if artifact.css:
            parts.append(f"<style>\n{artifact.css}\n</style>")
        parts.append(artifact.html)
        if artifact.js:
            parts.append(f"<script>\n{artifact.js}\n</script>")
        return "\n".join(parts)
    return (
        '<div id="root"></div>\n'
        f'<script type="text/babel" data-presets="react,typescript">\n{artifact.source_code}\n</script>'
    )


def transform(artifact: Artifact, options: RenderOptions) -> str:
    """Wrap the artifact in the theme variables and the viewport container."""
    rules = []
    variables = THEME_VARIABLES.get(options.theme)
    if variables:
        declarations = "; ".join(f"{name}: {value}" for name, value in variables.items())
        rules.append(f":root {{ {declarations}; }}")
        rules.append("body { background: var(--preview-bg); color: var(--preview-fg); }")
    rules.append(
        f".preview-viewport {{ max-width: {VIEWPORT_WIDTHS[options.viewport]}px; margin: 0 auto; }}"
    )
    if options.show_grid:
        rules.append(
            ".preview-viewport { background-image: linear-gradient(rgba(0,0,0,.06) 1px, transparent 1px), "
            "linear-gradient(90deg, rgba(0,0,0,.06) 1px, transparent 1px); background-size: 8px 8px; }"
        )
    css = "\n".join(rules)
    return (
        f"<style>\n{css}\n</style>\n"
        f'<div class="preview-viewport" data-theme="{html.escape(options.theme)}" '
        f'data-viewport="{html.escape(options.viewport)}">\n{_artifact_markup(artifact)}\n</div>'
    )


@dataclass
class RenderJob:
    artifact_id: str
    pending: tuple[Artifact, RenderOptions] | None = None
    timer: asyncio.Task | None = None
    waiters: asyncio.Future | None = None
    render_count: int = 0
    performance: RenderPerformance = field(default_factory=RenderPerformance)
    errors: list[RenderError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    is_rendering: bool = False
    last_render_at: datetime | None = None
    options: RenderOptions | None = None

    def stats(self) -> RenderJobStats:
        return RenderJobStats(
            artifact_id=self.artifact_id,
            is_rendering=self.is_rendering,
            render_count=self.render_count,
            last_render_at=self.last_render_at,
            performance=self.performance.model_copy(),
            errors=list(self.errors),
            warnings=list(self.warnings),
            options=self.options,
        )


def _failure(error_type: RenderErrorType, message: str) -> RenderResult:
    return RenderResult(
        success=False,
        errors=[RenderError(type=error_type, message=message, suggestions=list(ERROR_SUGGESTIONS[error_type]))],
    )


class RenderScheduler:
    def __init__(
        self,
        sandbox: Sandbox | None = None,
        *,
        debounce_ms: int | None = None,
        max_concurrent: int | None = None,
    ):
        self.sandbox = sandbox or PreviewSandbox()
        self.debounce_ms = debounce_ms if debounce_ms is not None else settings.RENDER_DEBOUNCE_MS
        self.max_concurrent = max_concurrent if max_concurrent is not None else settings.RENDER_MAX_CONCURRENT
        self._jobs: dict[str, RenderJob] = {}
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def set_debounce_ms(self, value: int) -> int:
        self.debounce_ms = max(MIN_DEBOUNCE_MS, min(MAX_DEBOUNCE_MS, value))
        return self.debounce_ms

    def set_max_concurrent(self, value: int) -> int:
        self.max_concurrent = max(MIN_CONCURRENT, min(MAX_CONCURRENT, value))
        return self.max_concurrent

    async def request_render(
        self,
        artifact_id: str,
        artifact: Artifact,
        options: RenderOptions | None = None,
    ) -> RenderResult:
        if self._in_flight >= self.max_concurrent:
            logger.warning("Rejected render for %s: %s renders in flight.", artifact_id, self._in_flight)
            return _failure("runtime", TOO_MANY_RENDERS)

        job = self._jobs.get(artifact_id)
        if job is None:
            job = self._jobs[artifact_id] = RenderJob(artifact_id=artifact_id)

        job.pending = (artifact, options or RenderOptions())
        if job.waiters is None or job.waiters.done():
            job.waiters = asyncio.get_running_loop().create_future()
        if job.timer is not None:
            job.timer.cancel()
        job.timer = asyncio.create_task(self._fire(job), name=f"render:{artifact_id}")

        # One caller giving up must not cancel the result for the rest of the window.
        return await asyncio.shield(job.waiters)

    async def _fire(self, job: RenderJob) -> None:
        await asyncio.sleep(self.debounce_ms / 1000)

        future, job.waiters = job.waiters, None
        job.timer = None
        artifact, options = job.pending
        job.pending = None

        if self._in_flight >= self.max_concurrent:
            logger.warning("Render for %s dropped at fire time: bound of %s reached.",
                           job.artifact_id, self.max_concurrent)
            result = _failure("runtime", TOO_MANY_RENDERS)
        else:
            self._in_flight += 1
            try:
                result = await self._render(job, artifact, options)
            except Exception as exc:
                logger.error("Render for %s crashed: %s", job.artifact_id, exc)
                result = _failure("runtime", f"{type(exc).__name__}: {exc}")
            finally:
                self._in_flight -= 1

        if future is not None and not future.done():
            future.set_result(result)

    async def _render(self, job: RenderJob, artifact: Artifact, options: RenderOptions) -> RenderResult:
        started = time.perf_counter()
        job.is_rendering = True
        job.options = options
        try:
            errors, warnings = prevalidate(artifact)
            rendered: str | None = None
            if not errors:
                try:
                    rendered = await self.sandbox.execute(transform(artifact, options), options)
                except Exception as exc:
                    errors = [classify_render_error(str(exc) or type(exc).__name__)]
        finally:
            job.is_rendering = False

        elapsed = round((time.perf_counter() - started) * 1000, 3)
        job.render_count += 1
        job.performance.last_render_ms = elapsed
        job.performance.total_render_ms += elapsed
        job.performance.average_render_ms = job.performance.total_render_ms / job.render_count
        job.errors = errors
        job.warnings = warnings
        job.last_render_at = utc_now()

        if errors:
            logger.info("Render %s for %s failed: %s", job.render_count, job.artifact_id, errors[0].message)
        else:
            logger.info("Render %s for %s finished in %.1fms.", job.render_count, job.artifact_id, elapsed)
        return RenderResult(
            success=not errors,
            rendered=rendered,
            errors=errors,
            warnings=warnings,
            render_time_ms=elapsed,
            estimated_size_bytes=estimate_size(artifact),
        )

    def get_job(self, artifact_id: str) -> RenderJobStats | None:
        job = self._jobs.get(artifact_id)
        return job.stats() if job else None

    def all_jobs(self) -> list[RenderJobStats]:
        return [job.stats() for job in self._jobs.values()]

    def clear(self, artifact_id: str) -> bool:
        job = self._jobs.pop(artifact_id, None)
        if job is None:
            return False
        if job.timer is not None:
            job.timer.cancel()
        if job.waiters is not None and not job.waiters.done():
            job.waiters.set_result(_failure("runtime", JOB_CLEARED))
        return True

    def clear_all(self) -> None:
        for artifact_id in list(self._jobs):
            self.clear(artifact_id)
