import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from creaticon.agent.artifact_store import ArtifactStore
from creaticon.agent.artifacts import (
    GenerationOptions,
    GenerationRequest,
    Pipeline,
    PipelineStep,
    StepResult,
    utc_now,
)
from creaticon.agent.errors import (
    FatalGenerationError,
    GenerationCancelled,
    PipelineNotFoundError,
    StorageError,
)
from creaticon.core.config import settings

logger = logging.getLogger(__name__)

StepHandler = Callable[[Pipeline, PipelineStep], Awaitable[StepResult]]

DEFAULT_STEPS: list[tuple[str, str, str]] = [
    ("analyze_request", "Analyze Request", "Understanding the requirements and context"),
    ("generate_structure", "Generate Structure", "Outlining sections, elements and naming"),
    ("generate_primary", "Generate Output", "Producing the primary markup or code"),
    ("apply_styling", "Apply Styling", "Applying the requested visual style"),
    ("optimize_output", "Optimize Output", "Size, accessibility and best-practice cleanup"),
    ("validate_output", "Validate Output", "Structural checks and artifact extraction"),
]
VARIANTS_STEP = ("generate_variants", "Generate Variants", "Creating alternative variations")

TERMINAL_STATUSES = frozenset({"completed", "failed"})
ACTIVE_STATUSES = frozenset({"in-progress", "paused"})


def build_default_steps(options: GenerationOptions) -> list[PipelineStep]:
    definitions = list(DEFAULT_STEPS)
    if options.generate_variants:
        definitions.append(VARIANTS_STEP)
    return [
        PipelineStep(id=step_id, name=name, description=description)
        for step_id, name, description in definitions
    ]


class PipelineEngine:
    """Owns a registry of pipelines and executes their steps in order.

    Each step is retried up to `max_step_retries` times before the pipeline fails.
    A step result asking for user input pauses the pipeline on that step; `resume`
    merges the feedback and re-runs it.
    """

    def __init__(
        self,
        handlers: dict[str, StepHandler] | None = None,
        *,
        store: ArtifactStore | None = None,
        max_step_retries: int | None = None,
    ):
        self._handlers: dict[str, StepHandler] = dict(handlers or {})
        self._pipelines: dict[str, Pipeline] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self.store = store
        self.max_step_retries = (
            max_step_retries if max_step_retries is not None else settings.PIPELINE_MAX_STEP_RETRIES
        )

    def register_handler(self, step_id: str, handler: StepHandler) -> None:
        self._handlers[step_id] = handler

    def _require(self, pipeline_id: str) -> Pipeline:
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None:
            raise PipelineNotFoundError(pipeline_id)
        return pipeline

    def create(
        self,
        request: GenerationRequest,
        options: GenerationOptions | None = None,
        steps: list[PipelineStep] | None = None,
    ) -> Pipeline:
        options = options or GenerationOptions()
        pipeline = Pipeline(
            id=f"pipeline_{uuid.uuid4().hex[:12]}",
            request=request,
            options=options,
            steps=steps if steps is not None else build_default_steps(options),
        )
        self._pipelines[pipeline.id] = pipeline
        logger.info(
            "Created pipeline %s for %s with %s steps.", pipeline.id, request.kind, len(pipeline.steps)
        )
        return pipeline.model_copy(deep=True)

    async def start(self, request: GenerationRequest, options: GenerationOptions | None = None) -> str:
        pipeline = self.create(request, options)
        self._spawn(pipeline.id)
        return pipeline.id

    def _spawn(self, pipeline_id: str) -> asyncio.Task:
        task = asyncio.create_task(self.run(pipeline_id), name=f"pipeline:{pipeline_id}")
        self._tasks[pipeline_id] = task

        def _forget(done: asyncio.Task) -> None:
            if self._tasks.get(pipeline_id) is done:
                self._tasks.pop(pipeline_id, None)
            if not done.cancelled() and done.exception() is not None:
                logger.error("Pipeline %s task crashed: %s", pipeline_id, done.exception())

        task.add_done_callback(_forget)
        return task

    async def wait(self, pipeline_id: str) -> Pipeline:
        """Wait for the pipeline's background task, if any, and return a snapshot."""
        self._require(pipeline_id)
        task = self._tasks.get(pipeline_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self.get(pipeline_id)

    async def run(self, pipeline_id: str) -> Pipeline:
        pipeline = self._require(pipeline_id)
        if pipeline.status in TERMINAL_STATUSES:
            return pipeline.model_copy(deep=True)

        pipeline.status = "in-progress"
        logger.info("Running pipeline %s from step %s.", pipeline.id, pipeline.current_step)
        try:
            while pipeline.current_step < len(pipeline.steps):
                step = pipeline.steps[pipeline.current_step]
                result = await self._execute_step(pipeline, step)
                if pipeline.status != "in-progress":
                    # Cancelled while the step was running.
                    return pipeline.model_copy(deep=True)

                if step.status == "failed":
                    pipeline.status = "failed"
                    pipeline.failed_step_id = step.id
                    pipeline.error = step.error
                    pipeline.ended_at = utc_now()
                    logger.error(
                        "Pipeline %s failed at step %s after %s retries: %s",
                        pipeline.id,
                        step.id,
                        step.retry_count,
                        step.error,
                    )
                    break

                if result.needs_user_input:
                    step.status = "pending"
                    pipeline.status = "paused"
                    logger.info("Pipeline %s paused at step %s for user input.", pipeline.id, step.id)
                    return pipeline.model_copy(deep=True)

                pipeline.current_step += 1
            else:
                pipeline.status = "completed"
                pipeline.ended_at = utc_now()
                logger.info("Pipeline %s completed.", pipeline.id)
        except asyncio.CancelledError:
            if pipeline.status not in TERMINAL_STATUSES:
                self._mark_cancelled(pipeline)
                self._archive(pipeline)
            raise

        self._archive(pipeline)
        return pipeline.model_copy(deep=True)

    async def _execute_step(self, pipeline: Pipeline, step: PipelineStep) -> StepResult:
        started = time.perf_counter()
        step.status = "in-progress"
        step.error = None
        handler = self._handlers.get(step.id)
        logger.info("Pipeline %s: starting step %s.", pipeline.id, step.id)

        if handler is None:
            result = StepResult(success=False, error=f"No handler registered for step: {step.id}", fatal=True)
        else:
            while True:
                try:
                    result = await handler(pipeline, step)
                except (FatalGenerationError, GenerationCancelled) as exc:
                    result = StepResult(success=False, error=str(exc), fatal=True)
                except Exception as exc:
                    result = StepResult(success=False, error=f"{type(exc).__name__}: {exc}")

                if result.success or result.fatal or step.retry_count >= self.max_step_retries:
                    break
                step.retry_count += 1
                logger.warning(
                    "Step %s of pipeline %s failed: %s. Retrying (%s/%s)...",
                    step.id,
                    pipeline.id,
                    result.error,
                    step.retry_count,
                    self.max_step_retries,
                )

        step.result = result
        step.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        if result.success:
            step.status = "completed"
        else:
            step.status = "failed"
            step.error = result.error or "Step failed"
        return result

    def get(self, pipeline_id: str) -> Pipeline:
        return self._require(pipeline_id).model_copy(deep=True)

    async def resume(self, pipeline_id: str, feedback: dict[str, str] | None = None) -> Pipeline:
        pipeline = self._require(pipeline_id)
        if feedback:
            pipeline.user_feedback = {**pipeline.user_feedback, **feedback}
        if pipeline.status == "paused":
            # The paused step re-runs with a fresh retry budget.
            pipeline.steps[pipeline.current_step].retry_count = 0
            pipeline.status = "in-progress"
            logger.info("Resuming pipeline %s at step %s.", pipeline.id, pipeline.current_step)
            self._spawn(pipeline_id)
        return pipeline.model_copy(deep=True)

    def _mark_cancelled(self, pipeline: Pipeline) -> None:
        pipeline.status = "failed"
        pipeline.ended_at = utc_now()
        pipeline.error = "Pipeline cancelled"
        if pipeline.current_step < len(pipeline.steps):
            step = pipeline.steps[pipeline.current_step]
            if step.status == "in-progress":
                step.status = "failed"
                step.error = "Cancelled"
            pipeline.failed_step_id = step.id

    async def cancel(self, pipeline_id: str) -> Pipeline:
        pipeline = self._require(pipeline_id)
        if pipeline.status not in TERMINAL_STATUSES:
            self._mark_cancelled(pipeline)
            logger.info("Pipeline %s cancelled.", pipeline.id)
            self._archive(pipeline)
        task = self._tasks.pop(pipeline_id, None)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        return pipeline.model_copy(deep=True)

    def list_pipelines(self) -> list[Pipeline]:
        return [p.model_copy(deep=True) for p in self._pipelines.values()]

    def active_pipelines(self) -> list[Pipeline]:
        return [p.model_copy(deep=True) for p in self._pipelines.values() if p.status in ACTIVE_STATUSES]

    def clear(self, pipeline_id: str) -> bool:
        task = self._tasks.pop(pipeline_id, None)
        if task is not None and not task.done():
            task.cancel()
        return self._pipelines.pop(pipeline_id, None) is not None

    def _archive(self, pipeline: Pipeline) -> None:
        if self.store is None:
            return
        try:
            self.store.set(f"pipeline:{pipeline.id}", pipeline.model_dump_json())
        except StorageError as exc:
            logger.warning("Could not archive pipeline %s: %s", pipeline.id, exc)
