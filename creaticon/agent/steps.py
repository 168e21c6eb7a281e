import json
import logging

from creaticon.agent.artifacts import (
    AnalysisReport,
    ChatMessage,
    GenerationCall,
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
    Pipeline,
    PipelineStep,
    ProviderSpec,
    StepResult,
    StructureOutline,
    VariantSet,
    VariantStrategy,
)
from creaticon.agent.dispatcher import ProviderDispatcher
from creaticon.agent.extractor import extract
from creaticon.agent.llm_client import parse_structured
from creaticon.agent.output_validator import validate_output
from creaticon.agent.pipeline import StepHandler
from creaticon.agent.prompts.generation import (
    ANALYSIS_SYSTEM_PROMPT,
    ANALYSIS_USER_PROMPT,
    GENERATION_SYSTEM_PROMPTS,
)
from creaticon.agent.prompts.steps import (
    ANALYSIS_CONFIRMATION_PROMPT,
    FEEDBACK_SUFFIX,
    OPTIMIZE_PROMPT,
    PRIMARY_PROMPT,
    STRUCTURE_PROMPT,
    STYLING_PROMPT,
    VARIANT_PACKS,
    VARIANT_STRATEGY_REQUIREMENTS,
    VARIANTS_PROMPT,
)
from creaticon.core.config import settings

logger = logging.getLogger(__name__)

STRUCTURED_SYSTEM_PROMPT = "You are a meticulous design planner. Respond with JSON only."


def build_analysis_call(request: GenerationRequest, feedback: str | None = None) -> GenerationCall:
    user_prompt = ANALYSIS_USER_PROMPT.format(
        description=request.description,
        kind=request.kind,
        style_preference=request.style_preference,
        color_scheme=request.color_scheme or "designer's choice",
    )
    if feedback:
        user_prompt += FEEDBACK_SUFFIX.format(feedback=feedback)
    return GenerationCall(
        messages=[
            ChatMessage(role="system", content=ANALYSIS_SYSTEM_PROMPT),
            ChatMessage(role="user", content=user_prompt),
        ],
        temperature=settings.ANALYSIS_TEMPERATURE,
        max_tokens=settings.ANALYSIS_MAX_TOKENS,
    )


def resolve_variant_strategies(options: GenerationOptions) -> list[VariantStrategy]:
    """Explicit strategies win; otherwise the preset pack. Duplicates keep their first position."""
    chosen = options.variant_strategies or list(VARIANT_PACKS[options.variant_pack])
    return list(dict.fromkeys(chosen))


def describe_variant_strategies(strategies: list[VariantStrategy]) -> str:
    blocks = []
    for name in strategies:
        requirements = "\n".join(f"- {item}" for item in VARIANT_STRATEGY_REQUIREMENTS[name])
        blocks.append(f"{name.upper()}:\n{requirements}")
    return "\n\n".join(blocks)


class GenerationSteps:
    """Default step handlers. Every handler calls the dispatcher and reads earlier results off the pipeline."""

    def __init__(self, dispatcher: ProviderDispatcher, providers: list[ProviderSpec]):
        self.dispatcher = dispatcher
        self.providers = providers

    def handlers(self) -> dict[str, StepHandler]:
        return {
            "analyze_request": self.analyze_request,
            "generate_structure": self.generate_structure,
            "generate_primary": self.generate_primary,
            "apply_styling": self.apply_styling,
            "optimize_output": self.optimize_output,
            "validate_output": self.validate_output,
            "generate_variants": self.generate_variants,
        }

    async def _generate(
        self,
        pipeline: Pipeline,
        step: PipelineStep,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int | None = None,
    ) -> GenerationResult:
        feedback = pipeline.user_feedback.get(step.id)
        if feedback:
            user_prompt += FEEDBACK_SUFFIX.format(feedback=feedback)
        call = GenerationCall(
            messages=[
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=temperature,
            max_tokens=max_tokens or settings.GENERATION_MAX_TOKENS,
        )
        return await self.dispatcher.dispatch(pipeline.request, call, self.providers)

    @staticmethod
    def _previous_text(pipeline: Pipeline, step_id: str) -> str | None:
        data = pipeline.step_data(step_id)
        if isinstance(data, dict):
            return data.get("text")
        return None

    async def analyze_request(self, pipeline: Pipeline, step: PipelineStep) -> StepResult:
        feedback = pipeline.user_feedback.get(step.id)
        if not pipeline.request.analysis_required:
            report = AnalysisReport()
        else:
            call = build_analysis_call(pipeline.request, feedback)
            result = await self.dispatcher.dispatch(pipeline.request, call, self.providers)
            try:
                report = parse_structured(result.raw_text, AnalysisReport)
            except ValueError as exc:
                return StepResult(success=False, error=f"Analysis failed: {exc}")

        if pipeline.options.pause_after_analysis and feedback is None:
            return StepResult(
                success=True,
                data=report.model_dump(),
                suggestions=report.suggestions,
                needs_user_input=True,
                user_prompt=ANALYSIS_CONFIRMATION_PROMPT,
            )
        return StepResult(success=True, data=report.model_dump(), suggestions=report.suggestions)

    async def generate_structure(self, pipeline: Pipeline, step: PipelineStep) -> StepResult:
        analysis = pipeline.step_data("analyze_request")
        if analysis is None:
            return StepResult(success=False, error="No analysis data available", fatal=True)

        result = await self._generate(
            pipeline,
            step,
            STRUCTURED_SYSTEM_PROMPT,
            STRUCTURE_PROMPT.format(
                kind=pipeline.request.kind,
                analysis=json.dumps(analysis),
                description=pipeline.request.description,
            ),
            temperature=0.2,
            max_tokens=1500,
        )
        try:
            outline = parse_structured(result.raw_text, StructureOutline)
        except ValueError as exc:
            return StepResult(success=False, error=f"Structure generation failed: {exc}")
        return StepResult(success=True, data=outline.model_dump())

    async def generate_primary(self, pipeline: Pipeline, step: PipelineStep) -> StepResult:
        analysis = pipeline.step_data("analyze_request")
        structure = pipeline.step_data("generate_structure")
        if analysis is None or structure is None:
            return StepResult(success=False, error="Missing prerequisite data", fatal=True)

        result = await self._generate(
            pipeline,
            step,
            GENERATION_SYSTEM_PROMPTS[pipeline.request.kind],
            PRIMARY_PROMPT.format(
                kind=pipeline.request.kind,
                description=pipeline.request.description,
                analysis=json.dumps(analysis),
                structure=json.dumps(structure),
            ),
            temperature=settings.GENERATION_TEMPERATURE,
        )
        return StepResult(success=True, data={"text": result.text, "provider": result.provider})

    async def apply_styling(self, pipeline: Pipeline, step: PipelineStep) -> StepResult:
        previous = self._previous_text(pipeline, "generate_primary")
        if not previous:
            return StepResult(success=False, error="No generated output available", fatal=True)

        result = await self._generate(
            pipeline,
            step,
            GENERATION_SYSTEM_PROMPTS[pipeline.request.kind],
            STYLING_PROMPT.format(
                style_preference=pipeline.request.style_preference,
                color_scheme=pipeline.request.color_scheme or "designer's choice",
                previous=previous,
            ),
            temperature=0.2,
        )
        return StepResult(
            success=True,
            data={
                "text": result.text,
                "provider": result.provider,
                "style": pipeline.request.style_preference,
            },
        )

    async def optimize_output(self, pipeline: Pipeline, step: PipelineStep) -> StepResult:
        previous = self._previous_text(pipeline, "apply_styling")
        if not previous:
            return StepResult(success=False, error="No styled output available", fatal=True)

        result = await self._generate(
            pipeline,
            step,
            GENERATION_SYSTEM_PROMPTS[pipeline.request.kind],
            OPTIMIZE_PROMPT.format(previous=previous),
            temperature=0.1,
        )
        return StepResult(success=True, data={"text": result.text, "provider": result.provider})

    async def validate_output(self, pipeline: Pipeline, step: PipelineStep) -> StepResult:
        text = self._previous_text(pipeline, "optimize_output")
        if not text:
            return StepResult(success=False, error="No optimized output available", fatal=True)

        report = validate_output(text, pipeline.request.kind)
        if not report.passed:
            logger.warning("Validation failed for pipeline %s: %s", pipeline.id, report.issues)
            return StepResult(
                success=False,
                data=report.model_dump(),
                error="Validation failed: " + "; ".join(report.issues),
                suggestions=report.suggestions,
            )

        artifacts = extract(text, pipeline.request.kind)
        pipeline.final_artifacts = artifacts
        return StepResult(
            success=True,
            data={"report": report.model_dump(), "artifact_count": len(artifacts), "text": text},
        )

    async def generate_variants(self, pipeline: Pipeline, step: PipelineStep) -> StepResult:
        final_text = self._previous_text(pipeline, "validate_output")
        if not final_text:
            return StepResult(success=False, error="No validated output available", fatal=True)
        strategies = resolve_variant_strategies(pipeline.options)

        result = await self._generate(
            pipeline,
            step,
            STRUCTURED_SYSTEM_PROMPT,
            VARIANTS_PROMPT.format(
                strategies=describe_variant_strategies(strategies),
                previous=final_text,
            ),
            temperature=0.3,
        )
        try:
            variants = parse_structured(result.raw_text, VariantSet)
        except ValueError as exc:
            return StepResult(success=False, error=f"Variant generation failed: {exc}")
        return StepResult(success=True, data={**variants.model_dump(), "strategies": strategies})
