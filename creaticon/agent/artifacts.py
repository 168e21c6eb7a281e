from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

TargetKind = Literal["icon-pack", "ui-bundle", "component"]
ProviderFamily = Literal["openai", "anthropic", "gemini", "huggingface"]
FailureKind = Literal["authentication", "rate-limited", "server", "network", "malformed-response"]
AttemptStatus = Literal["success", "retryable-error", "fatal-error"]
StepStatus = Literal["pending", "in-progress", "completed", "failed", "skipped"]
PipelineStatus = Literal["pending", "in-progress", "completed", "failed", "paused"]
RenderErrorType = Literal["syntax", "import", "props", "styling", "runtime"]
VariantStrategy = Literal["Dark Theme", "Mobile-First", "Minimal", "Animated", "High Contrast"]
VariantPack = Literal["essential", "accessibility", "mobile", "design", "complete"]

DOCUMENT_KINDS: frozenset[str] = frozenset({"icon-pack", "ui-bundle"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GenerationRequest(BaseModel):
    """A user's free-text generation request. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    description: str = Field(min_length=1, description="Free-text description of what to generate")
    kind: TargetKind = Field(description="Which artifact family the output should be extracted into")
    style_preference: str = Field(default="modern", description="Opaque style hint passed to prompts")
    color_scheme: str | None = Field(default=None, description="Opaque color hint passed to prompts")
    analysis_required: bool = Field(default=True, description="Run the context analysis call first")


class GenerationOptions(BaseModel):
    generate_variants: bool = False
    variant_strategies: list[VariantStrategy] = Field(
        default_factory=list,
        description="Explicit variant strategies; takes precedence over variant_pack",
    )
    variant_pack: VariantPack = "design"
    pause_after_analysis: bool = Field(
        default=False,
        description="Pause the pipeline after analysis until the caller confirms via resume feedback",
    )


class ProviderSpec(BaseModel):
    """Read-only configuration for one external generation provider."""
    model_config = ConfigDict(frozen=True)

    name: str
    priority: int = 0
    family: ProviderFamily
    model: str
    supports_streaming: bool = False
    endpoint_template: str = Field(description="Endpoint URL; may contain a `{model}` placeholder")
    api_key: str = Field(default="", repr=False)
    auth_status_codes: frozenset[int] = frozenset({401, 403})
    rate_limit_status_codes: frozenset[int] = frozenset({429})

    def endpoint(self) -> str:
        return self.endpoint_template.replace("{model}", self.model)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class GenerationCall(BaseModel):
    messages: list[ChatMessage]
    temperature: float = 0.7
    max_tokens: int = 8000


class GenerationAttempt(BaseModel):
    provider: str
    started_at: datetime = Field(default_factory=utc_now)
    raw_text: str = ""
    status: AttemptStatus = "success"
    failure: FailureKind | None = None
    status_code: int | None = None
    error: str | None = None
    elapsed_ms: float = 0.0


class GenerationResult(BaseModel):
    provider: str
    text: str = Field(description="Normalized output text (fences stripped, doctype ensured)")
    raw_text: str = Field(description="Text exactly as accumulated from the provider")
    attempts: list[GenerationAttempt] = Field(default_factory=list)
    elapsed_ms: float = 0.0


class IconArtifact(BaseModel):
    type: Literal["icon"] = "icon"
    id: str
    semantic_name: str
    raw_markup: str
    bounding_size: int = 24
    category: str = "general"


class StylesheetArtifact(BaseModel):
    type: Literal["stylesheet"] = "stylesheet"
    css: str


class BundleArtifact(BaseModel):
    type: Literal["bundle"] = "bundle"
    html: str
    css: str = ""
    js: str = ""
    icons: list[IconArtifact] = Field(default_factory=list)


class PropField(BaseModel):
    name: str
    type: str = "any"
    required: bool = True


class ComponentArtifact(BaseModel):
    type: Literal["component"] = "component"
    name: str
    props_schema: list[PropField] = Field(default_factory=list)
    source_code: str
    dependencies: list[str] = Field(default_factory=list)


Artifact = Annotated[
    IconArtifact | StylesheetArtifact | BundleArtifact | ComponentArtifact,
    Field(discriminator="type"),
]


class AnalysisReport(BaseModel):
    """Context analysis produced before generation. Every field is optional guidance."""
    app_type: str = "general"
    complexity: Literal["simple", "medium", "complex"] = "medium"
    key_features: list[str] = Field(default_factory=list)
    icon_categories: list[str] = Field(default_factory=list)
    estimated_icon_count: int | None = None
    visual_theme: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class GenerationOutcome(BaseModel):
    """Everything a one-shot generation produced."""
    request: GenerationRequest
    analysis: AnalysisReport | None = None
    result: GenerationResult
    artifacts: list[Artifact] = Field(default_factory=list)
    processing_steps: list[str] = Field(default_factory=list)


class StructureOutline(BaseModel):
    sections: list[str] = Field(default_factory=list)
    elements: list[str] = Field(default_factory=list)
    naming: list[str] = Field(default_factory=list)
    notes: str = ""


class Variant(BaseModel):
    name: str
    content: str


class VariantSet(BaseModel):
    variants: list[Variant] = Field(default_factory=list)


class StepResult(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None
    suggestions: list[str] = Field(default_factory=list)
    needs_user_input: bool = False
    user_prompt: str | None = None
    fatal: bool = Field(default=False, description="Fail the step without spending the retry budget")


class PipelineStep(BaseModel):
    id: str
    name: str
    description: str = ""
    status: StepStatus = "pending"
    retry_count: int = 0
    duration_ms: float | None = None
    result: StepResult | None = None
    error: str | None = None


class Pipeline(BaseModel):
    id: str
    request: GenerationRequest
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    steps: list[PipelineStep]
    current_step: int = 0
    status: PipelineStatus = "pending"
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: datetime | None = None
    user_feedback: dict[str, str] = Field(default_factory=dict)
    failed_step_id: str | None = None
    error: str | None = None
    final_artifacts: list[Artifact] = Field(default_factory=list)

    def step(self, step_id: str) -> PipelineStep | None:
        return next((step for step in self.steps if step.id == step_id), None)

    def step_data(self, step_id: str) -> Any:
        step = self.step(step_id)
        if step is None or step.status != "completed" or step.result is None:
            return None
        return step.result.data


class ValidationCheck(BaseModel):
    name: str
    passed: bool
    detail: str | None = None


class ValidationReport(BaseModel):
    passed: bool
    checks: list[ValidationCheck] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class RenderOptions(BaseModel):
    theme: Literal["light", "dark", "auto"] = "light"
    viewport: Literal["mobile", "tablet", "desktop"] = "desktop"
    show_grid: bool = False


class RenderError(BaseModel):
    type: RenderErrorType
    message: str
    position: int | None = Field(default=None, description="Character index of the offending character")
    line: int | None = None
    column: int | None = None
    suggestions: list[str] = Field(default_factory=list)


class RenderResult(BaseModel):
    success: bool
    rendered: str | None = None
    errors: list[RenderError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    render_time_ms: float = 0.0
    estimated_size_bytes: int = 0


class RenderPerformance(BaseModel):
    last_render_ms: float = 0.0
    total_render_ms: float = 0.0
    average_render_ms: float = 0.0


class RenderJobStats(BaseModel):
    """Observable snapshot of one artifact's render job."""
    artifact_id: str
    is_rendering: bool = False
    render_count: int = 0
    last_render_at: datetime | None = None
    performance: RenderPerformance = Field(default_factory=RenderPerformance)
    errors: list[RenderError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    options: RenderOptions | None = None


class SavedArtifactSet(BaseModel):
    """One library entry: a named set of artifacts persisted as a single store value."""
    id: str
    name: str
    kind: TargetKind
    description: str | None = None
    artifacts: list[Artifact] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=utc_now)
