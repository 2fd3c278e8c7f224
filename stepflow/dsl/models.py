"""
Workflow Models - typed, immutable view of a validated workflow document.

These models mirror the YAML document format:

    metadata: {name, description, version, author?, tags?}
    inputs:   {name: {type, required, default?, validation?, example?}}
    workflow: {steps: [{id, type, depends_on?, config?, outputs?, error_handling?}]}
    outputs:  {name: {source, type?, description?}}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stepflow.status import ErrorPolicy, StepType


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)


class WorkflowMetadata(_FrozenModel):
    """Workflow identity and documentation."""

    name: str = Field(..., description="Workflow name (registry key)")
    description: str = ""
    version: str = "0.0.0"
    author: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class InputValidation(_FrozenModel):
    """Value rules for a declared input."""

    pattern: Optional[str] = None
    min_length: Optional[int] = Field(None, alias="minLength")
    max_length: Optional[int] = Field(None, alias="maxLength")
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    enum: Optional[List[Any]] = None


class InputSpec(_FrozenModel):
    """Declaration of one workflow input."""

    type: str
    required: bool = False
    description: Optional[str] = None
    default: Any = None
    validation: Optional[InputValidation] = None
    example: Any = None

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class StepConfig(_FrozenModel):
    """Configuration of start, end, loop and parallel steps (free-form)."""

    pass


class CodeConfig(StepConfig):
    """Configuration of a ``code`` step."""

    language: str = "python3"
    code: str = ""
    timeout: Optional[int] = Field(None, description="Wall-clock limit in milliseconds")


class LlmConfig(StepConfig):
    """Configuration of an ``llm`` step."""

    model: str = ""
    prompt: str = ""
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout: Optional[int] = None


class HttpConfig(StepConfig):
    """Configuration of an ``http`` step."""

    url: str = ""
    method: str = "GET"
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    timeout: Optional[int] = None


class ConditionConfig(StepConfig):
    """Configuration of a ``condition`` step."""

    condition: str = ""
    true_step: Optional[str] = None
    false_step: Optional[str] = None


CONFIG_TYPES: Dict[str, type] = {
    StepType.CODE.value: CodeConfig,
    StepType.LLM.value: LlmConfig,
    StepType.HTTP.value: HttpConfig,
    StepType.CONDITION.value: ConditionConfig,
}


class ErrorHandlingSpec(_FrozenModel):
    """Per-step failure policy."""

    on_error: ErrorPolicy = ErrorPolicy.FAIL
    retry_count: int = 1
    retry_delay: float = 0.0
    fallback_step: Optional[str] = None


class StepSpec(_FrozenModel):
    """One typed unit of work in the workflow graph."""

    id: str
    type: StepType
    name: Optional[str] = None
    description: Optional[str] = None
    depends_on: List[str] = Field(default_factory=list)
    config: Union[CodeConfig, LlmConfig, HttpConfig, ConditionConfig, StepConfig] = Field(
        default_factory=StepConfig
    )
    outputs: Dict[str, Any] = Field(default_factory=dict)
    error_handling: ErrorHandlingSpec = Field(default_factory=ErrorHandlingSpec)

    @model_validator(mode="before")
    @classmethod
    def _select_config_variant(cls, data: Any) -> Any:
        """Build the config variant that matches the step type."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw_config = data.get("config") or {}
        if isinstance(raw_config, dict):
            config_cls = CONFIG_TYPES.get(str(data.get("type")), StepConfig)
            data["config"] = config_cls.model_validate(raw_config)
        if data.get("depends_on") is None:
            data.pop("depends_on", None)
        if data.get("error_handling") is None:
            data.pop("error_handling", None)
        return data


class OutputSpec(_FrozenModel):
    """A derived workflow output."""

    source: str
    type: Optional[str] = None
    description: Optional[str] = None


class WorkflowBody(_FrozenModel):
    steps: List[StepSpec] = Field(default_factory=list)


class WorkflowDefinition(_FrozenModel):
    """Complete, validated workflow definition.

    Created once at load time and read-only afterwards; many runs may share it.
    """

    metadata: WorkflowMetadata
    inputs: Dict[str, InputSpec] = Field(default_factory=dict)
    workflow: WorkflowBody = Field(default_factory=WorkflowBody)
    outputs: Dict[str, OutputSpec] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def steps(self) -> List[StepSpec]:
        return self.workflow.steps

    def get_step(self, step_id: str) -> Optional[StepSpec]:
        """Get step by id."""
        for step in self.workflow.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Document-shaped dictionary (JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True)


def parse_workflow(data: Dict[str, Any]) -> WorkflowDefinition:
    """Build a WorkflowDefinition from an already validated document."""
    return WorkflowDefinition.model_validate(data)


__all__ = [
    "WorkflowMetadata",
    "InputValidation",
    "InputSpec",
    "StepConfig",
    "CodeConfig",
    "LlmConfig",
    "HttpConfig",
    "ConditionConfig",
    "ErrorHandlingSpec",
    "StepSpec",
    "OutputSpec",
    "WorkflowDefinition",
    "parse_workflow",
]
