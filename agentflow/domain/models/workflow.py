from typing import Dict, Any, List, Optional, Callable
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum


class StepType(str, Enum):
    """Kinds of workflow steps"""
    THINK = "think"
    ACT = "act"
    DECIDE = "decide"
    RESPOND = "respond"


class TaskType(str, Enum):
    """Generation task hint passed to the provider"""
    REASONING = "reasoning"
    FUNCTION_CALLING = "function_calling"
    CHAT = "chat"


class Tool(BaseModel):
    """A callable tool the model may invoke"""
    name: str = Field(description="Unique tool name")
    description: str = Field(default="", description="What the tool does")
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the tool arguments"
    )
    category: str = Field(default="general")
    strict: bool = Field(default=False, description="Validate arguments against the schema before invoking")
    implementation: Optional[Callable[..., Any]] = Field(default=None, exclude=True)

    def to_schema(self) -> Dict[str, Any]:
        """Provider-facing schema, without the implementation"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            }
        }


class WorkflowMemoryConfig(BaseModel):
    """Memory behaviour for one workflow"""
    enable_message_pruning: bool = False
    enable_message_summarization: bool = False
    enable_tool_result_storage: bool = False
    max_memory_tokens: Optional[int] = Field(None, gt=0, description="Overrides the engine token limit")
    warning_threshold: Optional[float] = Field(None, gt=0, le=1, description="Overrides the engine warning threshold")


class WorkflowStep(BaseModel):
    """A single step of a workflow"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique step identifier")
    description: str = Field(description="Step objective")
    type: StepType = Field(default=StepType.RESPOND)
    prompt: Optional[str] = Field(None, description="Extra instruction for this step")
    generation_task: Optional[TaskType] = Field(None, description="Overrides the task type derived from the step type")
    tools: List[str] = Field(default_factory=list, description="Names of tools this step may call")
    next_steps: List[str] = Field(default_factory=list, description="Step IDs to continue with")
    max_attempts: int = Field(default=3, ge=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkflowDefinition(BaseModel):
    """Static description of a multi-step workflow"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)
    system_prompt: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    tools: List[Tool] = Field(default_factory=list)
    max_iterations: int = Field(default=10, ge=1)
    timeout_ms: int = Field(default=60000, ge=0)
    memory_config: WorkflowMemoryConfig = Field(default_factory=WorkflowMemoryConfig)

    @field_validator("steps")
    @classmethod
    def validate_unique_step_ids(cls, steps: List[WorkflowStep]) -> List[WorkflowStep]:
        seen = set()
        for step in steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        return steps

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        """Look up a step by id"""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class ParsedToolCall(BaseModel):
    """A tool call extracted from model output"""
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
