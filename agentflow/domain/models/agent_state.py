from typing import Dict, Any, List, Optional, Set
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum
import time

from langchain_core.messages import BaseMessage

from agentflow.domain.models.workflow import WorkflowDefinition, WorkflowMemoryConfig


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStatus(str, Enum):
    """Workflow run status"""
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"
    FAILED = "failed"


class StepState(BaseModel):
    """Per-step bookkeeping for one run"""
    id: str
    description: str = ""
    complete: bool = False
    attempts: int = 0
    max_attempts: int = 3
    result: Optional[str] = None

    @property
    def is_eligible(self) -> bool:
        """Whether the step may still be executed"""
        return not self.complete and self.attempts < self.max_attempts


class ToolResult(BaseModel):
    """A tool result kept in memory"""
    name: str
    description: str = ""
    args: Dict[str, Any] = Field(default_factory=dict)
    result: str


class AgentMemory(BaseModel):
    """Conversational memory of one run"""
    user_prompt: str
    messages: List[BaseMessage] = Field(default_factory=list, description="System and seed user message first")
    steps: Dict[str, StepState] = Field(default_factory=dict)
    tool_results: Dict[str, ToolResult] = Field(default_factory=dict, description="Keyed by step_<id>")
    context: Dict[str, Any] = Field(default_factory=dict)


class WorkflowMemoryMetrics(BaseModel):
    """Memory usage figures, refreshed after every message mutation"""
    message_count: int = 0
    estimated_tokens: int = 0
    prune_count: int = 0
    summarization_count: int = 0
    avg_step_result_size: float = 0.0
    max_token_limit: int = 600
    warning_threshold: float = 0.8
    last_prune_time: Optional[datetime] = None
    last_summarization_time: Optional[datetime] = None


class StepContext(BaseModel):
    """Context handed to the prompt builder for one step"""
    workflow_id: str
    workflow_name: Optional[str] = None
    system_prompt: Optional[str] = None
    user_prompt: str = ""
    shared: Dict[str, Any] = Field(default_factory=dict, description="Workflow-level context map")
    previous_results: Dict[str, str] = Field(default_factory=dict, description="Clean results of completed steps")
    tool_results: List[ToolResult] = Field(default_factory=list)
    iteration: int = 1


class ExecutionState(BaseModel):
    """Mutable state of a single workflow run"""
    workflow: WorkflowDefinition
    start_time: float = Field(default_factory=time.monotonic, description="Monotonic clock reading at start")
    started_at: datetime = Field(default_factory=_utcnow)
    iteration: int = 1
    max_iterations: int = 10
    timeout_ms: int = 60000
    status: WorkflowStatus = WorkflowStatus.RUNNING
    completed_steps: Set[str] = Field(default_factory=set)
    memory: AgentMemory
    memory_config: WorkflowMemoryConfig = Field(default_factory=WorkflowMemoryConfig)
    memory_metrics: WorkflowMemoryMetrics = Field(default_factory=WorkflowMemoryMetrics)
    current_token_count: int = 0
    token_count_last_updated: Optional[datetime] = None

    def elapsed_ms(self) -> float:
        """Milliseconds since the run started"""
        return (time.monotonic() - self.start_time) * 1000

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of the current state"""
        return {
            "workflow_id": self.workflow.id,
            "status": self.status.value,
            "iteration": self.iteration,
            "completed_steps": sorted(self.completed_steps),
            "message_count": len(self.memory.messages),
            "estimated_tokens": self.current_token_count,
            "elapsed_ms": round(self.elapsed_ms(), 1),
        }
