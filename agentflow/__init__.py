"""
agentflow - a step-by-step agentic workflow engine.

Workflows are ordered lists of think/act/decide/respond steps. Each step
makes one generation call, may dispatch one tool, and reports progress as
a stream of StepResult events.
"""

from agentflow.application.agent_session import AgentSession
from agentflow.domain.context.state.state_manager import WorkflowStateManager
from agentflow.domain.exceptions import (
    AgentFlowError,
    StateNotInitializedError,
    StepNotFoundError,
    ToolArgumentError,
    ToolExecutionError,
    UnknownStepTypeError,
)
from agentflow.domain.models.agent_state import WorkflowStatus
from agentflow.domain.models.events import StepResult, StepResultType, ToolCallRecord
from agentflow.domain.models.workflow import (
    StepType,
    TaskType,
    Tool,
    WorkflowDefinition,
    WorkflowMemoryConfig,
    WorkflowStep,
)
from agentflow.domain.orchestration.core.step_executor import StepExecutor
from agentflow.domain.orchestration.core.workflow_executor import WorkflowExecutor
from agentflow.domain.streaming.generation import GenerationProvider, GenerationRequest, GenerationResult, TokenChunk
from agentflow.domain.tool.tool_call_parser import ToolCallParser
from agentflow.infrastructure.config import EngineSettings, get_settings
from agentflow.infrastructure.observability.logging import setup_logging

__version__ = "0.1.0"

__all__ = [
    "AgentSession",
    "WorkflowStateManager",
    "StepExecutor",
    "WorkflowExecutor",
    "ToolCallParser",
    "AgentFlowError",
    "StateNotInitializedError",
    "StepNotFoundError",
    "ToolArgumentError",
    "ToolExecutionError",
    "UnknownStepTypeError",
    "WorkflowStatus",
    "StepResult",
    "StepResultType",
    "ToolCallRecord",
    "StepType",
    "TaskType",
    "Tool",
    "WorkflowDefinition",
    "WorkflowMemoryConfig",
    "WorkflowStep",
    "GenerationProvider",
    "GenerationRequest",
    "GenerationResult",
    "TokenChunk",
    "EngineSettings",
    "get_settings",
    "setup_logging",
]
