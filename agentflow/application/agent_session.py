from typing import AsyncIterator, Iterable, List, Optional
from uuid import uuid4
import structlog

from agentflow.domain.context.state.state_manager import WorkflowStateManager
from agentflow.domain.models.agent_state import ExecutionState
from agentflow.domain.models.events import StepResult
from agentflow.domain.models.workflow import Tool, WorkflowDefinition
from agentflow.domain.orchestration.core.step_executor import StepExecutor
from agentflow.domain.orchestration.core.workflow_executor import WorkflowExecutor
from agentflow.domain.streaming.generation import GenerationProvider
from agentflow.domain.tool.tool_executor import ToolExecutor
from agentflow.domain.tool.tool_registry import ToolRegistry
from agentflow.infrastructure.config import EngineSettings, get_settings

logger = structlog.get_logger(__name__)


class AgentSession:
    """
    Entry point for running workflows against one generation provider.

    Each run gets its own state manager and executors, so overlapping
    runs on the same session never share memory.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        settings: Optional[EngineSettings] = None,
        tool_timeout_seconds: Optional[float] = None
    ):
        self.provider = provider
        self.settings = settings or get_settings()
        self.tool_timeout_seconds = tool_timeout_seconds
        self.tool_registry = ToolRegistry()
        self.last_state: Optional[ExecutionState] = None

    def register_tools(self, tools: Iterable[Tool]):
        """Make tools available to every workflow run of this session"""
        self.tool_registry.register_tools(tools)

    def get_registered_tools(self) -> List[Tool]:
        return self.tool_registry.get_available_tools()

    async def run_workflow(self, user_prompt: str, workflow: WorkflowDefinition) -> AsyncIterator[StepResult]:
        """Run a workflow, yielding its step events"""

        run_id = str(uuid4())
        state_manager = WorkflowStateManager(settings=self.settings)
        step_executor = StepExecutor(
            state_manager,
            self.provider,
            tool_executor=ToolExecutor(self.tool_timeout_seconds),
            settings=self.settings
        )
        executor = WorkflowExecutor(state_manager, step_executor)

        stream = executor.execute_workflow(user_prompt, workflow, self.tool_registry.get_available_tools())

        # Bound only while the run is advancing, never across a yield to the caller
        with structlog.contextvars.bound_contextvars(run_id=run_id, workflow_id=workflow.id):
            logger.info("Starting workflow run", prompt_length=len(user_prompt))

        try:
            while True:
                with structlog.contextvars.bound_contextvars(run_id=run_id, workflow_id=workflow.id):
                    try:
                        result = await stream.__anext__()
                    except StopAsyncIteration:
                        break
                yield result
        finally:
            await stream.aclose()
            self.last_state = state_manager.state
