from typing import List, Optional, Union
import asyncio

import pytest

from agentflow.domain.context.state.state_manager import WorkflowStateManager
from agentflow.domain.models.workflow import StepType, Tool, WorkflowDefinition, WorkflowStep
from agentflow.domain.orchestration.core.step_executor import StepExecutor
from agentflow.domain.orchestration.core.workflow_executor import WorkflowExecutor
from agentflow.domain.streaming.generation import GenerationRequest, TokenChunk
from agentflow.infrastructure.config import EngineSettings


class ScriptedProvider:
    """Generation provider that replays canned outputs as token streams"""

    def __init__(self, responses: Optional[List[Union[str, Exception]]] = None,
                 default: str = "Done.", delay: float = 0.0):
        self.responses = list(responses or [])
        self.default = default
        self.delay = delay
        self.requests: List[GenerationRequest] = []

    def generate(self, request: GenerationRequest):
        self.requests.append(request)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return self._stream(response)

    async def _stream(self, text: str):
        if self.delay:
            await asyncio.sleep(self.delay)
        middle = len(text) // 2
        yield TokenChunk(token=text[:middle], is_first=True)
        yield TokenChunk(token=text[middle:])
        yield TokenChunk(token="", is_last=True)


def add(a, b):
    return a + b


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def add_tool():
    return Tool(
        name="add",
        description="Add two numbers",
        parameters={
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
            "required": ["a", "b"],
        },
        implementation=add,
    )


@pytest.fixture
def two_step_workflow():
    return WorkflowDefinition(
        id="wf-two",
        name="Two steps",
        system_prompt="You are a test agent.",
        steps=[
            WorkflowStep(id="plan", description="Plan the answer", type=StepType.THINK, max_attempts=1),
            WorkflowStep(id="reply", description="Reply to the user", type=StepType.RESPOND, max_attempts=1),
        ],
    )


@pytest.fixture
def state_manager(settings):
    return WorkflowStateManager(settings=settings)


@pytest.fixture
def make_executor(settings):
    """Build a fresh state manager / step executor / workflow executor triple"""

    def _make(provider, tool_executor=None):
        manager = WorkflowStateManager(settings=settings)
        step_executor = StepExecutor(manager, provider, tool_executor=tool_executor, settings=settings)
        return manager, step_executor, WorkflowExecutor(manager, step_executor)

    return _make


async def collect(stream):
    return [event async for event in stream]
