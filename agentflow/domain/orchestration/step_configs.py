"""
Step type table.

Every step type maps to one StepConfig; executors and the prompt builder
read from this table instead of branching on the step type themselves.
"""

from typing import Dict, Union
from pydantic import BaseModel

from agentflow.domain.exceptions import UnknownStepTypeError
from agentflow.domain.models.events import StepResultType
from agentflow.domain.models.workflow import StepType, TaskType, WorkflowStep


class StepConfig(BaseModel):
    """Behaviour of one step type"""
    task_type: TaskType
    allow_tools: bool
    prompt_template: str
    result_type: StepResultType
    system_prompt_suffix: str


STEP_CONFIGS: Dict[StepType, StepConfig] = {
    StepType.THINK: StepConfig(
        task_type=TaskType.REASONING,
        allow_tools=False,
        prompt_template="reasoning",
        result_type=StepResultType.THINKING,
        system_prompt_suffix=(
            "BEHAVIOR: You are in reasoning mode. Use <think></think> tags to show your internal "
            "reasoning process, then provide clear logical reasoning outside the tags. "
            "Do not use tools in this step."
        ),
    ),
    StepType.ACT: StepConfig(
        task_type=TaskType.FUNCTION_CALLING,
        allow_tools=True,
        prompt_template="action",
        result_type=StepResultType.TOOL_CALL,
        system_prompt_suffix=(
            "BEHAVIOR: You are in action mode. Use <think></think> tags to plan your approach, "
            "then use the available tools to accomplish the objective.\n\n"
            "When you need to call a tool, use this exact format:\n"
            "<tool_call>\n"
            '{"name": "tool_name", "arguments": {"param": "value"}}\n'
            "</tool_call>\n\n"
            "Make sure to call the appropriate tools with proper parameters to complete the required actions."
        ),
    ),
    StepType.DECIDE: StepConfig(
        task_type=TaskType.REASONING,
        allow_tools=False,
        prompt_template="decision",
        result_type=StepResultType.DECISION,
        system_prompt_suffix=(
            "BEHAVIOR: You are in decision mode. Use <think></think> tags to evaluate options "
            "internally, then provide a clear decision with reasoning outside the tags."
        ),
    ),
    StepType.RESPOND: StepConfig(
        task_type=TaskType.CHAT,
        allow_tools=False,
        prompt_template="response",
        result_type=StepResultType.RESPONSE,
        system_prompt_suffix=(
            "BEHAVIOR: You are in response mode. Use <think></think> tags for any internal processing, "
            "then provide a clear, helpful, and comprehensive response to the user based on all previous work."
        ),
    ),
}


def get_step_config(step_type: Union[StepType, str]) -> StepConfig:
    """Get the config for a step type"""
    try:
        return STEP_CONFIGS[StepType(step_type)]
    except (ValueError, KeyError):
        raise UnknownStepTypeError(step_type) from None


def get_task_type_for_step(step: WorkflowStep) -> TaskType:
    """Task type for a step, honouring an explicit generation_task"""
    if step.generation_task is not None:
        return step.generation_task
    return get_step_config(step.type).task_type


def get_result_type(step_type: Union[StepType, str]) -> StepResultType:
    """Result event type emitted when a step of this type completes"""
    return get_step_config(step_type).result_type
