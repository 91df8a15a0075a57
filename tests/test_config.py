import pytest
from pydantic import ValidationError

from agentflow.domain.exceptions import UnknownStepTypeError
from agentflow.domain.models.events import StepResultType
from agentflow.domain.models.workflow import StepType, TaskType, WorkflowDefinition, WorkflowStep
from agentflow.domain.orchestration.step_configs import get_result_type, get_step_config, get_task_type_for_step
from agentflow.infrastructure.config import EngineSettings


def test_defaults():
    settings = EngineSettings()

    assert settings.max_token_limit == 600
    assert settings.warning_threshold == 0.8
    assert settings.prune_target_ratio == 0.6
    assert settings.default_temperature == 0.1


def test_from_env(monkeypatch):
    monkeypatch.setenv("AGENTFLOW_MAX_TOKEN_LIMIT", "1000")
    monkeypatch.setenv("AGENTFLOW_WARNING_THRESHOLD", "0.5")
    monkeypatch.setenv("AGENTFLOW_LOG_FORMAT", "console")

    settings = EngineSettings.from_env()

    assert settings.max_token_limit == 1000
    assert settings.warning_threshold == 0.5
    assert settings.log_format == "console"
    assert settings.chars_per_token == 4


def test_from_env_rejects_invalid_values(monkeypatch):
    monkeypatch.setenv("AGENTFLOW_WARNING_THRESHOLD", "2")

    with pytest.raises(ValidationError):
        EngineSettings.from_env()


def test_workflow_memory_overrides(state_manager):
    workflow = WorkflowDefinition(
        id="wf",
        steps=[WorkflowStep(id="a", description="A")],
        memory_config={"max_memory_tokens": 200, "warning_threshold": 0.5},
    )

    state = state_manager.initialize_state("hi", workflow)

    assert state.memory_metrics.max_token_limit == 200
    assert state.memory_metrics.warning_threshold == 0.5


def test_duplicate_step_ids_rejected():
    with pytest.raises(ValidationError, match="Duplicate step id"):
        WorkflowDefinition(id="wf", steps=[
            WorkflowStep(id="a", description="A"),
            WorkflowStep(id="a", description="Again"),
        ])


@pytest.mark.parametrize("step_type,task_type,allow_tools,result_type", [
    (StepType.THINK, TaskType.REASONING, False, StepResultType.THINKING),
    (StepType.ACT, TaskType.FUNCTION_CALLING, True, StepResultType.TOOL_CALL),
    (StepType.DECIDE, TaskType.REASONING, False, StepResultType.DECISION),
    (StepType.RESPOND, TaskType.CHAT, False, StepResultType.RESPONSE),
])
def test_step_config_table(step_type, task_type, allow_tools, result_type):
    config = get_step_config(step_type)

    assert config.task_type == task_type
    assert config.allow_tools is allow_tools
    assert get_result_type(step_type) == result_type


def test_generation_task_overrides_step_type():
    step = WorkflowStep(id="a", description="A", type=StepType.THINK, generation_task=TaskType.CHAT)

    assert get_task_type_for_step(step) == TaskType.CHAT


def test_unknown_step_type():
    with pytest.raises(UnknownStepTypeError):
        get_step_config("dance")
