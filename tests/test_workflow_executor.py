from agentflow.domain.context.memory.summarizer import SUMMARY_SYSTEM_PROMPT
from agentflow.domain.models.agent_state import WorkflowStatus
from agentflow.domain.models.events import StepResultType
from agentflow.domain.models.workflow import StepType, WorkflowDefinition, WorkflowMemoryConfig, WorkflowStep

from conftest import ScriptedProvider, collect


def terminal(events):
    return [e for e in events if e.is_complete]


async def test_two_step_workflow_completes(make_executor, two_step_workflow):
    manager, _, executor = make_executor(ScriptedProvider(default="Plain answer."))

    events = await collect(executor.execute_workflow("hi", two_step_workflow))

    done = terminal(events)
    assert [(e.step_id, e.type) for e in done] == [
        ("plan", StepResultType.THINKING),
        ("reply", StepResultType.RESPONSE),
    ]
    assert not any(e.is_error for e in events)
    assert manager.get_state().status == WorkflowStatus.COMPLETED
    assert manager.get_state().completed_steps == {"plan", "reply"}


async def test_max_iterations_exceeded(make_executor, two_step_workflow):
    workflow = two_step_workflow.model_copy(update={"max_iterations": 1})
    manager, _, executor = make_executor(ScriptedProvider())

    events = await collect(executor.execute_workflow("hi", workflow))

    done = terminal(events)
    assert len(done) == 2
    assert done[0].step_id == "plan"
    assert done[0].type == StepResultType.THINKING
    assert done[1].type == StepResultType.ERROR
    assert done[1].content == "Maximum iterations exceeded"
    assert events[-1] is done[1]
    assert manager.get_state().status == WorkflowStatus.MAX_ITERATIONS_EXCEEDED


async def test_timeout(make_executor, two_step_workflow):
    workflow = two_step_workflow.model_copy(update={"timeout_ms": 50})
    manager, _, executor = make_executor(ScriptedProvider(delay=0.2))

    events = await collect(executor.execute_workflow("hi", workflow))

    done = terminal(events)
    assert [e.step_id for e in done] == ["plan", "reply"]
    assert done[0].type == StepResultType.THINKING
    assert done[1].type == StepResultType.ERROR
    assert done[1].content == "Workflow timeout exceeded"
    assert done[1].error == "Timeout"
    assert manager.get_state().status == WorkflowStatus.TIMED_OUT


async def test_failed_step_is_retried(make_executor):
    workflow = WorkflowDefinition(id="wf", steps=[
        WorkflowStep(id="flaky", description="Flaky", max_attempts=2),
        WorkflowStep(id="final", description="Final", max_attempts=1),
    ])
    manager, _, executor = make_executor(ScriptedProvider([RuntimeError("temporary"), "recovered", "bye"]))

    events = await collect(executor.execute_workflow("hi", workflow))

    done = terminal(events)
    assert [(e.step_id, e.type) for e in done] == [
        ("flaky", StepResultType.ERROR),
        ("flaky", StepResultType.RESPONSE),
        ("final", StepResultType.RESPONSE),
    ]
    assert manager.get_step_state("flaky").attempts == 2
    assert manager.get_state().status == WorkflowStatus.COMPLETED


async def test_exhausted_step_is_not_retried(make_executor):
    workflow = WorkflowDefinition(id="wf", steps=[WorkflowStep(id="once", description="Once", max_attempts=1)])
    manager, _, executor = make_executor(ScriptedProvider([RuntimeError("down")]))

    events = await collect(executor.execute_workflow("hi", workflow))

    assert [e.type for e in terminal(events)] == [StepResultType.ERROR]
    assert manager.get_step_state("once").attempts == 1
    assert manager.is_step_complete("once") is False


async def test_next_step_hint_routes_around_scan(make_executor):
    workflow = WorkflowDefinition(id="wf", steps=[
        WorkflowStep(id="a", description="A", next_steps=["c"], max_attempts=1),
        WorkflowStep(id="b", description="B", max_attempts=1),
        WorkflowStep(id="c", description="C", max_attempts=1),
    ])
    manager, _, executor = make_executor(ScriptedProvider())

    events = await collect(executor.execute_workflow("hi", workflow))

    assert [e.step_id for e in terminal(events)] == ["a", "c", "b"]
    assert manager.get_state().status == WorkflowStatus.COMPLETED


async def test_unknown_next_step_fails(make_executor):
    workflow = WorkflowDefinition(id="wf", steps=[
        WorkflowStep(id="a", description="A", next_steps=["missing"]),
    ])
    manager, _, executor = make_executor(ScriptedProvider())

    events = await collect(executor.execute_workflow("hi", workflow))

    assert events[-1].type == StepResultType.ERROR
    assert events[-1].content == "Step missing not found"
    assert manager.get_state().status == WorkflowStatus.FAILED


async def test_unexpected_exception_fails_workflow(make_executor, two_step_workflow, monkeypatch):
    manager, _, executor = make_executor(ScriptedProvider())

    def broken(*args, **kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(manager, "handle_step_completion", broken)

    events = await collect(executor.execute_workflow("hi", two_step_workflow))

    assert events[-1].type == StepResultType.ERROR
    assert events[-1].content == "Workflow error: kaboom"
    assert events[-1].step_id == "plan"
    assert manager.get_state().status == WorkflowStatus.FAILED


async def test_iteration_advances_per_step(make_executor, two_step_workflow):
    manager, _, executor = make_executor(ScriptedProvider())

    await collect(executor.execute_workflow("hi", two_step_workflow))

    assert manager.get_state().iteration == 2


async def test_history_is_summarized_near_the_limit(make_executor):
    workflow = WorkflowDefinition(
        id="wf",
        system_prompt="Be brief.",
        steps=[
            WorkflowStep(id="first", description="First", type=StepType.THINK, max_attempts=1),
            WorkflowStep(id="second", description="Second", max_attempts=1),
        ],
        memory_config=WorkflowMemoryConfig(enable_message_summarization=True, max_memory_tokens=40),
    )
    provider = ScriptedProvider(["First done.", "<think>hmm</think>Key facts.", "Second done."])
    manager, _, executor = make_executor(provider)

    events = await collect(executor.execute_workflow("hi", workflow))

    assert [e.content for e in terminal(events)] == ["First done.", "Second done."]
    assert provider.requests[1].system == SUMMARY_SYSTEM_PROMPT
    assert manager.get_messages()[2].content == "Key facts."
    assert manager.get_memory_metrics().summarization_count == 1


async def test_summarization_failure_is_ignored(make_executor):
    workflow = WorkflowDefinition(
        id="wf",
        steps=[
            WorkflowStep(id="first", description="First", max_attempts=1),
            WorkflowStep(id="second", description="Second", max_attempts=1),
        ],
        memory_config=WorkflowMemoryConfig(enable_message_summarization=True, max_memory_tokens=40),
    )
    provider = ScriptedProvider(["First done.", RuntimeError("no summary"), "Second done."])
    manager, _, executor = make_executor(provider)

    events = await collect(executor.execute_workflow("hi", workflow))

    assert [e.content for e in terminal(events)] == ["First done.", "Second done."]
    assert manager.get_memory_metrics().summarization_count == 0
    assert manager.get_state().status == WorkflowStatus.COMPLETED


async def test_abandoned_stream_stops_execution(make_executor, two_step_workflow):
    provider = ScriptedProvider()
    manager, _, executor = make_executor(provider)

    stream = executor.execute_workflow("hi", two_step_workflow)
    first = await stream.__anext__()
    await stream.aclose()

    assert first.content == "Starting step: Plan the answer"
    assert provider.requests == []
    assert manager.get_state().status == WorkflowStatus.RUNNING
