import structlog

from agentflow.infrastructure.observability.logging import AgentLogger, add_service_context, setup_logging


def test_service_context_copies_run_ids():
    with structlog.contextvars.bound_contextvars(run_id="run-1", workflow_id="wf-1"):
        event = add_service_context(None, "info", {"event": "step_event"})

    assert event["run_id"] == "run-1"
    assert event["workflow_id"] == "wf-1"
    assert "timestamp" in event


def test_service_context_without_run():
    structlog.contextvars.clear_contextvars()

    event = add_service_context(None, "info", {"event": "x", "timestamp": "t"})

    assert event == {"event": "x", "timestamp": "t"}


def test_agent_logger_helpers_emit_events():
    setup_logging(log_level="DEBUG", log_format="console", service_name="agentflow-test")
    structlog.contextvars.clear_contextvars()

    with structlog.testing.capture_logs() as logs:
        logger = AgentLogger("agentflow.test")
        logger.log_step_event("executing", step_id="a", workflow_id="wf")
        logger.log_tool_execution("add", "a", {"a": 1}, success=False, error="boom")
        logger.log_memory_event("pruned", {"removed_messages": 2})

    assert [entry["event"] for entry in logs] == ["step_event", "tool_execution", "memory_event"]
    assert logs[1]["log_level"] == "error"
    assert logs[2]["details"] == {"removed_messages": 2}
