import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os

from agentflow.infrastructure.config import get_settings


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    service_name: str = "agentflow"
) -> None:
    """
    Configure structlog on top of stdlib logging.

    Level and format default to the engine settings, so AGENTFLOW_LOG_LEVEL
    and AGENTFLOW_LOG_FORMAT apply when nothing is passed.
    """

    settings = get_settings()
    level_name = (log_level or settings.log_level).upper()
    renderer_name = log_format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO)
    )

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        add_service_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if renderer_name == "json":
        renderer = structlog.processors.JSONRenderer(default=str)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("AGENTFLOW_ENVIRONMENT", "development")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp records with the run and workflow bound for the current run"""

    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

    bound = structlog.contextvars.get_contextvars()
    for key in ("run_id", "workflow_id"):
        # Explicit keyword fields win over the bound run context
        if bound.get(key) and not event_dict.get(key):
            event_dict[key] = bound[key]

    return event_dict


class AgentLogger:
    """Typed log events for steps, tools, transitions and memory"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def _emit(self, event: str, success: bool = True, **fields: Any):
        log = self.logger.info if success else self.logger.error
        log(event, **fields)

    def log_step_event(
        self,
        event_type: str,
        step_id: str,
        workflow_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self._emit("step_event", event_type=event_type, step_id=step_id,
                   workflow_id=workflow_id, data=data or {}, **kwargs)

    def log_tool_execution(
        self,
        tool_name: str,
        step_id: str,
        input_data: Dict[str, Any],
        output_data: Optional[Any] = None,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Tool invocations are logged at error level when they fail"""

        self._emit(
            "tool_execution",
            success=success,
            tool_name=tool_name,
            step_id=step_id,
            input_data=input_data,
            output_data=output_data,
            duration_ms=round(duration_ms, 2) if duration_ms is not None else None,
            error=error
        )

    def log_workflow_transition(
        self,
        workflow_id: str,
        from_step: Optional[str],
        to_step: Optional[str],
        reason: Optional[str] = None,
        state_summary: Optional[Dict[str, Any]] = None
    ):
        self._emit("workflow_transition", workflow_id=workflow_id, from_step=from_step,
                   to_step=to_step, reason=reason, state_summary=state_summary or {})

    def log_memory_event(self, action: str, details: Optional[Dict[str, Any]] = None):
        self._emit("memory_event", action=action, details=details or {})


agent_logger = AgentLogger("agentflow")
