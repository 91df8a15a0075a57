from typing import Dict, Any, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum


class StepResultType(str, Enum):
    """Step result event types"""
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    DECISION = "decision"
    RESPONSE = "response"
    ERROR = "error"


class ToolCallRecord(BaseModel):
    """A parsed tool call, with its result once invoked"""
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None


class StepResult(BaseModel):
    """Progress or terminal event emitted while a workflow runs"""
    step_id: str
    type: StepResultType
    content: str = ""
    is_complete: bool = False
    next_step_id: Optional[str] = None
    tool_call: Optional[ToolCallRecord] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_error(self) -> bool:
        return self.type == StepResultType.ERROR

    @classmethod
    def error_result(cls, step_id: str, content: str, error: str, **metadata: Any) -> "StepResult":
        """Create a terminal error event"""
        return cls(
            step_id=step_id,
            type=StepResultType.ERROR,
            content=content,
            is_complete=True,
            error=error,
            metadata=metadata
        )
