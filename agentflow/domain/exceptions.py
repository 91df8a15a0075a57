"""
Domain exceptions for the workflow engine.

Precondition violations are raised directly to the caller. Failures that
happen while a workflow runs are converted into error step results by the
executors instead of propagating.
"""

from typing import Any, Dict, Optional


class AgentFlowError(Exception):
    """Base class for all engine errors"""


class StateNotInitializedError(AgentFlowError):
    """Raised when state is accessed before initialize_state()"""

    def __init__(self, message: str = "State not initialized"):
        super().__init__(message)


class StepNotFoundError(AgentFlowError):
    """Raised when a step id is not part of the running workflow"""

    def __init__(self, step_id: str):
        super().__init__(f"Step {step_id} not found")
        self.step_id = step_id


class UnknownStepTypeError(AgentFlowError):
    """Raised when a step type has no entry in the step config table"""

    def __init__(self, step_type: Any):
        super().__init__(f"Unknown step type: {step_type}")
        self.step_type = step_type


class ToolExecutionError(AgentFlowError):
    """
    Raised when a tool implementation fails.

    Keeps the tool name and the original exception so the step executor
    can report both.
    """

    def __init__(self, tool_name: str, original: BaseException):
        super().__init__(str(original) or original.__class__.__name__)
        self.tool_name = tool_name
        self.original = original


class ToolArgumentError(AgentFlowError):
    """Raised when parsed arguments do not fit the tool's declared parameters"""

    def __init__(self, tool_name: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Invalid arguments for tool {tool_name}: {message}")
        self.tool_name = tool_name
        self.details = details or {}
