# Tool invocation with argument binding & monitoring
from typing import Any, Dict, Optional, Tuple
import asyncio
import inspect
import time

from agentflow.domain.exceptions import ToolExecutionError
from agentflow.domain.models.workflow import Tool
from agentflow.domain.tool.tool_validator import ToolParameterValidator
from agentflow.infrastructure.observability.logging import agent_logger


class ToolExecutor:
    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds

    async def execute_tool(self, tool: Tool, arguments: Dict[str, Any], step_id: str = "unknown") -> Any:
        if tool.implementation is None:
            raise ToolExecutionError(tool.name, RuntimeError("Tool implementation not found"))

        # Raises ToolArgumentError before anything runs
        ToolParameterValidator.validate_tool_call(tool, arguments)

        args, kwargs = self.bind_arguments(tool, arguments)
        started = time.monotonic()

        try:
            result = tool.implementation(*args, **kwargs)
            if inspect.isawaitable(result):
                if self.timeout_seconds is not None:
                    result = await asyncio.wait_for(result, self.timeout_seconds)
                else:
                    result = await result
        except asyncio.TimeoutError as e:
            error = ToolExecutionError(tool.name, TimeoutError("Tool execution timeout"))
            self._log(tool, step_id, arguments, started, error=str(error))
            raise error from e
        except Exception as e:
            self._log(tool, step_id, arguments, started, error=str(e))
            raise ToolExecutionError(tool.name, e) from e

        self._log(tool, step_id, arguments, started, output=result)
        return result

    @staticmethod
    def bind_arguments(tool: Tool, arguments: Dict[str, Any]) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        """
        Bind parsed arguments to the implementation.

        Arguments are passed by name when every key matches a parameter of
        the implementation. Otherwise the values are passed positionally,
        ordered by the tool schema's declared properties, with undeclared
        keys after them in the order the model emitted them.
        """

        if not arguments:
            return (), {}

        try:
            signature = inspect.signature(tool.implementation)
        except (TypeError, ValueError):
            return ToolExecutor._positional(tool, arguments), {}

        accepts_var_kwargs = any(
            p.kind == inspect.Parameter.VAR_KEYWORD for p in signature.parameters.values()
        )
        named = {
            name for name, p in signature.parameters.items()
            if p.kind in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)
        }

        if accepts_var_kwargs or set(arguments) <= named:
            return (), dict(arguments)

        return ToolExecutor._positional(tool, arguments), {}

    @staticmethod
    def _positional(tool: Tool, arguments: Dict[str, Any]) -> Tuple[Any, ...]:
        # Declared schema order first, then whatever else the model sent
        declared = [name for name in ToolParameterValidator.declared_parameters(tool) if name in arguments]
        extra = [name for name in arguments if name not in declared]
        return tuple(arguments[name] for name in declared + extra)

    @staticmethod
    def _log(tool: Tool, step_id: str, arguments: Dict[str, Any], started: float,
             output: Any = None, error: Optional[str] = None):
        agent_logger.log_tool_execution(
            tool_name=tool.name,
            step_id=step_id,
            input_data=arguments,
            output_data=output,
            duration_ms=(time.monotonic() - started) * 1000,
            success=error is None,
            error=error
        )
