from typing import AsyncIterator, Any, Dict, List, Optional
import json
import time
import structlog

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from agentflow.domain.context.content_processor import ContentProcessor
from agentflow.domain.context.prompt_builder import PromptBuilder
from agentflow.domain.context.state.state_manager import WorkflowStateManager
from agentflow.domain.models.agent_state import ToolResult
from agentflow.domain.models.events import StepResult, StepResultType, ToolCallRecord
from agentflow.domain.models.workflow import ParsedToolCall, Tool, WorkflowStep
from agentflow.domain.orchestration.step_configs import get_result_type, get_step_config, get_task_type_for_step
from agentflow.domain.streaming.generation import GenerationProvider, GenerationRequest, collect_generation
from agentflow.domain.tool.tool_call_parser import ToolCallParser
from agentflow.domain.tool.tool_executor import ToolExecutor
from agentflow.infrastructure.config import EngineSettings, get_settings
from agentflow.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


class StepExecutor:
    """
    Runs a single workflow step.

    Emits a THINKING progress event, generates the step output, optionally
    invokes one tool and folds the exchange into memory. The last event
    is always terminal: the step type's result, or an error. Messages
    added by a failed step are rolled back.
    """

    def __init__(
        self,
        state_manager: WorkflowStateManager,
        provider: GenerationProvider,
        tool_executor: Optional[ToolExecutor] = None,
        parser: Optional[ToolCallParser] = None,
        settings: Optional[EngineSettings] = None
    ):
        self.state_manager = state_manager
        self.provider = provider
        self.tool_executor = tool_executor or ToolExecutor()
        self.parser = parser or ToolCallParser()
        self.settings = settings or get_settings()
        self.prompt_builder = PromptBuilder()
        self.content_processor = ContentProcessor()

    async def execute_step(self, step: WorkflowStep) -> AsyncIterator[StepResult]:
        """Execute a step, yielding progress and exactly one terminal result"""

        started = time.monotonic()
        yield StepResult(
            step_id=step.id,
            type=StepResultType.THINKING,
            content=f"Starting step: {step.description}",
            is_complete=False
        )

        # Snapshot for rollback on failure
        message_count = self.state_manager.get_message_count()

        try:
            available_tools = self._resolve_tools(step)
            context = self.state_manager.get_step_context()

            system_prompt = self.prompt_builder.build_system_prompt(step, context, available_tools)
            user_prompt = self.prompt_builder.build_user_prompt(step, context)

            request = GenerationRequest(
                system=system_prompt,
                prompt=user_prompt,
                messages=self.state_manager.get_messages(),
                task_type=get_task_type_for_step(step),
                tools=[tool.to_schema() for tool in available_tools],
                temperature=self.settings.default_temperature
            )

            logger.debug(
                "Generating step output",
                step_id=step.id,
                task_type=request.task_type.value,
                tool_count=len(request.tools),
                message_count=len(request.messages)
            )

            raw_output = await collect_generation(self.provider.generate(request))
            processed = self.content_processor.remove_think_tags(raw_output)
            clean_output = processed.clean_content

            tool_call: Optional[ToolCallRecord] = None
            tool: Optional[Tool] = None
            parsed = self.parser.parse(clean_output)

            if parsed is not None:
                tool = self._match_tool(parsed, available_tools)
                if tool is None:
                    # Reported on the result even though nothing was invoked
                    tool_call = ToolCallRecord(name=parsed.name, args=parsed.args)

            if tool is not None:
                yield StepResult(
                    step_id=step.id,
                    type=StepResultType.TOOL_CALL,
                    content=f"Calling tool: {tool.name}",
                    is_complete=False,
                    tool_call=ToolCallRecord(name=tool.name, args=parsed.args)
                )

                try:
                    result = await self.tool_executor.execute_tool(tool, parsed.args, step_id=step.id)
                except Exception as e:
                    self.state_manager.rollback_messages_to_count(message_count)
                    yield StepResult.error_result(
                        step.id,
                        f"Tool execution failed: {e}",
                        str(e),
                        tool_name=tool.name
                    )
                    return

                tool_call = ToolCallRecord(name=tool.name, args=parsed.args, result=result)
                yield StepResult(
                    step_id=step.id,
                    type=StepResultType.TOOL_CALL,
                    content=f"Tool result: {self._serialize(result)}",
                    is_complete=False,
                    tool_call=tool_call
                )

            self._update_memory(step, user_prompt, clean_output, tool, tool_call)

            metadata: Dict[str, Any] = {
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
                "step_type": step.type.value,
            }
            if processed.thinking_content:
                metadata["thinking_content"] = processed.thinking_content

            agent_logger.log_step_event(
                "completed",
                step_id=step.id,
                data={"duration_ms": metadata["duration_ms"], "tool_called": tool is not None}
            )

            yield StepResult(
                step_id=step.id,
                type=get_result_type(step.type),
                content=clean_output,
                is_complete=True,
                next_step_id=step.next_steps[0] if step.next_steps else None,
                tool_call=tool_call,
                metadata=metadata
            )

        except Exception as e:
            logger.error("Step execution failed", step_id=step.id, error=str(e), exc_info=True)
            self.state_manager.rollback_messages_to_count(message_count)
            yield StepResult.error_result(
                step.id,
                f"Step execution failed: {e}",
                str(e),
                duration_ms=round((time.monotonic() - started) * 1000, 2)
            )

    def _resolve_tools(self, step: WorkflowStep) -> List[Tool]:
        if not get_step_config(step.type).allow_tools:
            return []

        registry = self.state_manager.get_tool_registry()
        if step.tools:
            return registry.resolve(step.tools)
        return registry.get_available_tools()

    @staticmethod
    def _match_tool(parsed: ParsedToolCall, available_tools: List[Tool]) -> Optional[Tool]:
        for tool in available_tools:
            if tool.name == parsed.name:
                if tool.implementation is None:
                    logger.warning("Tool has no implementation", tool_name=tool.name)
                    return None
                return tool

        log = logger.warning if available_tools else logger.debug
        log("Model called unavailable tool", tool_name=parsed.name)
        return None

    def _update_memory(
        self,
        step: WorkflowStep,
        user_prompt: str,
        clean_output: str,
        tool: Optional[Tool],
        tool_call: Optional[ToolCallRecord]
    ):
        messages: List[BaseMessage] = [
            HumanMessage(content=user_prompt),
            AIMessage(content=clean_output),
        ]

        if tool is not None and tool_call is not None:
            messages.append(AIMessage(content=json.dumps({
                "type": "tool_use",
                "name": tool_call.name,
                "input": tool_call.args,
            }, default=str)))
            messages.append(HumanMessage(content=json.dumps({
                "type": "tool_result",
                "name": tool_call.name,
                "content": tool_call.result,
            }, default=str)))

            self.state_manager.add_tool_result_to_memory(step.id, ToolResult(
                name=tool.name,
                description=tool.description,
                args=tool_call.args,
                result=self._serialize(tool_call.result)
            ))

        self.state_manager.add_messages_to_memory(
            messages,
            skip_pruning=self.state_manager.is_last_step(step.id)
        )

    @staticmethod
    def _serialize(value: Any) -> str:
        return json.dumps(value, default=str)
