from typing import Dict, Any, Iterable, List, Optional
from datetime import datetime, timezone
import structlog

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from agentflow.domain.context.memory.token_counter import TokenCounter
from agentflow.domain.context.prompt_builder import format_tool_results
from agentflow.domain.exceptions import StateNotInitializedError, StepNotFoundError
from agentflow.domain.models.agent_state import (
    AgentMemory, ExecutionState, StepContext, StepState,
    ToolResult, WorkflowMemoryMetrics, WorkflowStatus
)
from agentflow.domain.models.workflow import Tool, WorkflowDefinition, WorkflowStep
from agentflow.domain.tool.tool_registry import ToolRegistry
from agentflow.infrastructure.config import EngineSettings, get_settings
from agentflow.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI agent. Think step-by-step. When a tool is needed, "
    "call it with minimal arguments. Be concise when replying to the user."
)

# System message and seed user prompt
HEAD_MESSAGE_COUNT = 2


class WorkflowStateManager:
    """
    Single source of truth for one workflow run.

    Holds exactly one ExecutionState. Running two workflows through the
    same manager at once interleaves their memory, so every concurrent run
    needs its own manager.
    """

    def __init__(self, token_counter: Optional[TokenCounter] = None, settings: Optional[EngineSettings] = None):
        self.settings = settings or get_settings()
        self.token_counter = token_counter or TokenCounter(self.settings.chars_per_token)
        self.tool_registry = ToolRegistry()
        self.state: Optional[ExecutionState] = None

    def initialize_state(
        self,
        user_prompt: str,
        workflow: WorkflowDefinition,
        tools: Optional[Iterable[Tool]] = None
    ) -> ExecutionState:
        """Create the execution state for a new run"""

        self.tool_registry = ToolRegistry(tools)
        self.tool_registry.register_tools(workflow.tools)

        memory = AgentMemory(
            user_prompt=user_prompt,
            messages=[
                SystemMessage(content=workflow.system_prompt or DEFAULT_SYSTEM_PROMPT),
                HumanMessage(content=user_prompt),
            ],
            steps={
                step.id: StepState(
                    id=step.id,
                    description=step.description,
                    max_attempts=step.max_attempts,
                )
                for step in workflow.steps
            },
            context=dict(workflow.context),
        )

        memory_config = workflow.memory_config
        metrics = WorkflowMemoryMetrics(
            max_token_limit=memory_config.max_memory_tokens or self.settings.max_token_limit,
            warning_threshold=memory_config.warning_threshold or self.settings.warning_threshold,
        )

        self.state = ExecutionState(
            workflow=workflow,
            iteration=1,
            max_iterations=workflow.max_iterations,
            timeout_ms=workflow.timeout_ms,
            memory=memory,
            memory_config=memory_config,
            memory_metrics=metrics,
        )
        self._update_token_count()

        logger.info(
            "Workflow state initialized",
            workflow_id=workflow.id,
            step_count=len(workflow.steps),
            tool_count=len(self.tool_registry),
            max_iterations=self.state.max_iterations,
            timeout_ms=self.state.timeout_ms,
            estimated_tokens=self.state.current_token_count
        )
        return self.state

    def _require_state(self) -> ExecutionState:
        if self.state is None:
            raise StateNotInitializedError()
        return self.state

    def get_state(self) -> ExecutionState:
        """Get the active execution state"""
        return self._require_state()

    def get_tool_registry(self) -> ToolRegistry:
        """Tools available to this run"""
        self._require_state()
        return self.tool_registry

    # Memory

    def add_messages_to_memory(self, messages: List[BaseMessage], skip_pruning: bool = False):
        """Append messages, then check memory pressure unless skip_pruning is set"""

        state = self._require_state()
        logger.debug("Adding messages to memory", count=len(messages), skip_pruning=skip_pruning)

        state.memory.messages.extend(messages)
        self._update_token_count()

        # Truncating history is pointless for the final step
        if not skip_pruning:
            self._check_memory_pressure()

    def get_messages(self) -> List[BaseMessage]:
        """Get a copy of the message history"""
        return list(self._require_state().memory.messages)

    def get_message_count(self) -> int:
        return len(self._require_state().memory.messages)

    def rollback_messages_to_count(self, target_count: int):
        """Drop messages added after the history had target_count entries"""

        state = self._require_state()
        target_count = max(target_count, HEAD_MESSAGE_COUNT)
        current_count = len(state.memory.messages)
        if current_count <= target_count:
            return

        del state.memory.messages[target_count:]
        self._update_token_count()

        logger.debug(
            "Rolled back messages",
            from_count=current_count,
            to_count=target_count,
            removed=current_count - target_count,
            new_token_count=state.current_token_count
        )

    def add_tool_result_to_memory(self, step_id: str, tool_result: ToolResult) -> bool:
        """Store a tool result under step_<id> when tool-result storage is enabled"""

        state = self._require_state()
        if not state.memory_config.enable_tool_result_storage:
            return False

        logger.debug("Adding tool result to memory", step_id=step_id, tool_name=tool_result.name)
        state.memory.tool_results["step_" + step_id] = tool_result
        self._update_token_count()
        return True

    def get_tool_results(self) -> Dict[str, ToolResult]:
        return self._require_state().memory.tool_results

    def get_workflow_prompts(self) -> List[BaseMessage]:
        """System prompt with stored tool results, followed by the user's request"""

        state = self._require_state()
        system_prompt = state.workflow.system_prompt or DEFAULT_SYSTEM_PROMPT
        tool_results = format_tool_results(list(state.memory.tool_results.values()))
        if tool_results:
            system_prompt = f"{system_prompt}\n{tool_results}"

        return [
            SystemMessage(content=system_prompt),
            HumanMessage(content=state.memory.user_prompt),
        ]

    def apply_summary(self, summary: str):
        """Replace everything after the head messages with a single summary"""

        state = self._require_state()
        original_count = len(state.memory.messages)
        original_tokens = state.current_token_count

        state.memory.messages[HEAD_MESSAGE_COUNT:] = [AIMessage(content=summary)]
        state.memory_metrics.summarization_count += 1
        state.memory_metrics.last_summarization_time = datetime.now(timezone.utc)
        self._update_token_count()

        agent_logger.log_memory_event("summarized", {
            "original_message_count": original_count,
            "new_message_count": len(state.memory.messages),
            "original_tokens": original_tokens,
            "new_tokens": state.current_token_count,
            "summarization_count": state.memory_metrics.summarization_count,
        })

    def prune_message_history(self, target_token_count: int) -> bool:
        """
        Evict the oldest non-head messages until the estimate fits the target.

        The system and seed user messages always survive. The newest messages
        are kept, in chronological order, as long as they fit.
        Returns True when anything was removed.
        """

        state = self._require_state()
        if state.current_token_count <= target_token_count:
            return False

        messages = state.memory.messages
        head, rest = messages[:HEAD_MESSAGE_COUNT], messages[HEAD_MESSAGE_COUNT:]

        used_tokens = self.token_counter.estimate_tokens(head)
        used_tokens += self.token_counter.estimate_tokens(self._tool_results_instruction())

        kept: List[BaseMessage] = []
        for message in reversed(rest):
            message_tokens = self.token_counter.estimate_message_tokens(message)
            if used_tokens + message_tokens >= target_token_count:
                break
            kept.append(message)
            used_tokens += message_tokens
        kept.reverse()

        removed = len(rest) - len(kept)
        if removed == 0:
            return False

        original_tokens = state.current_token_count
        state.memory.messages = head + kept
        state.memory_metrics.prune_count += 1
        state.memory_metrics.last_prune_time = datetime.now(timezone.utc)
        self._update_token_count()

        agent_logger.log_memory_event("pruned", {
            "original_message_count": len(messages),
            "new_message_count": len(state.memory.messages),
            "removed_messages": removed,
            "original_tokens": original_tokens,
            "new_tokens": state.current_token_count,
            "target_tokens": target_token_count,
            "prune_count": state.memory_metrics.prune_count,
        })
        return True

    def is_context_near_limit(self) -> bool:
        if self.state is None:
            return False
        metrics = self.state.memory_metrics
        return metrics.estimated_tokens > metrics.max_token_limit * metrics.warning_threshold

    def get_current_token_count(self) -> int:
        return self._require_state().current_token_count

    def get_memory_metrics(self) -> Optional[WorkflowMemoryMetrics]:
        return self.state.memory_metrics if self.state else None

    def _tool_results_instruction(self) -> List[BaseMessage]:
        state = self._require_state()
        if not state.memory_config.enable_tool_result_storage or not state.memory.tool_results:
            return []
        return [SystemMessage(
            content="Refer to the following tool results when generating your response:\n"
            + format_tool_results(list(state.memory.tool_results.values()))
        )]

    def _update_token_count(self):
        state = self._require_state()

        token_count = self.token_counter.estimate_tokens(state.memory.messages)
        token_count += self.token_counter.estimate_tokens(self._tool_results_instruction())

        state.current_token_count = token_count
        state.token_count_last_updated = datetime.now(timezone.utc)
        state.memory_metrics.estimated_tokens = token_count
        state.memory_metrics.message_count = len(state.memory.messages)
        self._update_memory_metrics()

        logger.debug(
            "Token count updated",
            token_count=token_count,
            message_count=len(state.memory.messages),
            utilization_percent=round(token_count / state.memory_metrics.max_token_limit * 100, 1)
        )

    def _update_memory_metrics(self):
        state = self._require_state()
        sizes = [len(step.result) for step in state.memory.steps.values() if step.result]
        state.memory_metrics.avg_step_result_size = sum(sizes) / len(sizes) if sizes else 0.0

    def _check_memory_pressure(self):
        state = self._require_state()
        if not self.is_context_near_limit():
            return

        metrics = state.memory_metrics
        logger.warning(
            "Approaching context limit",
            current_tokens=metrics.estimated_tokens,
            max_tokens=metrics.max_token_limit,
            utilization_percent=round(metrics.estimated_tokens / metrics.max_token_limit * 100, 1),
            message_count=metrics.message_count,
            pruning_enabled=state.memory_config.enable_message_pruning,
            summarization_enabled=state.memory_config.enable_message_summarization
        )

        if state.memory_config.enable_message_pruning:
            self.prune_message_history(int(metrics.max_token_limit * self.settings.prune_target_ratio))

    # Steps

    def get_step_state(self, step_id: str) -> StepState:
        state = self._require_state()
        if step_id not in state.memory.steps:
            raise StepNotFoundError(step_id)
        return state.memory.steps[step_id]

    def is_step_eligible(self, step_id: str) -> bool:
        """A step may run while it is incomplete and has attempts left"""
        state = self._require_state()
        if step_id in state.completed_steps:
            return False
        return self.get_step_state(step_id).is_eligible

    def find_next_step(self) -> Optional[WorkflowStep]:
        """First eligible step in declaration order"""

        state = self._require_state()
        logger.debug(
            "Finding next step",
            iteration=state.iteration,
            completed_steps=sorted(state.completed_steps)
        )

        for step in state.workflow.steps:
            if self.is_step_eligible(step.id):
                return step

            step_state = state.memory.steps[step.id]
            if not step_state.complete and step_state.attempts >= step_state.max_attempts:
                logger.debug(
                    "Step has exceeded max attempts",
                    step_id=step.id,
                    attempts=step_state.attempts,
                    max_attempts=step_state.max_attempts
                )
        return None

    def record_attempt(self, step_id: str) -> int:
        """Count one execution attempt of a step"""
        step_state = self.get_step_state(step_id)
        step_state.attempts += 1
        return step_state.attempts

    def handle_step_completion(self, step_id: str, complete: bool, result: Optional[str] = None):
        """Record a step outcome; only complete steps are marked done"""

        state = self._require_state()
        step_state = self.get_step_state(step_id)
        step_state.complete = complete
        if result is not None:
            step_state.result = result

        if complete:
            state.completed_steps.add(step_id)
        self._update_memory_metrics()

    def is_step_complete(self, step_id: str) -> bool:
        return self.get_step_state(step_id).complete

    def is_last_step(self, step_id: str) -> bool:
        """True when no later step is still incomplete and retry-eligible"""

        state = self._require_state()
        step_ids = [step.id for step in state.workflow.steps]
        if step_id not in step_ids:
            raise StepNotFoundError(step_id)

        for future_id in step_ids[step_ids.index(step_id) + 1:]:
            if state.memory.steps[future_id].is_eligible:
                return False
        return True

    def get_step_context(self) -> StepContext:
        """Assemble the prompt context for the next step"""

        state = self._require_state()
        previous_results = {
            step.id: state.memory.steps[step.id].result
            for step in state.workflow.steps
            if step.id in state.completed_steps and state.memory.steps[step.id].result
        }
        tool_results = []
        if state.memory_config.enable_tool_result_storage:
            tool_results = list(state.memory.tool_results.values())

        return StepContext(
            workflow_id=state.workflow.id,
            workflow_name=state.workflow.name,
            system_prompt=state.workflow.system_prompt,
            user_prompt=state.memory.user_prompt,
            shared=state.memory.context,
            previous_results=previous_results,
            tool_results=tool_results,
            iteration=state.iteration,
        )

    # Run bounds

    def is_timeout(self, state: Optional[ExecutionState] = None) -> bool:
        state = state or self._require_state()
        return state.elapsed_ms() > state.timeout_ms

    def is_max_iterations_reached(self, state: Optional[ExecutionState] = None) -> bool:
        state = state or self._require_state()
        return state.iteration >= state.max_iterations

    def advance_iteration(self) -> int:
        state = self._require_state()
        state.iteration += 1
        return state.iteration

    def set_status(self, status: WorkflowStatus):
        self._require_state().status = status

    def log_step_execution(self, step: WorkflowStep):
        state = self._require_state()
        agent_logger.log_step_event(
            "executing",
            step_id=step.id,
            workflow_id=state.workflow.id,
            data={
                "step_type": step.type.value,
                "iteration": state.iteration,
                "attempt": state.memory.steps[step.id].attempts,
                "message_count": len(state.memory.messages),
            }
        )

    def get_summary(self) -> Dict[str, Any]:
        return self._require_state().get_state_summary()
