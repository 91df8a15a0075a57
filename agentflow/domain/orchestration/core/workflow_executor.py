from typing import AsyncIterator, Iterable, Optional
import structlog

from agentflow.domain.context.memory.summarizer import MemorySummarizer
from agentflow.domain.context.state.state_manager import HEAD_MESSAGE_COUNT, WorkflowStateManager
from agentflow.domain.models.agent_state import WorkflowStatus
from agentflow.domain.models.events import StepResult, StepResultType
from agentflow.domain.models.workflow import Tool, WorkflowDefinition, WorkflowStep
from agentflow.domain.orchestration.core.step_executor import StepExecutor
from agentflow.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


class WorkflowExecutor:
    """
    Drives a workflow's steps to a terminal state.

    The run ends when no step is left (completed), the wall-clock budget
    is spent (timed out), the iteration budget is spent or an unexpected
    exception escapes. Every terminal path except completion ends the
    stream with one error event.
    """

    def __init__(
        self,
        state_manager: WorkflowStateManager,
        step_executor: StepExecutor,
        summarizer: Optional[MemorySummarizer] = None
    ):
        self.state_manager = state_manager
        self.step_executor = step_executor
        self.summarizer = summarizer or MemorySummarizer(
            step_executor.provider,
            temperature=step_executor.settings.default_temperature
        )

    async def execute_workflow(
        self,
        user_prompt: str,
        workflow: WorkflowDefinition,
        tools: Optional[Iterable[Tool]] = None
    ) -> AsyncIterator[StepResult]:
        """Run the workflow, yielding every step event in execution order"""

        self.state_manager.initialize_state(user_prompt, workflow, tools)
        logger.info("Starting workflow", workflow_id=workflow.id, step_count=len(workflow.steps))
        current_step_id = "workflow"

        try:
            step = self.state_manager.find_next_step()

            while step is not None:
                current_step_id = step.id

                if self.state_manager.is_timeout():
                    logger.warning(
                        "Workflow timed out",
                        workflow_id=workflow.id,
                        step_id=step.id,
                        timeout_ms=workflow.timeout_ms
                    )
                    self.state_manager.set_status(WorkflowStatus.TIMED_OUT)
                    yield StepResult.error_result(step.id, "Workflow timeout exceeded", "Timeout")
                    return

                self.state_manager.record_attempt(step.id)
                self.state_manager.log_step_execution(step)
                await self._summarize_if_needed(step)

                completed = False
                next_step_id: Optional[str] = None
                content: Optional[str] = None

                async for result in self.step_executor.execute_step(step):
                    yield result
                    if result.is_complete:
                        completed = result.type != StepResultType.ERROR
                        next_step_id = result.next_step_id
                        content = result.content

                self.state_manager.handle_step_completion(step.id, completed, content)

                next_step = self._select_next_step(step, next_step_id)
                if next_step is None and next_step_id is not None and workflow.get_step(next_step_id) is None:
                    self.state_manager.set_status(WorkflowStatus.FAILED)
                    yield StepResult.error_result(step.id, f"Step {next_step_id} not found", "Step not found")
                    return

                if next_step is None:
                    break

                if self.state_manager.is_max_iterations_reached():
                    logger.warning(
                        "Workflow reached max iterations",
                        workflow_id=workflow.id,
                        iteration=self.state_manager.get_state().iteration,
                        max_iterations=workflow.max_iterations
                    )
                    self.state_manager.set_status(WorkflowStatus.MAX_ITERATIONS_EXCEEDED)
                    yield StepResult.error_result(step.id, "Maximum iterations exceeded", "Max iterations")
                    return

                agent_logger.log_workflow_transition(
                    workflow_id=workflow.id,
                    from_step=step.id,
                    to_step=next_step.id,
                    reason="hint" if next_step.id == next_step_id else "scan",
                    state_summary=self.state_manager.get_summary()
                )
                self.state_manager.advance_iteration()
                step = next_step

            self.state_manager.set_status(WorkflowStatus.COMPLETED)
            logger.info("Workflow completed", **self.state_manager.get_summary())

        except Exception as e:
            logger.error("Workflow execution failed", workflow_id=workflow.id, error=str(e), exc_info=True)
            self.state_manager.set_status(WorkflowStatus.FAILED)
            yield StepResult.error_result(current_step_id, f"Workflow error: {e}", str(e))

    def _select_next_step(self, step: WorkflowStep, next_step_id: Optional[str]) -> Optional[WorkflowStep]:
        """The hinted step if it can still run, otherwise the first eligible step"""

        if next_step_id is not None:
            hinted = self.state_manager.get_state().workflow.get_step(next_step_id)
            if hinted is None:
                logger.warning("Step hinted unknown next step", step_id=step.id, next_step_id=next_step_id)
                return None
            if self.state_manager.is_step_eligible(hinted.id):
                return hinted
            logger.debug("Hinted step not eligible, scanning", step_id=step.id, next_step_id=next_step_id)

        return self.state_manager.find_next_step()

    async def _summarize_if_needed(self, step: WorkflowStep):
        state = self.state_manager.get_state()
        if not state.memory_config.enable_message_summarization:
            return
        if not self.state_manager.is_context_near_limit():
            return

        history = self.state_manager.get_messages()[HEAD_MESSAGE_COUNT:]
        if not history:
            return

        try:
            summary = await self.summarizer.summarize(history)
        except Exception as e:
            logger.warning("Memory summarization failed", step_id=step.id, error=str(e))
            return

        if summary:
            self.state_manager.apply_summary(summary)
