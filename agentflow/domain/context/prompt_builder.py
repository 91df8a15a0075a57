from typing import Any, List
import json

from agentflow.domain.models.agent_state import StepContext, ToolResult
from agentflow.domain.models.workflow import Tool, WorkflowStep
from agentflow.domain.orchestration.step_configs import get_step_config


THINK_TAGS_NOTE = (
    "IMPORTANT: You can use <think></think> tags to show your internal reasoning. "
    "Content within these tags will be visible in this step but filtered out before "
    "being passed to subsequent steps."
)


def format_tool_results(tool_results: List[ToolResult]) -> str:
    """Render stored tool results as a prompt block"""
    if not tool_results:
        return ""
    return "**Tool Results:**\n" + "\n".join(
        f"{tool_result.name}: {tool_result.description}\n{tool_result.result}"
        for tool_result in tool_results
    )


class PromptBuilder:
    """Renders the system and user prompts for a step"""

    def build_system_prompt(self, step: WorkflowStep, context: StepContext, available_tools: List[Tool]) -> str:
        """Build the system prompt for a step"""

        config = get_step_config(step.type)
        sections = []

        if context.system_prompt:
            sections.append(context.system_prompt)

        sections.append(
            "You are an AI agent executing workflows step by step.\n\n"
            f"Current Workflow: {context.workflow_name or context.workflow_id}\n"
            f"Current Step: {step.id} ({step.type.value})\n"
            f"Step Objective: {step.description}"
        )

        if available_tools:
            sections.append("Available Tools: " + ", ".join(tool.name for tool in available_tools))

        sections.append(THINK_TAGS_NOTE)

        tool_results = format_tool_results(context.tool_results)
        if tool_results:
            sections.append(tool_results)

        sections.append(config.system_prompt_suffix)

        return "\n\n".join(sections)

    def build_user_prompt(self, step: WorkflowStep, context: StepContext) -> str:
        """Build the user prompt for a step"""

        sections = []

        if context.previous_results:
            sections.append("Previous work completed:\n" + "\n".join(
                f"- {step_id}: {result}" for step_id, result in context.previous_results.items()
            ))

        if context.shared:
            sections.append("Context:\n" + "\n".join(
                f"- {key}: {self._format_value(value)}" for key, value in context.shared.items()
            ))

        if context.user_prompt:
            sections.append(f'User\'s original request: "{context.user_prompt}"')

        if step.prompt:
            sections.append(step.prompt)

        sections.append(f"Please complete the current step: {step.id}")

        return "\n\n".join(sections)

    @staticmethod
    def _format_value(value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str)
