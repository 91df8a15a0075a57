from typing import List
import structlog

from langchain_core.messages import BaseMessage

from agentflow.domain.context.content_processor import ContentProcessor
from agentflow.domain.models.workflow import TaskType
from agentflow.domain.streaming.generation import GenerationProvider, GenerationRequest, collect_generation

logger = structlog.get_logger(__name__)

SUMMARY_SYSTEM_PROMPT = "Summarize conversation history into key facts only. Be extremely concise."


class MemorySummarizer:
    """Condenses conversation history through the generation provider"""

    def __init__(self, provider: GenerationProvider, temperature: float = 0.1):
        self.provider = provider
        self.temperature = temperature
        self.content_processor = ContentProcessor()

    async def summarize(self, messages: List[BaseMessage]) -> str:
        """Summarize messages into a short list of facts"""

        history = "\n".join(
            f"{message.type}: {message.content}" for message in messages
        )
        request = GenerationRequest(
            system=SUMMARY_SYSTEM_PROMPT,
            prompt=f"Summarize this conversation:\n\n{history}",
            task_type=TaskType.REASONING,
            temperature=self.temperature,
        )

        text = await collect_generation(self.provider.generate(request))
        summary = self.content_processor.remove_think_tags(text).clean_content

        logger.debug("Conversation summarized", message_count=len(messages), summary_length=len(summary))
        return summary
