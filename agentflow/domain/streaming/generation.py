"""
Generation provider contract and stream collection.

A provider turns a GenerationRequest into either a lazy stream of
TokenChunks or a complete result. The engine never looks behind that
contract: in-process models, HTTP proxies and vendor SDKs all plug in
the same way.
"""

from typing import Any, AsyncIterator, Awaitable, Dict, List, Protocol, Union, runtime_checkable
import inspect

import structlog
from langchain_core.messages import BaseMessage
from pydantic import BaseModel, Field

from agentflow.domain.models.workflow import TaskType

logger = structlog.get_logger(__name__)


class TokenChunk(BaseModel):
    """One streamed piece of generated text"""
    token: str = ""
    is_first: bool = False
    is_last: bool = False


class GenerationResult(BaseModel):
    """A complete, non-streamed generation"""
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GenerationRequest(BaseModel):
    """Everything a provider needs to produce one step's output"""
    system: str = ""
    prompt: str = ""
    messages: List[BaseMessage] = Field(default_factory=list, description="Conversation history of the run")
    task_type: TaskType = TaskType.CHAT
    tools: List[Dict[str, Any]] = Field(default_factory=list, description="Tool schemas, no implementations")
    temperature: float = 0.1


GenerationResponse = Union[
    AsyncIterator[TokenChunk],
    Awaitable[Union[GenerationResult, str]],
    GenerationResult,
    str,
]


@runtime_checkable
class GenerationProvider(Protocol):
    """Anything that can generate text for a request"""

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        ...


class GenerationStreamCollector:
    """Concatenates a provider response into the full generated text"""

    def __init__(self):
        self.buffer = ""
        self.chunk_count = 0

    async def collect(self, response: GenerationResponse) -> str:
        """Drain a streamed or complete response"""

        if inspect.isawaitable(response):
            response = await response

        if isinstance(response, str):
            self.buffer = response
        elif isinstance(response, GenerationResult):
            self.buffer = response.text
        elif hasattr(response, "__aiter__"):
            async for chunk in response:
                self._handle_chunk(chunk)
        else:
            raise TypeError(f"Unsupported generation response: {type(response).__name__}")

        logger.debug("Generation collected", chunks=self.chunk_count, length=len(self.buffer))
        return self.buffer

    def _handle_chunk(self, chunk: TokenChunk):
        self.chunk_count += 1

        # The terminal chunk only signals the end of the stream
        if chunk.is_last:
            return

        self.buffer += chunk.token


async def collect_generation(response: GenerationResponse) -> str:
    """Collect a provider response into text"""
    return await GenerationStreamCollector().collect(response)
