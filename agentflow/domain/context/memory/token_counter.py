from typing import Iterable
import json
import math

from langchain_core.messages import BaseMessage


class TokenCounter:
    """Estimates token usage of conversation messages"""

    ROLE_OVERHEAD_CHARS = 4
    SEPARATOR_CHARS = 4
    FORMAT_TOKENS = 2

    def __init__(self, chars_per_token: int = 4):
        self.chars_per_token = chars_per_token

    def estimate_tokens(self, messages: Iterable[BaseMessage]) -> int:
        """Estimate tokens for a list of messages"""
        # Additive so that pruning can budget message by message
        return sum(self.estimate_message_tokens(message) for message in messages)

    def estimate_message_tokens(self, message: BaseMessage) -> int:
        """Estimate tokens for a single message"""

        total_chars = self.ROLE_OVERHEAD_CHARS + self.SEPARATOR_CHARS
        total_chars += len(self._content_text(message.content))

        for tool_call in getattr(message, "tool_calls", None) or []:
            total_chars += len(tool_call.get("id") or "")
            total_chars += len(tool_call.get("name") or "")
            total_chars += len(json.dumps(tool_call.get("args", {}), default=str))
            total_chars += 20

        return math.ceil(total_chars / self.chars_per_token) + self.FORMAT_TOKENS

    @staticmethod
    def _content_text(content) -> str:
        if isinstance(content, str):
            return content
        return json.dumps(content, default=str)
