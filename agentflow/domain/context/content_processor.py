from typing import NamedTuple
import re


class ProcessedContent(NamedTuple):
    clean_content: str
    thinking_content: str


class ContentProcessor:
    """Separates reasoning markup from visible model output"""

    THINK_PATTERN = re.compile(r"<think>([\s\S]*?)</think>", re.IGNORECASE)

    def remove_think_tags(self, content: str) -> ProcessedContent:
        """Strip <think> blocks, returning the clean text and the captured reasoning"""

        thinking = [match.strip() for match in self.THINK_PATTERN.findall(content)]
        clean = self.THINK_PATTERN.sub("", content).strip()

        return ProcessedContent(clean_content=clean, thinking_content="\n\n".join(t for t in thinking if t))
