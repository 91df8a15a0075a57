"""
Tool call extraction from free-form model output.

Models emit tool calls in several shapes. The composite parser tries a
fixed cascade of recognizers and returns the first call found:

    1. <tool_call>{"name": ..., "arguments": {...}}</tool_call>
    2. bare {"name": ..., "arguments": {...}} objects
    3. name(key: value, ...) function-call syntax

Parsing never raises. Malformed input is treated as "no tool call".
"""

from typing import Any, Dict, List, Optional, Tuple
import json
import re

import structlog

from agentflow.domain.models.workflow import ParsedToolCall

logger = structlog.get_logger(__name__)


def extract_json_object(text: str, start: int) -> Optional[Tuple[str, int]]:
    """
    Extract a balanced {...} block beginning at or after ``start``.

    Braces inside JSON strings are ignored. Returns the block and the
    index just past it, or None when no opening brace exists or the
    braces never balance.
    """

    open_index = text.find("{", start)
    if open_index == -1:
        return None

    depth = 0
    in_string = False
    index = open_index
    while index < len(text):
        char = text[index]
        if char == "\\":
            # Escaped character, inside or outside a string
            index += 2
            continue
        if char == '"':
            in_string = not in_string
        elif not in_string:
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[open_index:index + 1], index + 1
        index += 1

    return None


def _call_from_payload(payload: Any) -> Optional[ParsedToolCall]:
    if not isinstance(payload, dict):
        return None
    name = payload.get("name")
    if not name or not isinstance(name, str):
        return None
    args = payload.get("arguments") or payload.get("args") or {}
    if isinstance(args, str):
        # OpenAI-style calls carry the arguments as a JSON-encoded string
        try:
            args = json.loads(args) if args.strip() else {}
        except json.JSONDecodeError:
            logger.warning("Tool call arguments string is not JSON", name=name)
            return None
    if not isinstance(args, dict):
        return None
    return ParsedToolCall(name=name, args=args)


class XMLToolCallParser:
    """Parses <tool_call>{...}</tool_call>, tolerating a missing closing tag"""

    TAG_PATTERN = re.compile(r"<tool_call>\s*", re.IGNORECASE)

    def parse(self, content: str) -> Optional[ParsedToolCall]:
        match = self.TAG_PATTERN.search(content)
        if not match:
            return None

        extracted = extract_json_object(content, match.end())
        if not extracted:
            logger.debug("Tool call tag without a complete JSON object")
            return None
        json_string = extracted[0]

        # Payload may arrive escaped when it was embedded in a JSON string
        if '\\"' in json_string:
            try:
                json_string = json.loads(f'"{json_string}"')
            except json.JSONDecodeError:
                logger.debug("Failed to unescape tool call payload, using original")

        try:
            payload = json.loads(json_string)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse XML tool call JSON", content=json_string, error=str(e))
            return None

        return _call_from_payload(payload)


class JSONToolCallParser:
    """Parses bare {"name": "...", "arguments": {...}} objects"""

    CALL_PATTERN = re.compile(r'\{\s*"name"\s*:\s*"([^"]+)"\s*,\s*"(?:arguments|args)"\s*:\s*')

    def parse(self, content: str) -> Optional[ParsedToolCall]:
        match = self.CALL_PATTERN.search(content)
        if not match:
            return None

        args_start = match.end()
        if content[args_start:args_start + 1] != "{":
            return self._parse_whole_object(content, match.start())

        extracted = extract_json_object(content, args_start)
        if not extracted:
            logger.warning("Unbalanced brackets in JSON tool call arguments", name=match.group(1))
            return None

        try:
            args = json.loads(extracted[0])
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse JSON tool call arguments", args=extracted[0], error=str(e))
            return None

        return ParsedToolCall(name=match.group(1), args=args)

    @staticmethod
    def _parse_whole_object(content: str, start: int) -> Optional[ParsedToolCall]:
        """Fallback for calls whose arguments are not an inline object"""

        extracted = extract_json_object(content, start)
        if not extracted:
            logger.warning("Unbalanced brackets in JSON tool call")
            return None

        try:
            payload = json.loads(extracted[0])
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse JSON tool call", content=extracted[0], error=str(e))
            return None

        return _call_from_payload(payload)


class FunctionCallParser:
    """Parses name(...) calls, as JSON object bodies or loose key: value pairs"""

    CALL_PATTERN = re.compile(r"(\w+)\((.*?)\)")

    def parse(self, content: str) -> Optional[ParsedToolCall]:
        match = self.CALL_PATTERN.search(content)
        if not match:
            return None

        name, body = match.group(1), match.group(2).strip()
        if not body:
            return ParsedToolCall(name=name, args={})

        try:
            args = json.loads("{" + body + "}")
            if isinstance(args, dict):
                return ParsedToolCall(name=name, args=args)
        except json.JSONDecodeError:
            pass

        return ParsedToolCall(name=name, args=self._split_pairs(body))

    @staticmethod
    def _split_pairs(body: str) -> Dict[str, Any]:
        args: Dict[str, Any] = {}
        for pair in body.split(","):
            key, sep, value = pair.partition(":")
            key, value = key.strip().strip("'\""), value.strip().strip("'\"")
            if sep and key and value:
                args[key] = value
        return args


class ToolCallParser:
    """Runs the recognizer cascade; the first recognizer to find a call wins"""

    def __init__(self, parsers: Optional[List[Any]] = None):
        self.parsers = parsers or [
            XMLToolCallParser(),
            JSONToolCallParser(),
            FunctionCallParser(),
        ]

    def parse(self, content: str) -> Optional[ParsedToolCall]:
        """Extract at most one tool call from content"""

        if not content:
            return None

        actual_content = self._unwrap(content)

        for parser in self.parsers:
            try:
                result = parser.parse(actual_content)
            except Exception as e:
                logger.warning("Tool call parser failed", parser=parser.__class__.__name__, error=str(e))
                continue
            if result is not None:
                logger.debug("Tool call parsed", parser=parser.__class__.__name__, name=result.name)
                return result

        logger.debug("No tool call pattern found in content")
        return None

    @staticmethod
    def _unwrap(content: str) -> str:
        """Use the cleanContent field of a double-encoded payload, if present"""

        stripped = content.strip()
        if not (stripped.startswith("{") and stripped.endswith("}")):
            return content

        try:
            payload = json.loads(stripped)
        except json.JSONDecodeError:
            return content

        if isinstance(payload, dict) and isinstance(payload.get("cleanContent"), str) and payload["cleanContent"]:
            logger.debug("Extracted cleanContent from JSON wrapper")
            return payload["cleanContent"]
        return content
