from typing import Dict, List, Iterable, Optional
import structlog

from agentflow.domain.models.workflow import Tool

logger = structlog.get_logger(__name__)


class ToolRegistry:
    """Registry for managing available tools"""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self.tools: Dict[str, Tool] = {}
        self.tool_categories: Dict[str, List[str]] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: Tool):
        """Register a tool, replacing any tool with the same name"""

        if tool.name in self.tools:
            logger.debug("Replacing registered tool", tool_name=tool.name)
            self._remove_from_category(tool.name)

        self.tools[tool.name] = tool

        if tool.category not in self.tool_categories:
            self.tool_categories[tool.category] = []
        self.tool_categories[tool.category].append(tool.name)

    def register_tools(self, tools: Iterable[Tool]):
        """Register several tools"""

        for tool in tools:
            self.register_tool(tool)

    def get_tool(self, name: str) -> Optional[Tool]:
        """Get a tool by name"""

        return self.tools.get(name)

    def get_available_tools(self) -> List[Tool]:
        """Get all registered tools in registration order"""

        return list(self.tools.values())

    def resolve(self, names: Iterable[str]) -> List[Tool]:
        """Resolve tool names, skipping names that are not registered"""

        resolved = []
        for name in names:
            tool = self.tools.get(name)
            if tool is None:
                logger.warning("Step references unknown tool", tool_name=name)
                continue
            resolved.append(tool)
        return resolved

    def get_tools_by_category(self, category: str) -> List[Tool]:
        """Get tools by category"""

        tool_names = self.tool_categories.get(category, [])
        return [self.tools[name] for name in tool_names if name in self.tools]

    def _remove_from_category(self, name: str):
        for names in self.tool_categories.values():
            if name in names:
                names.remove(name)

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)
