# Parameter validation before a tool is invoked
from typing import Any, Dict, List

import jsonschema

from agentflow.domain.exceptions import ToolArgumentError
from agentflow.domain.models.workflow import Tool


class ToolParameterValidator:
    @staticmethod
    def declared_parameters(tool: Tool) -> List[str]:
        """Parameter names in schema declaration order"""
        return list(tool.parameters.get("properties", {}).keys())

    @staticmethod
    def validate_tool_call(tool: Tool, arguments: Dict[str, Any]) -> None:
        schema = tool.parameters

        missing = [name for name in schema.get("required", []) if name not in arguments]
        if missing:
            raise ToolArgumentError(tool.name, f"missing required parameters {missing}", {"missing": missing})

        if not tool.strict:
            return

        try:
            jsonschema.validate(arguments, schema)
        except jsonschema.ValidationError as e:
            raise ToolArgumentError(tool.name, f"schema validation failed: {e.message}") from e
