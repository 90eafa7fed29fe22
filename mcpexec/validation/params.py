"""
Tool parameter validation.

Checks a call's parameters against the tool's declared parameters, in
declaration order, and reports the first violation as a readable message.
"""

from typing import Any, Mapping, Optional

from mcpexec.schema import ParamType, ToolDef


def check_type(value: Any, expected: ParamType) -> bool:
    """Return True if ``value`` has the JSON type named by ``expected``."""
    if expected == ParamType.STRING:
        return isinstance(value, str)
    if expected == ParamType.NUMBER:
        # bool is an int subclass but never a number on the wire
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == ParamType.BOOLEAN:
        return isinstance(value, bool)
    if expected == ParamType.ARRAY:
        return isinstance(value, (list, tuple))
    if expected == ParamType.OBJECT:
        return isinstance(value, dict)
    return True


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def validate_params(tool: ToolDef, params: Mapping[str, Any]) -> Optional[str]:
    """
    Validate ``params`` for ``tool``.

    Returns None when the parameters are acceptable, otherwise an error
    message naming the first offending parameter. Parameters the tool does
    not declare are ignored.
    """
    for param in tool.params:
        if param.name not in params:
            if param.required:
                return f"Missing required parameter: {param.name}"
            continue

        value = params[param.name]
        if not check_type(value, param.type):
            return f"Invalid type for parameter {param.name}: expected {param.type.value}"

        if param.enum is not None and _stringify(value) not in param.enum:
            return (
                f"Invalid value for parameter {param.name}: "
                f"must be one of {', '.join(param.enum)}"
            )

    return None
