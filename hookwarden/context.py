"""Pull the string a rule's pattern is matched against out of a tool call."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from hookwarden.models import RuleContext

SHELL_TOOL = "bash"

# Write-style tools carry the new file body under different keys
CONTENT_FIELDS = ("content", "newText")


def input_field(tool_input: Any, name: str) -> Optional[str]:
    """Read a string field from a tool input, or None if absent or not a string.

    >>> input_field({"path": "a.ts"}, "path")
    'a.ts'
    >>> input_field({"path": 3}, "path") is None
    True
    >>> input_field(None, "path") is None
    True
    """
    if not isinstance(tool_input, Mapping):
        return None
    value = tool_input.get(name)
    return value if isinstance(value, str) else None


def extract_context(
    context: Optional[RuleContext],
    tool_name: Optional[str],
    tool_input: Any,
    shell_tool: str = SHELL_TOOL,
) -> Optional[str]:
    """Return the matchable string for ``context``, or None when absent.

    ``command`` only ever yields a value for the shell tool, so a rule
    written for shell commands cannot fire on another tool that happens
    to take a ``command`` argument.

    >>> extract_context(RuleContext.COMMAND, "bash", {"command": "ls"})
    'ls'
    >>> extract_context(RuleContext.COMMAND, "mcp", {"command": "ls"}) is None
    True
    >>> extract_context(RuleContext.FILE_CONTENT, "edit", {"newText": "x = 1"})
    'x = 1'
    """
    if context is None:
        return None
    context = RuleContext(context)

    if context == RuleContext.TOOL_NAME:
        return tool_name
    if context == RuleContext.FILE_NAME:
        return input_field(tool_input, "path")
    if context == RuleContext.FILE_CONTENT:
        for name in CONTENT_FIELDS:
            value = input_field(tool_input, name)
            if value is not None:
                return value
        return None
    if context == RuleContext.COMMAND:
        if tool_name != shell_tool:
            return None
        return input_field(tool_input, "command")
    return None
