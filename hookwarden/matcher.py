"""Rule matching: pattern AND includes AND NOT excludes.

A rule with no context applies to every event of its phase; a rule with
a context but no pattern applies to any value of that context. Patterns
are Python regular expressions searched anywhere in the context string
(anchor with ``^``/``$`` as needed). A pattern that fails to compile
simply never matches.
"""

from __future__ import annotations

import functools
import logging
import re
from typing import Any, Optional

from hookwarden.context import SHELL_TOOL, extract_context
from hookwarden.models import BaseRule

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Optional[re.Pattern]:
    """Compile a rule pattern, returning None for malformed syntax.

    >>> compile_pattern("^find").pattern
    '^find'
    >>> compile_pattern("[invalid") is None
    True
    """
    try:
        return re.compile(pattern)
    except re.error as exc:
        logger.debug("Ignoring malformed pattern %r: %s", pattern, exc)
        return None


def _search(pattern: str, value: str) -> bool:
    compiled = compile_pattern(pattern)
    return compiled is not None and compiled.search(value) is not None


def matches_value(rule: BaseRule, value: str) -> bool:
    """Apply the rule's pattern/includes/excludes predicates to ``value``.

    >>> from hookwarden.models import PolicyRule
    >>> rule = PolicyRule(context="command", pattern="^find", excludes="node_modules",
    ...                   action="block", reason="r")
    >>> matches_value(rule, "find . -name x")
    True
    >>> matches_value(rule, "find . -not -path '*/node_modules/*'")
    False
    """
    if rule.pattern is not None and not _search(rule.pattern, value):
        return False
    if rule.includes is not None and not _search(rule.includes, value):
        return False
    if rule.excludes is not None and _search(rule.excludes, value):
        return False
    return True


def rule_matches(
    rule: BaseRule,
    tool_name: Optional[str],
    tool_input: Any,
    shell_tool: str = SHELL_TOOL,
) -> bool:
    """Decide whether ``rule`` applies to a tool invocation. Never raises."""
    if rule.context is None or rule.pattern is None:
        return True

    value = extract_context(rule.context, tool_name, tool_input, shell_tool=shell_tool)
    # An empty path, body or command is as good as absent
    if not value:
        return False
    return matches_value(rule, value)
