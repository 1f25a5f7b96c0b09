"""Policy path: turn matching guardrail rules into allow/block decisions.

Evaluation walks active groups in order, then rules in order:

- ``allow`` ends evaluation; the tool call proceeds.
- ``block`` ends evaluation with ``Blocked: <reason>``.
- ``confirm`` asks the user. A refusal (or no UI to ask with) blocks;
  an approval moves on to the remaining rules, so a later ``block``
  still applies to the same call.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from hookwarden.activation import is_group_active
from hookwarden.context import SHELL_TOOL, extract_context
from hookwarden.host import HostContext, confirm, notify
from hookwarden.matcher import rule_matches
from hookwarden.models import (
    Decision,
    DecisionKind,
    EvaluationContext,
    PolicyAction,
    PolicyGroup,
    PolicyRule,
)

logger = logging.getLogger(__name__)

CONFIRM_TITLE = "Dangerous Operation Detected"
DENIED_REASON = "User denied dangerous operation"


def iter_policy_matches(
    groups: list[PolicyGroup],
    ctx: EvaluationContext,
    shell_tool: str = SHELL_TOOL,
) -> Iterator[tuple[PolicyGroup, PolicyRule, Optional[str]]]:
    """Yield (group, rule, context value) for every matching rule, in order."""
    for group in groups:
        if not is_group_active(group.activation, ctx.cwd):
            continue
        for rule in group.rules:
            if rule.event != ctx.event:
                continue
            if not rule_matches(rule, ctx.tool_name, ctx.tool_input, shell_tool=shell_tool):
                continue
            target = extract_context(rule.context, ctx.tool_name, ctx.tool_input, shell_tool=shell_tool)
            yield group, rule, target


def rule_decision(rule: PolicyRule) -> Decision:
    """Map a matched rule to its unresolved decision.

    >>> rule_decision(PolicyRule(action="block", reason="use fd")).reason
    'Blocked: use fd'
    >>> rule_decision(PolicyRule(action="confirm", reason="careful")).kind.value
    'confirm'
    """
    if rule.action == PolicyAction.BLOCK:
        return Decision.block(rule.reason)
    if rule.action == PolicyAction.CONFIRM:
        return Decision.confirm(rule.reason)
    return Decision.allow()


async def resolve_confirmation(
    reason: str,
    host: HostContext,
    target: Optional[str] = None,
) -> Decision:
    """Resolve a confirm outcome against the host's interactive surface.

    Without a UI the call is blocked and the dialog is never opened.
    """
    if not getattr(host, "has_ui", False):
        return Decision.block(f"{reason} (no UI for confirmation)")

    message = f"{reason}\n\n{target}" if target else reason
    if await confirm(host, CONFIRM_TITLE, message):
        return Decision.allow()
    return Decision.block(DENIED_REASON)


async def evaluate_policy(
    groups: list[PolicyGroup],
    ctx: EvaluationContext,
    host: HostContext,
    shell_tool: str = SHELL_TOOL,
) -> Decision:
    """Evaluate guardrails for a tool call and return the final decision."""
    for group, rule, target in iter_policy_matches(groups, ctx, shell_tool=shell_tool):
        decision = rule_decision(rule)

        if decision.kind == DecisionKind.ALLOW:
            logger.info("ALLOW [%s] %s", group.name, ctx.tool_name)
            return decision

        if decision.kind == DecisionKind.BLOCK:
            logger.info("BLOCK [%s] %s: %s", group.name, ctx.tool_name, rule.reason)
            notify(host, decision.reason, "error")
            return decision

        resolved = await resolve_confirmation(rule.reason, host, target)
        if resolved.is_blocking:
            logger.info("BLOCK [%s] %s: %s", group.name, ctx.tool_name, resolved.reason)
            return resolved
        logger.info("CONFIRMED [%s] %s", group.name, ctx.tool_name)

    return Decision.allow()
