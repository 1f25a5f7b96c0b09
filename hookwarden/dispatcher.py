"""Lifecycle Dispatcher: route host events through guardrails and hooks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from hookwarden.activation import is_group_active
from hookwarden.automation import NON_BLOCKING_TOOLS, AutomationOutcome, run_automation
from hookwarden.config import ConfigStore
from hookwarden.context import SHELL_TOOL
from hookwarden.host import HostContext, notify
from hookwarden.models import (
    AutomationGroup,
    Decision,
    EvaluationContext,
    HookEvent,
    PolicyGroup,
    RuleGroup,
    RuleKind,
)
from hookwarden.policy import evaluate_policy, resolve_confirmation

logger = logging.getLogger(__name__)

SKIPPED_TOOLS = ("read",)

# Events whose hooks must not fire for work the user cancelled
ABORT_SKIPPED_EVENTS = frozenset({HookEvent.TOOL_RESULT, HookEvent.TURN_END, HookEvent.AGENT_END})
TOOL_EVENTS = frozenset({HookEvent.TOOL_CALL, HookEvent.TOOL_RESULT})


def describe_rule(rule: Any) -> str:
    """One ``→ event [context: pattern]: command|action`` listing line."""
    context = f" [{rule.context.value}: {rule.pattern}]" if rule.context is not None else ""
    target = getattr(rule, "command", None)
    if target is None:
        target = f"{rule.action.value} ({rule.reason})"
    return f"  → {rule.event.value}{context}: {target}"


def describe_groups(groups: list[RuleGroup], cwd: str) -> list[str]:
    lines: list[str] = []
    for group in groups:
        status = "✓" if is_group_active(group.activation, cwd) else "✗"
        lines.append(f"{status} {group.name} ({group.activation})")
        lines.extend(describe_rule(rule) for rule in group.rules)
    return lines


class LifecycleDispatcher:
    """Entry point the host calls on every lifecycle event.

    Holds one ConfigStore per rule kind. Either store may be None to run
    only guardrails or only hooks. Only ``on_tool_call`` returns anything:
    None to let the call proceed, or ``{"block": True, "reason": ...}``.
    """

    def __init__(
        self,
        guardrails_store: Optional[ConfigStore] = None,
        hooks_store: Optional[ConfigStore] = None,
        shell_tool: str = SHELL_TOOL,
        skipped_tools: tuple[str, ...] = SKIPPED_TOOLS,
        non_blocking_tools: tuple[str, ...] = NON_BLOCKING_TOOLS,
        abort: Optional[asyncio.Event] = None,
    ) -> None:
        self.guardrails_store = guardrails_store
        self.hooks_store = hooks_store
        self.shell_tool = shell_tool
        self.skipped_tools = tuple(skipped_tools)
        self.non_blocking_tools = tuple(non_blocking_tools)
        self.abort = abort

    @classmethod
    def default(cls, **kwargs: Any) -> "LifecycleDispatcher":
        """Dispatcher over both kinds using the standard config locations."""
        return cls(ConfigStore(RuleKind.GUARDRAILS), ConfigStore(RuleKind.HOOKS), **kwargs)

    def _stores(self) -> list[ConfigStore]:
        return [s for s in (self.guardrails_store, self.hooks_store) if s is not None]

    def _policy_groups(self, cwd: str) -> list[PolicyGroup]:
        return self.guardrails_store.get_config(cwd) if self.guardrails_store else []

    def _automation_groups(self, cwd: str) -> list[AutomationGroup]:
        return self.hooks_store.get_config(cwd) if self.hooks_store else []

    # --- Core dispatch ---

    def is_skipped(self, ctx: EvaluationContext) -> bool:
        """True for tool events of tools that are never evaluated."""
        return ctx.event in TOOL_EVENTS and ctx.tool_name in self.skipped_tools

    async def dispatch(self, ctx: EvaluationContext, host: HostContext) -> Optional[dict]:
        """Evaluate one event. Returns a block result for tool_call, else None."""
        if ctx.aborted and ctx.event in ABORT_SKIPPED_EVENTS:
            logger.debug("Skipping %s: aborted", ctx.event.value)
            return None
        if self.is_skipped(ctx):
            return None

        if ctx.event == HookEvent.TOOL_CALL:
            decision = await evaluate_policy(
                self._policy_groups(ctx.cwd), ctx, host, shell_tool=self.shell_tool
            )
            if decision.is_blocking:
                return decision.as_host_result()

        outcome = await self.run_hooks(ctx)
        if outcome.aborted:
            logger.info("Discarding %s hooks: aborted", ctx.event.value)
            return None

        report = outcome.notification()
        if report is not None:
            notify(host, *report)

        if ctx.event != HookEvent.TOOL_CALL:
            return None
        decision = await self._automation_decision(outcome, host)
        return decision.as_host_result()

    async def _automation_decision(self, outcome: AutomationOutcome, host: HostContext) -> Decision:
        if outcome.block_reasons:
            return Decision.block("\n".join(outcome.block_reasons))
        for reason in outcome.ask_reasons:
            resolved = await resolve_confirmation(reason, host)
            if resolved.is_blocking:
                return resolved
        return Decision.allow()

    async def run_hooks(self, ctx: EvaluationContext) -> AutomationOutcome:
        """Run only the automation path for ``ctx`` and return the raw outcome."""
        return await run_automation(
            self._automation_groups(ctx.cwd),
            ctx,
            shell_tool=self.shell_tool,
            non_blocking_tools=self.non_blocking_tools,
            abort=self.abort,
        )

    # --- Per-event handlers ---

    async def on_session_start(self, host: HostContext) -> None:
        await self.dispatch(EvaluationContext(HookEvent.SESSION_START, host.cwd), host)

    async def on_session_shutdown(self, host: HostContext) -> None:
        await self.dispatch(EvaluationContext(HookEvent.SESSION_SHUTDOWN, host.cwd), host)

    async def on_tool_call(
        self,
        host: HostContext,
        tool_name: str,
        tool_input: Optional[dict] = None,
        tool_call_id: Optional[str] = None,
    ) -> Optional[dict]:
        ctx = EvaluationContext(
            HookEvent.TOOL_CALL,
            host.cwd,
            tool_name=tool_name,
            tool_input=tool_input or {},
            tool_call_id=tool_call_id,
        )
        return await self.dispatch(ctx, host)

    async def on_tool_result(
        self,
        host: HostContext,
        tool_name: str,
        tool_input: Optional[dict] = None,
        result: Any = None,
        is_error: bool = False,
        aborted: bool = False,
        tool_call_id: Optional[str] = None,
    ) -> None:
        ctx = EvaluationContext(
            HookEvent.TOOL_RESULT,
            host.cwd,
            tool_name=tool_name,
            tool_input=tool_input or {},
            tool_call_id=tool_call_id,
            result=result,
            is_error=is_error,
            aborted=aborted,
        )
        await self.dispatch(ctx, host)

    async def on_agent_start(self, host: HostContext) -> None:
        await self.dispatch(EvaluationContext(HookEvent.AGENT_START, host.cwd), host)

    async def on_agent_end(self, host: HostContext, aborted: bool = False) -> None:
        await self.dispatch(EvaluationContext(HookEvent.AGENT_END, host.cwd, aborted=aborted), host)

    async def on_turn_start(self, host: HostContext) -> None:
        await self.dispatch(EvaluationContext(HookEvent.TURN_START, host.cwd), host)

    async def on_turn_end(self, host: HostContext, aborted: bool = False) -> None:
        await self.dispatch(EvaluationContext(HookEvent.TURN_END, host.cwd, aborted=aborted), host)

    # --- Commands ---

    def reload(self, host: HostContext) -> dict[RuleKind, int]:
        """Reload every store from disk and tell the user how many groups loaded."""
        counts: dict[RuleKind, int] = {}
        for store in self._stores():
            label = store.kind.value.capitalize()
            try:
                counts[store.kind] = store.reload(host.cwd)
            except OSError as exc:
                logger.error("Failed to reload %s: %s", store.kind.value, exc)
                notify(host, f"Failed to reload {store.kind.value}: {exc}", "error")
                continue
            notify(host, f"{label} reloaded: {counts[store.kind]} groups loaded", "info")
        return counts

    def describe_groups(self, cwd: str) -> str:
        """Listing of every configured group and rule, marking active groups."""
        sections: list[str] = []
        for store in self._stores():
            groups = store.get_config(cwd)
            if not groups:
                sections.append(f"No {store.kind.value} configured")
                continue
            sections.append("\n".join(describe_groups(groups, cwd)))
        return "\n".join(sections)
