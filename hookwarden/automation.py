"""Automation path: run hook commands for matching rules.

Each matching rule's command is run through ``sh -c`` with a JSON
description of the event on stdin. Results are interpreted the way
Claude Code command hooks are:

  exit 0    success; stdout may be a JSON object refining the outcome
            (``continue``, ``decision``, ``reason``, ``systemMessage``,
            ``suppressOutput`` and ``hookSpecificOutput`` with
            ``permissionDecision`` / ``additionalContext``)
  exit 2    blocking error: stderr becomes the block reason, but only for
            tool_call and never for the edit/write tools
  other     non-blocking error: reported, the action proceeds

A command that outlives its timeout is killed (with its whole process
group) and reported as a non-blocking failure.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import signal
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from hookwarden.activation import is_group_active
from hookwarden.context import SHELL_TOOL, input_field
from hookwarden.matcher import rule_matches
from hookwarden.models import (
    AutomationGroup,
    AutomationRule,
    Decision,
    EvaluationContext,
    HookEvent,
)

logger = logging.getLogger(__name__)

BLOCKING_EXIT_CODE = 2
NON_BLOCKING_TOOLS = ("edit", "write")

# Claude Code names for the events it shares with the host
CLAUDE_EVENT_NAMES = {
    HookEvent.SESSION_START: "SessionStart",
    HookEvent.SESSION_SHUTDOWN: "SessionEnd",
    HookEvent.TOOL_CALL: "PreToolUse",
    HookEvent.TOOL_RESULT: "PostToolUse",
    HookEvent.AGENT_END: "Stop",
    HookEvent.TURN_START: "UserPromptSubmit",
}

_VARIABLE_RE = re.compile(r"\$\{(file|tool|cwd)\}")
_KILL_GRACE_SECONDS = 1.0


# --- Variable substitution ---


def substitute_variables(command: str, variables: Mapping[str, Optional[str]]) -> str:
    """Replace ``${file}``, ``${tool}`` and ``${cwd}`` in a single pass.

    Unavailable values become empty strings. Other ``${...}`` forms are
    left alone for the shell to expand.

    >>> substitute_variables("${file} and ${file}", {"file": "a.ts", "cwd": "/x"})
    'a.ts and a.ts'
    >>> substitute_variables("tsc -p ${cwd} ${tool}", {"cwd": "/x"})
    'tsc -p /x '
    >>> substitute_variables("echo ${HOME}", {})
    'echo ${HOME}'
    """
    return _VARIABLE_RE.sub(lambda m: variables.get(m.group(1)) or "", command)


def event_variables(ctx: EvaluationContext) -> dict[str, Optional[str]]:
    return {
        "file": input_field(ctx.tool_input, "path"),
        "tool": ctx.tool_name,
        "cwd": ctx.cwd,
    }


# --- stdin / stdout contracts ---


def build_hook_input(ctx: EvaluationContext) -> dict:
    """Describe the event for a hook command's stdin.

    >>> ctx = EvaluationContext(event=HookEvent.SESSION_START, cwd="/repo")
    >>> build_hook_input(ctx)
    {'cwd': '/repo', 'hook_event_name': 'SessionStart', 'event': 'session_start'}
    """
    payload: dict[str, Any] = {
        "cwd": ctx.cwd,
        "hook_event_name": CLAUDE_EVENT_NAMES.get(ctx.event, ctx.event.value),
        "event": ctx.event.value,
    }
    if ctx.tool_name is not None:
        payload["tool_name"] = ctx.tool_name
        payload["tool_input"] = ctx.tool_input
        if ctx.tool_call_id is not None:
            payload["tool_call_id"] = ctx.tool_call_id
    if ctx.event == HookEvent.TOOL_RESULT:
        payload["tool_response"] = ctx.result
        payload["is_error"] = bool(ctx.is_error)
    return payload


def parse_hook_output(stdout: str) -> Optional[dict]:
    """Parse a hook's stdout as a JSON object, or None if it is anything else.

    >>> parse_hook_output('  {"decision": "block"}  ')
    {'decision': 'block'}
    >>> parse_hook_output("plain text") is None
    True
    >>> parse_hook_output("[]") is None
    True
    """
    text = stdout.strip()
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


# --- Process execution ---


@dataclass
class CommandResult:
    code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    aborted: bool = False
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    @property
    def output(self) -> str:
        """stdout and stderr joined, as shown in failure notifications."""
        return "\n".join(p.strip() for p in (self.stdout, self.stderr) if p.strip())


def _kill(proc: asyncio.subprocess.Process) -> None:
    # Signal the whole session: sh may have exited while a background child
    # still holds the pipes open
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError):
        pass


async def run_command(
    command: str,
    cwd: str | Path,
    timeout_ms: float,
    stdin: Optional[str] = None,
    abort: Optional[asyncio.Event] = None,
) -> CommandResult:
    """Run ``command`` via ``sh -c`` under a wall-clock deadline.

    A ``timeout_ms`` of 0 disables the deadline. Setting ``abort`` kills
    the command early. The process is always reaped before returning,
    including when the caller itself is cancelled.
    """
    start = time.monotonic()

    def elapsed() -> float:
        return (time.monotonic() - start) * 1000

    try:
        proc = await asyncio.create_subprocess_exec(
            "sh", "-c", command,
            cwd=str(cwd),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        logger.warning("Could not start hook command %r: %s", command, exc)
        return CommandResult(code=None, error=str(exc), elapsed_ms=elapsed())

    data = stdin.encode("utf-8") if stdin is not None else None
    communicate = asyncio.ensure_future(proc.communicate(data))
    waiters: set[asyncio.Future] = {communicate}
    abort_waiter = None
    if abort is not None:
        abort_waiter = asyncio.ensure_future(abort.wait())
        waiters.add(abort_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=timeout_ms / 1000 if timeout_ms else None,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if communicate in done:
            stdout, stderr = communicate.result()
            return CommandResult(
                code=proc.returncode,
                stdout=stdout.decode("utf-8", errors="replace"),
                stderr=stderr.decode("utf-8", errors="replace"),
                elapsed_ms=elapsed(),
            )
        aborted = abort_waiter is not None and abort_waiter in done
        if aborted:
            logger.info("Hook command aborted: %s", command)
        else:
            logger.warning("Hook command timed out after %sms: %s", timeout_ms, command)
        return CommandResult(code=None, timed_out=not aborted, aborted=aborted, elapsed_ms=elapsed())
    finally:
        if abort_waiter is not None:
            abort_waiter.cancel()
        if not communicate.done():
            _kill(proc)
            try:
                # Partial output is discarded; this only reaps the process
                await asyncio.wait_for(communicate, timeout=_KILL_GRACE_SECONDS)
            except (asyncio.TimeoutError, asyncio.CancelledError, OSError):
                communicate.cancel()


# --- Interpretation ---


@dataclass
class HookRun:
    """One executed automation rule and what its result means."""

    group: str
    rule: AutomationRule
    command: str
    result: CommandResult
    success: bool
    block_reason: Optional[str] = None
    ask_reason: Optional[str] = None
    warning: Optional[str] = None
    additional_context: Optional[str] = None
    system_message: Optional[str] = None
    suppress_output: bool = False
    structured: bool = False

    @property
    def decision(self) -> Decision:
        if self.block_reason is not None:
            return Decision.block(self.block_reason)
        return Decision.run_command(self.result)

    def notification(self) -> Optional[tuple[str, str]]:
        """(message, severity) to surface for this run, or None."""
        if not self.rule.notify:
            return None
        label = f"{self.group}: {self.rule.command}"
        if self.block_reason is not None:
            return f"✗ {label}\n{self.block_reason}", "error"
        if not self.success:
            if self.result.timed_out:
                detail = f"timed out after {self.rule.timeout_ms}ms"
            else:
                detail = self.result.error or self.result.output
            return f"✗ {label}\n{detail}".rstrip(), "error"
        if self.warning:
            return f"⚠ {label}\n{self.warning}", "warning"
        if self.structured or self.suppress_output:
            return None
        stdout = self.result.stdout.strip()
        if not stdout:
            return None
        return f"✓ {label}\n{stdout}", "info"


def interpret_result(
    group: str,
    rule: AutomationRule,
    command: str,
    result: CommandResult,
    ctx: EvaluationContext,
    non_blocking_tools: tuple[str, ...] = NON_BLOCKING_TOOLS,
) -> HookRun:
    """Classify a finished command according to the exit code contract."""
    blockable = ctx.event == HookEvent.TOOL_CALL
    run = HookRun(group=group, rule=rule, command=command, result=result, success=False)

    if result.code is None:
        return run

    if result.code == BLOCKING_EXIT_CODE:
        if blockable and ctx.tool_name not in non_blocking_tools:
            run.block_reason = result.stderr.strip() or result.stdout.strip() or f"{rule.command} exited with code 2"
        return run

    if result.code != 0:
        return run

    run.success = True
    output = parse_hook_output(result.stdout)
    if output is None:
        return run

    run.structured = True
    specific = output.get("hookSpecificOutput")
    if not isinstance(specific, dict):
        specific = {}

    reason = output.get("reason") or specific.get("permissionDecisionReason")
    blocked_by: Optional[str] = None
    if output.get("continue") is False:
        blocked_by = output.get("stopReason") or reason or "hook requested stop"
    elif output.get("decision") == "block":
        blocked_by = reason or "blocked by hook"

    permission = specific.get("permissionDecision")
    if permission == "deny" and blocked_by is None:
        blocked_by = specific.get("permissionDecisionReason") or reason or "denied by hook"
    elif permission == "ask" and blocked_by is None and blockable:
        run.ask_reason = specific.get("permissionDecisionReason") or reason or rule.command

    if blocked_by is not None:
        if blockable:
            run.block_reason = str(blocked_by)
        else:
            # Nothing left to block after the fact; report it instead
            run.warning = str(blocked_by)

    context = specific.get("additionalContext")
    if isinstance(context, str) and context:
        run.additional_context = context
    message = output.get("systemMessage")
    if isinstance(message, str) and message:
        run.system_message = message
        run.warning = run.warning or message
    run.suppress_output = bool(output.get("suppressOutput"))
    return run


@dataclass
class AutomationOutcome:
    """All hook runs for one event, in match order."""

    runs: list[HookRun] = field(default_factory=list)
    aborted: bool = False

    @property
    def block_reasons(self) -> list[str]:
        return [r.block_reason for r in self.runs if r.block_reason is not None]

    @property
    def ask_reasons(self) -> list[str]:
        return [r.ask_reason for r in self.runs if r.ask_reason is not None]

    @property
    def additional_context(self) -> list[str]:
        return [r.additional_context for r in self.runs if r.additional_context]

    def notification(self) -> Optional[tuple[str, str]]:
        """Every run's message joined into one, at the worst severity seen."""
        messages = [n for n in (r.notification() for r in self.runs) if n is not None]
        if not messages:
            return None
        severities = {severity for _, severity in messages}
        if "error" in severities:
            severity = "error"
        elif "warning" in severities:
            severity = "warning"
        else:
            severity = "info"
        return "\n".join(message for message, _ in messages), severity


def _resolve_cwd(rule: AutomationRule, cwd: str) -> Path:
    if not rule.working_directory:
        return Path(cwd)
    return Path(cwd) / Path(rule.working_directory).expanduser()


async def run_automation(
    groups: list[AutomationGroup],
    ctx: EvaluationContext,
    shell_tool: str = SHELL_TOOL,
    non_blocking_tools: tuple[str, ...] = NON_BLOCKING_TOOLS,
    abort: Optional[asyncio.Event] = None,
) -> AutomationOutcome:
    """Run every matching automation rule for ``ctx`` in group/rule order."""
    outcome = AutomationOutcome()
    variables = event_variables(ctx)
    stdin = json.dumps(build_hook_input(ctx), default=str)

    for group in groups:
        if not is_group_active(group.activation, ctx.cwd):
            continue
        for rule in group.rules:
            if rule.event != ctx.event:
                continue
            if not rule_matches(rule, ctx.tool_name, ctx.tool_input, shell_tool=shell_tool):
                continue
            if abort is not None and abort.is_set():
                outcome.aborted = True
                return outcome

            command = substitute_variables(rule.command, variables)
            result = await run_command(
                command,
                cwd=_resolve_cwd(rule, ctx.cwd),
                timeout_ms=rule.timeout_ms,
                stdin=stdin,
                abort=abort,
            )
            if result.aborted:
                outcome.aborted = True
                return outcome

            run = interpret_result(group.name, rule, command, result, ctx, non_blocking_tools)
            logger.info(
                "HOOK [%s] %s: %s -> exit %s (%.0fms)",
                group.name, ctx.event.value, command, result.code, result.elapsed_ms,
            )
            if not run.success and result.output:
                logger.debug("HOOK [%s] output: %s", group.name, result.output)
            outcome.runs.append(run)

    return outcome
