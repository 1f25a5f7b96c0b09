"""Run hookwarden as a Claude Code command hook.

Claude Code pipes a JSON payload to the hook on stdin:

  {"hook_event_name": "PreToolUse", "tool_name": "Bash",
   "tool_input": {"command": "..."}, "cwd": "/repo", ...}

The payload is translated into a lifecycle event and sent through the
dispatcher. A blocked PreToolUse prints:

  {"hookSpecificOutput":{"hookEventName":"PreToolUse","permissionDecision":"deny",
                         "permissionDecisionReason":"Blocked: ..."}}

Anything else (allow, errors, unparseable input) exits 0 with no output,
so Claude Code falls back to its normal permission check.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional, TextIO

from hookwarden.automation import CLAUDE_EVENT_NAMES
from hookwarden.dispatcher import LifecycleDispatcher
from hookwarden.logs import setup_file_logging
from hookwarden.models import EvaluationContext, HookEvent

logger = logging.getLogger(__name__)

CLAUDE_TO_EVENT = {name: event for event, name in CLAUDE_EVENT_NAMES.items()}
INPUT_ALIASES = {"file_path": "path", "new_string": "newText"}


class CommandHookHost:
    """Host capabilities for a headless command hook: no UI at all."""

    has_ui = False

    def __init__(self, cwd: str) -> None:
        self.cwd = cwd

    async def confirm(self, title: str, message: str) -> bool:
        return False

    def notify(self, message: str, severity: str = "info") -> None:
        logger.debug("notify(%s): %s", severity, message)


def normalize_tool_input(tool_input: Any) -> dict:
    """Rename Claude Code's tool input fields to the ones rules match on.

    >>> normalize_tool_input({"file_path": "a.ts", "new_string": "x"})
    {'file_path': 'a.ts', 'new_string': 'x', 'path': 'a.ts', 'newText': 'x'}
    >>> normalize_tool_input(None)
    {}
    """
    if not isinstance(tool_input, dict):
        return {}
    normalized = dict(tool_input)
    for source, target in INPUT_ALIASES.items():
        if source in normalized and target not in normalized:
            normalized[target] = normalized[source]
    return normalized


def to_context(payload: dict) -> Optional[EvaluationContext]:
    """Build an EvaluationContext from a hook payload, or None if the event is unknown."""
    event = CLAUDE_TO_EVENT.get(payload.get("hook_event_name", ""))
    if event is None:
        return None

    cwd = payload.get("cwd") or os.environ.get("CLAUDE_PROJECT_DIR") or os.getcwd()
    tool_name = payload.get("tool_name")
    fields: dict[str, Any] = {}
    if event in (HookEvent.TOOL_CALL, HookEvent.TOOL_RESULT) and tool_name:
        fields["tool_name"] = str(tool_name).lower()
        fields["tool_input"] = normalize_tool_input(payload.get("tool_input"))
        fields["tool_call_id"] = payload.get("tool_use_id")
    if event == HookEvent.TOOL_RESULT:
        response = payload.get("tool_response")
        fields["result"] = response
        fields["is_error"] = bool(payload.get("is_error")) or (
            isinstance(response, dict) and bool(response.get("is_error"))
        )
    return EvaluationContext(event=event, cwd=str(cwd), **fields)


def deny_output(reason: str) -> dict:
    """PreToolUse output that denies the pending tool call."""
    return {
        "hookSpecificOutput": {
            "hookEventName": "PreToolUse",
            "permissionDecision": "deny",
            "permissionDecisionReason": reason,
        }
    }


async def run_hook(payload: dict, dispatcher: Optional[LifecycleDispatcher] = None) -> Optional[dict]:
    """Dispatch one hook payload. Returns the JSON to print, if any."""
    ctx = to_context(payload)
    if ctx is None:
        logger.debug("Ignoring unsupported hook event %r", payload.get("hook_event_name"))
        return None

    dispatcher = dispatcher or LifecycleDispatcher.default()
    result = await dispatcher.dispatch(ctx, CommandHookHost(ctx.cwd))
    if result and result.get("block"):
        logger.info("DENY %s: %s", ctx.tool_name, result["reason"])
        return deny_output(result["reason"])
    return None


def main(stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> int:
    """Read a payload from stdin, print the decision, return the exit status."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    setup_file_logging()

    try:
        payload = json.loads(stdin.read())
    except (json.JSONDecodeError, ValueError, OSError):
        return 0
    if not isinstance(payload, dict):
        return 0

    try:
        output = asyncio.run(run_hook(payload))
    except Exception:
        # Fail open: a broken hook must never wedge the agent
        logger.exception("Hook evaluation failed")
        return 0
    if output is not None:
        stdout.write(json.dumps(output) + "\n")
        stdout.flush()
    return 0
