"""Tests for hookwarden.dispatcher: event routing across guardrails and hooks."""

import asyncio
import json

from hookwarden.dispatcher import LifecycleDispatcher
from hookwarden.models import EvaluationContext, HookEvent, RuleKind


def _run(coro):
    """Run an async coroutine synchronously."""
    return asyncio.new_event_loop().run_until_complete(coro)


FIND_BLOCK = {
    "group": "coreutils",
    "pattern": "*",
    "rules": [{"context": "command", "pattern": "^find", "action": "block", "reason": "use fd"}],
}


def _hooks(*rules, name="auto"):
    return {"group": name, "pattern": "*", "hooks": list(rules)}


def _dispatcher(make_store, guardrails=(), hooks=(), **kwargs):
    return LifecycleDispatcher(
        make_store(RuleKind.GUARDRAILS, defaults=list(guardrails)),
        make_store(RuleKind.HOOKS, defaults=list(hooks)),
        **kwargs,
    )


class TestToolCall:
    """Policy first, then automation."""

    def test_policy_block(self, make_store, host):
        d = _dispatcher(make_store, guardrails=[FIND_BLOCK])
        result = _run(d.on_tool_call(host, "bash", {"command": "find . -name x"}))
        assert result == {"block": True, "reason": "Blocked: use fd"}

    def test_allowed_call_returns_none(self, make_store, host):
        d = _dispatcher(make_store, guardrails=[FIND_BLOCK])
        assert _run(d.on_tool_call(host, "bash", {"command": "ls"})) is None

    def test_policy_block_skips_automation(self, make_store, host, tmp_path):
        marker = tmp_path / "ran"
        d = _dispatcher(
            make_store,
            guardrails=[FIND_BLOCK],
            hooks=[_hooks({"event": "tool_call", "command": f"touch {marker}"})],
        )
        _run(d.on_tool_call(host, "bash", {"command": "find ."}))
        assert not marker.exists()

    def test_automation_exit_two_blocks(self, make_store, host):
        d = _dispatcher(make_store, hooks=[_hooks({
            "event": "tool_call",
            "context": "command",
            "pattern": "^git push",
            "command": "echo 'tests are red' >&2; exit 2",
        })])
        result = _run(d.on_tool_call(host, "bash", {"command": "git push"}))
        assert result == {"block": True, "reason": "Blocked: tests are red"}

    def test_automation_exit_two_does_not_block_write(self, make_store, host):
        d = _dispatcher(make_store, hooks=[_hooks({"event": "tool_call", "command": "exit 2"})])
        assert _run(d.on_tool_call(host, "write", {"path": "a.ts", "content": "x"})) is None

    def test_automation_json_deny_blocks_write(self, make_store, host):
        out = json.dumps({"hookSpecificOutput": {"permissionDecision": "deny", "permissionDecisionReason": "frozen"}})
        d = _dispatcher(make_store, hooks=[_hooks({"event": "tool_call", "command": f"echo '{out}'"})])
        result = _run(d.on_tool_call(host, "write", {"path": "a.ts"}))
        assert result == {"block": True, "reason": "Blocked: frozen"}

    def test_automation_ask_uses_confirmation(self, make_store, host):
        out = json.dumps({"hookSpecificOutput": {"permissionDecision": "ask", "permissionDecisionReason": "deploy?"}})
        d = _dispatcher(make_store, hooks=[_hooks({"event": "tool_call", "command": f"echo '{out}'"})])

        assert _run(d.on_tool_call(host, "bash", {"command": "make deploy"})) is None
        host.confirm.assert_awaited_once()

        host.confirm.return_value = False
        result = _run(d.on_tool_call(host, "bash", {"command": "make deploy"}))
        assert result["reason"] == "Blocked: User denied dangerous operation"

    def test_automation_ask_without_ui_blocks(self, make_store, headless_host):
        out = json.dumps({"hookSpecificOutput": {"permissionDecision": "ask", "permissionDecisionReason": "deploy?"}})
        d = _dispatcher(make_store, hooks=[_hooks({"event": "tool_call", "command": f"echo '{out}'"})])
        result = _run(d.on_tool_call(headless_host, "bash", {"command": "make deploy"}))
        assert "no UI for confirmation" in result["reason"]


class TestSkippedTools:
    """The read tool is never evaluated."""

    def test_read_skips_policy(self, make_store, host):
        lock = {"group": "lock", "pattern": "*", "rules": [
            {"context": "tool_name", "pattern": ".*", "action": "block", "reason": "nothing"},
        ]}
        d = _dispatcher(make_store, guardrails=[lock])
        assert _run(d.on_tool_call(host, "read", {"path": "package-lock.json"})) is None
        assert _run(d.on_tool_call(host, "write", {"path": "x"})) is not None

    def test_read_skips_hooks(self, make_store, host, tmp_path):
        marker = tmp_path / "ran"
        d = _dispatcher(make_store, hooks=[_hooks({"event": "tool_result", "command": f"touch {marker}"})])
        _run(d.on_tool_result(host, "read", {"path": "a"}))
        assert not marker.exists()

    def test_custom_skipped_tools(self, make_store, host):
        d = _dispatcher(make_store, guardrails=[FIND_BLOCK], skipped_tools=("bash",))
        assert _run(d.on_tool_call(host, "bash", {"command": "find ."})) is None

    def test_is_skipped(self, make_store, tmp_path):
        d = _dispatcher(make_store)
        read = EvaluationContext(HookEvent.TOOL_CALL, str(tmp_path), tool_name="read")
        assert d.is_skipped(read)
        assert not d.is_skipped(EvaluationContext(HookEvent.TOOL_CALL, str(tmp_path), tool_name="write"))
        assert not d.is_skipped(EvaluationContext(HookEvent.AGENT_END, str(tmp_path)))


class TestLifecycleEvents:
    """Non-blockable events run hooks and return nothing."""

    def test_each_event_runs_its_hooks(self, make_store, host, tmp_path):
        events = ["session_start", "session_shutdown", "agent_start", "agent_end", "turn_start", "turn_end"]
        d = _dispatcher(make_store, hooks=[_hooks(*[
            {"event": e, "command": f"touch {tmp_path / e}"} for e in events
        ])])
        _run(d.on_session_start(host))
        _run(d.on_session_shutdown(host))
        _run(d.on_agent_start(host))
        _run(d.on_agent_end(host))
        _run(d.on_turn_start(host))
        _run(d.on_turn_end(host))
        for event in events:
            assert (tmp_path / event).exists(), event

    def test_tool_result_runs_formatter(self, make_store, host, tmp_path):
        target = tmp_path / "a.ts"
        target.write_text("x")
        d = _dispatcher(make_store, hooks=[_hooks({
            "event": "tool_result",
            "context": "file_name",
            "pattern": r"\.ts$",
            "command": "echo formatted > ${file}",
        })])
        result = _run(d.on_tool_result(host, "write", {"path": str(target)}, result={"ok": True}))
        assert result is None
        assert target.read_text().strip() == "formatted"

    def test_tool_result_exit_two_does_not_block(self, make_store, host):
        d = _dispatcher(make_store, hooks=[_hooks({"event": "tool_result", "command": "exit 2"})])
        assert _run(d.on_tool_result(host, "bash", {"command": "ls"})) is None


class TestAborted:
    """Aborted work never triggers hooks."""

    def test_aborted_events_skipped(self, make_store, host, tmp_path):
        d = _dispatcher(make_store, hooks=[_hooks(
            {"event": "tool_result", "command": f"touch {tmp_path / 'result'}"},
            {"event": "turn_end", "command": f"touch {tmp_path / 'turn'}"},
            {"event": "agent_end", "command": f"touch {tmp_path / 'agent'}"},
        )])
        _run(d.on_tool_result(host, "write", {"path": "a"}, aborted=True))
        _run(d.on_turn_end(host, aborted=True))
        _run(d.on_agent_end(host, aborted=True))
        assert not (tmp_path / "result").exists()
        assert not (tmp_path / "turn").exists()
        assert not (tmp_path / "agent").exists()

    def test_abort_signal_discards_outcome(self, make_store, host):
        async def scenario():
            abort = asyncio.Event()
            d = _dispatcher(
                make_store,
                hooks=[_hooks({"event": "tool_call", "command": "sleep 10; exit 2"})],
                abort=abort,
            )
            asyncio.get_running_loop().call_later(0.2, abort.set)
            return await d.on_tool_call(host, "bash", {"command": "ls"})

        assert _run(scenario()) is None
        host.notify.assert_not_called()


class TestNotifications:
    """All hook messages for one event arrive as a single notification."""

    def test_joined_notification(self, make_store, host):
        d = _dispatcher(make_store, hooks=[
            _hooks({"event": "agent_end", "command": "echo one"}, name="a"),
            _hooks({"event": "agent_end", "command": "echo two; exit 1"}, name="b"),
        ])
        _run(d.on_agent_end(host))
        host.notify.assert_called_once()
        message, severity = host.notify.call_args.args
        assert message == "✓ a: echo one\none\n✗ b: echo two; exit 1\ntwo"
        assert severity == "error"

    def test_no_ui_no_notification(self, make_store, headless_host):
        d = _dispatcher(make_store, hooks=[_hooks({"event": "agent_end", "command": "exit 1"})])
        _run(d.on_agent_end(headless_host))
        headless_host.notify.assert_not_called()

    def test_failing_notify_is_contained(self, make_store, host):
        host.notify.side_effect = RuntimeError("ui gone")
        d = _dispatcher(make_store, hooks=[_hooks({"event": "agent_end", "command": "exit 1"})])
        _run(d.on_agent_end(host))


class TestDispatch:
    def test_dispatch_with_context(self, make_store, host):
        d = _dispatcher(make_store, guardrails=[FIND_BLOCK])
        ctx = EvaluationContext(HookEvent.TOOL_CALL, host.cwd, tool_name="bash", tool_input={"command": "find ."})
        assert _run(d.dispatch(ctx, host))["block"] is True

    def test_guardrails_only(self, make_store, host):
        d = LifecycleDispatcher(make_store(RuleKind.GUARDRAILS, defaults=[FIND_BLOCK]), None)
        assert _run(d.on_tool_call(host, "bash", {"command": "find ."}))["block"] is True
        assert _run(d.on_agent_end(host)) is None


class TestCommands:
    """reload and describe_groups."""

    def test_reload_notifies_counts(self, make_store, host):
        d = _dispatcher(
            make_store,
            guardrails=[FIND_BLOCK],
            hooks=[_hooks({"event": "agent_end", "command": "x"}), _hooks({"event": "agent_end", "command": "y"}, name="b")],
        )
        counts = d.reload(host)
        assert counts == {RuleKind.GUARDRAILS: 1, RuleKind.HOOKS: 2}
        assert host.messages == [
            "Guardrails reloaded: 1 groups loaded",
            "Hooks reloaded: 2 groups loaded",
        ]

    def test_describe_groups(self, make_store, tmp_path):
        d = _dispatcher(
            make_store,
            guardrails=[FIND_BLOCK],
            hooks=[{"group": "bun", "pattern": "bun.lock", "hooks": [
                {"event": "tool_result", "context": "file_name", "pattern": r"\.ts$", "command": "biome format ${file}"},
                {"event": "agent_end", "command": "bun test"},
            ]}],
        )
        listing = d.describe_groups(str(tmp_path)).splitlines()
        assert listing == [
            "✓ coreutils (*)",
            "  → tool_call [command: ^find]: block (use fd)",
            "✗ bun (bun.lock)",
            "  → tool_result [file_name: \\.ts$]: biome format ${file}",
            "  → agent_end: bun test",
        ]

    def test_describe_empty(self, make_store, tmp_path):
        d = _dispatcher(make_store)
        assert d.describe_groups(str(tmp_path)) == "No guardrails configured\nNo hooks configured"
