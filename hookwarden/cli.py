"""
CLI for hookwarden.

Inspect, validate and save guardrail/hook configuration, dry-run a tool
call through the guardrails, and run as a Claude Code command hook.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from hookwarden.activation import is_group_active
from hookwarden.config import ConfigStore
from hookwarden.dispatcher import LifecycleDispatcher
from hookwarden.logs import setup_logging
from hookwarden.models import EvaluationContext, HookEvent, InvalidConfigError, RuleKind, validate_config
from hookwarden.policy import iter_policy_matches

console = Console()

KIND_CHOICE = click.Choice([k.value for k in RuleKind])
SEVERITY_STYLES = {"info": "cyan", "warning": "yellow", "error": "red"}


class ConsoleHost:
    """Host capabilities backed by the terminal.

    With ``answer`` set, confirmation dialogs are shown and answered
    automatically; without it the host behaves as if it had no UI.
    """

    def __init__(self, cwd: str, answer: Optional[bool] = None):
        self.cwd = cwd
        self.has_ui = answer is not None
        self._answer = answer

    async def confirm(self, title: str, message: str) -> bool:
        console.print(Panel(escape(message), title=title, border_style="yellow"))
        console.print(f"Answer: [bold]{'yes' if self._answer else 'no'}[/bold]")
        return bool(self._answer)

    def notify(self, message: str, severity: str = "info"):
        console.print(message, style=SEVERITY_STYLES.get(severity, ""), markup=False)


def _kinds(kind: Optional[str]) -> list[RuleKind]:
    return [RuleKind(kind)] if kind else list(RuleKind)


def _read_payload(file: str):
    try:
        return json.loads(Path(file).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] Cannot read {file}: {e}")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def main(verbose: bool):
    """hookwarden - Guardrails and automation hooks for coding agents."""
    setup_logging(verbose)


@main.command(name="list")
@click.option("--kind", "-k", type=KIND_CHOICE, help="Only show one rule kind")
@click.option("--cwd", "-C", type=click.Path(file_okay=False), default=".", help="Project directory")
@click.option("--rules", "-r", "show_rules", is_flag=True, help="List every rule under its group")
def list_groups(kind: Optional[str], cwd: str, show_rules: bool):
    """
    Show configured groups and whether they are active in CWD.
    """
    cwd = str(Path(cwd).resolve())
    for rule_kind in _kinds(kind):
        store = ConfigStore(rule_kind)
        groups = store.get_config(cwd)
        source = "global" if store.has_global_config() else "defaults + project"

        if not groups:
            console.print(f"[yellow]No {rule_kind.value} configured[/yellow]")
            continue

        table = Table(title=f"{rule_kind.value.capitalize()} ({source})", show_header=True)
        table.add_column("Group", style="cyan")
        table.add_column("Pattern", style="magenta")
        table.add_column("Active", justify="center")
        table.add_column("Rules", justify="right")
        for group in groups:
            active = is_group_active(group.activation, cwd)
            table.add_row(
                group.name,
                group.activation,
                "[green]✓[/green]" if active else "[dim]✗[/dim]",
                str(len(group.rules)),
            )
        console.print(table)

    if show_rules:
        dispatcher = LifecycleDispatcher(
            ConfigStore(RuleKind.GUARDRAILS) if kind in (None, RuleKind.GUARDRAILS.value) else None,
            ConfigStore(RuleKind.HOOKS) if kind in (None, RuleKind.HOOKS.value) else None,
        )
        console.print(dispatcher.describe_groups(cwd), markup=False, highlight=False)


@main.command()
@click.option("--tool", "-t", required=True, help="Tool name, e.g. bash, write, edit")
@click.option("--command", "-c", "command", help="Shell command (for the shell tool)")
@click.option("--path", "-p", help="Target file path")
@click.option("--content", help="File content being written")
@click.option("--cwd", "-C", type=click.Path(file_okay=False), default=".", help="Project directory")
@click.option("--answer", type=click.Choice(["yes", "no"]), help="Answer confirmations instead of blocking")
def check(tool: str, command: Optional[str], path: Optional[str], content: Optional[str], cwd: str, answer: Optional[str]):
    """
    Dry-run a tool call through the guardrails. Hooks are not executed.

    Exits 2 if the call would be blocked.
    """
    cwd = str(Path(cwd).resolve())
    tool_input = {k: v for k, v in (("command", command), ("path", path), ("content", content)) if v is not None}
    ctx = EvaluationContext(HookEvent.TOOL_CALL, cwd, tool_name=tool, tool_input=tool_input)
    store = ConfigStore(RuleKind.GUARDRAILS)
    dispatcher = LifecycleDispatcher(store, None)

    if dispatcher.is_skipped(ctx):
        console.print(f"[dim]{escape(tool)} calls are never evaluated[/dim]")
        console.print("[green][ALLOW][/green]")
        return

    matches = list(iter_policy_matches(store.get_config(cwd), ctx))
    if matches:
        table = Table(title="Matching Rules", show_header=True)
        table.add_column("Group", style="cyan")
        table.add_column("Action", style="yellow")
        table.add_column("Reason")
        for group, rule, _ in matches:
            table.add_row(group.name, rule.action.value, rule.reason)
        console.print(table)
    else:
        console.print("[dim]No matching rules[/dim]")

    host = ConsoleHost(cwd, None if answer is None else answer == "yes")
    result = asyncio.run(dispatcher.dispatch(ctx, host))
    if result is not None:
        console.print(f"[red][BLOCK][/red] {escape(result['reason'])}", highlight=False)
        sys.exit(2)
    console.print("[green][ALLOW][/green]")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--kind", "-k", type=KIND_CHOICE, required=True, help="Rule kind the file holds")
def validate(file: str, kind: str):
    """
    Check a JSON config file against the rule group schema.
    """
    payload = _read_payload(file)
    try:
        groups = validate_config(RuleKind(kind), payload)
    except InvalidConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        sys.exit(1)
    console.print(f"[green][OK][/green] {len(groups)} {kind} groups valid")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--kind", "-k", type=KIND_CHOICE, required=True, help="Rule kind the file holds")
def save(file: str, kind: str):
    """
    Replace the global config for KIND with the groups in FILE.
    """
    payload = _read_payload(file)
    if not isinstance(payload, list):
        console.print(f"[red]Error:[/red] {file} must contain a list of groups")
        sys.exit(1)

    store = ConfigStore(RuleKind(kind))
    try:
        store.save_global(payload)
    except InvalidConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        sys.exit(1)
    except OSError as e:
        console.print(f"[red]Error:[/red] Cannot write {store.global_path}: {e}")
        sys.exit(1)

    console.print(
        f"[green][OK][/green] Saved {len(store.get_global_config())} {kind} groups to {store.global_path}"
    )


@main.command()
def hook():
    """
    Run as a Claude Code command hook (reads the hook payload on stdin).
    """
    from hookwarden.adapter import main as hook_main

    sys.exit(hook_main())


if __name__ == "__main__":
    main()
