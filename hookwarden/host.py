"""Capabilities the host agent lends to the engine for one event."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

SEVERITIES = ("info", "warning", "error")


@runtime_checkable
class HostContext(Protocol):
    """Interactive surface and working directory of the current host session.

    ``confirm`` must only be awaited when ``has_ui`` is True.
    """

    cwd: str
    has_ui: bool

    async def confirm(self, title: str, message: str) -> bool: ...

    def notify(self, message: str, severity: str = "info") -> None: ...


def notify(host: HostContext, message: str, severity: str = "info") -> None:
    """Send a notification if the host has a UI. Never raises."""
    if not getattr(host, "has_ui", False) or not message:
        return
    try:
        host.notify(message, severity)
    except Exception as exc:
        logger.warning("Host notification failed: %s", exc)


async def confirm(host: HostContext, title: str, message: str) -> bool:
    """Ask the user; any failure of the dialog counts as a refusal."""
    try:
        return bool(await host.confirm(title, message))
    except Exception as exc:
        logger.warning("Confirmation dialog failed, treating as denied: %s", exc)
        return False
