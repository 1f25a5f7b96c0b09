"""Group activation: does this project look like the kind a group targets?

A group's activation pattern is a file glob probed in the working
directory, e.g. ``tsconfig.json`` or ``*.test.ts``; ``"*"`` means
"every project" and skips the filesystem entirely.
"""

from __future__ import annotations

import glob
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

WILDCARD = "*"


def is_group_active(pattern: str, cwd: str | Path) -> bool:
    """Return True if ``pattern`` matches at least one path under ``cwd``.

    Matching is case-sensitive, includes dotfiles and only descends into
    subdirectories when the pattern itself uses ``**``. Absolute
    patterns and patterns containing ``..`` never match. Never raises.

    >>> is_group_active("*", "/nonexistent")
    True
    >>> import tempfile
    >>> is_group_active("*.nonexistent", tempfile.mkdtemp())
    False
    >>> is_group_active("/etc/passwd", "/")
    False
    """
    if pattern == WILDCARD:
        return True
    probe = Path(pattern)
    if probe.is_absolute() or ".." in probe.parts:
        # Only paths inside cwd can activate a group
        logger.debug("Activation pattern %r escapes %s; treating as inactive", pattern, cwd)
        return False
    try:
        matches = glob.iglob(
            pattern,
            root_dir=str(cwd),
            recursive=True,
            include_hidden=True,
        )
        return next(matches, None) is not None
    except (OSError, ValueError) as exc:
        logger.debug("Activation probe for %r in %s failed: %s", pattern, cwd, exc)
        return False
