"""Layered configuration for guardrails and hooks.

Three sources, resolved per working directory:

- Defaults: bundled with the package (``hookwarden/data/<kind>.json``).
  Read once per store and never modified.
- Global:   ``~/.pi/agent/settings.json`` under the ``guardrails`` or
  ``hooks`` key. If present it replaces everything else, no merging.
- Project:  ``<cwd>/.pi/<kind>.json``. Only consulted when there is no
  Global config; merged into Defaults by group name.

Any source that is missing, unreadable or malformed is treated as absent.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from hookwarden.models import RuleGroup, RuleKind, dump_groups, group_model, validate_config

logger = logging.getLogger(__name__)

GLOBAL_SETTINGS_PATH = Path.home() / ".pi" / "agent" / "settings.json"
DEFAULTS_DIR = Path(__file__).parent / "data"
PROJECT_CONFIG_DIRNAME = ".pi"


def _read_json(path: Path) -> Any:
    """Read a JSON file, returning None if it is missing or malformed."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return None


def parse_groups(kind: RuleKind, payload: Any, source: str = "config") -> Optional[list[RuleGroup]]:
    """Validate a raw payload group by group.

    Returns None if the payload is not a list at all. Invalid groups are
    dropped (one bad rule drops its whole group) so a single typo does not
    disable every other group from the same source.
    """
    if not isinstance(payload, list):
        if payload is not None:
            logger.warning("Ignoring %s %s: expected a list of groups", kind.value, source)
        return None

    model = group_model(kind)
    groups: list[RuleGroup] = []
    for index, raw in enumerate(payload):
        try:
            groups.append(model.model_validate(raw))
        except ValidationError as exc:
            name = raw.get("group") if isinstance(raw, dict) else None
            logger.warning(
                "Dropping invalid %s group %s in %s: %s",
                kind.value, name or f"#{index}", source, exc.errors()[0]["msg"],
            )
    return groups


def merge_groups(base: list[RuleGroup], extra: list[RuleGroup]) -> list[RuleGroup]:
    """Merge ``extra`` into ``base`` by group name.

    Same-named groups get their rule lists concatenated (``base`` rules
    first); new names are appended in order. Neither input is modified.
    """
    merged: list[RuleGroup] = []
    index: dict[str, int] = {}
    for group in [*base, *extra]:
        if group.name in index:
            pos = index[group.name]
            existing = merged[pos]
            merged[pos] = existing.model_copy(update={"rules": [*existing.rules, *group.rules]})
        else:
            index[group.name] = len(merged)
            merged.append(group)
    return merged


class ConfigStore:
    """Loads, layers and caches the rule groups for one rule kind."""

    def __init__(
        self,
        kind: RuleKind,
        defaults_path: Optional[Path] = None,
        global_path: Optional[Path] = None,
        project_filename: Optional[str] = None,
    ) -> None:
        self.kind = RuleKind(kind)
        self.defaults_path = defaults_path or DEFAULTS_DIR / f"{self.kind.value}.json"
        self.global_path = global_path or GLOBAL_SETTINGS_PATH
        self.project_filename = project_filename or f"{self.kind.value}.json"

        self._defaults: Optional[list[RuleGroup]] = None
        self._defaults_loaded = False
        self._global: Optional[list[RuleGroup]] = None
        self._loaded = False
        self._project_cache: dict[str, list[RuleGroup]] = {}

    # --- Loading ---

    def load(self) -> None:
        """(Re)read the Global source and drop every cached project resolution."""
        if not self._defaults_loaded:
            self._defaults = self._load_defaults()
            self._defaults_loaded = True
        self._global = self._load_global()
        self._project_cache = {}
        self._loaded = True
        logger.debug(
            "Loaded %s config: defaults=%s global=%s",
            self.kind.value,
            "yes" if self._defaults is not None else "no",
            "yes" if self._global is not None else "no",
        )

    def reload(self, cwd: str | Path) -> int:
        """Reload from disk and return the number of groups now in effect for ``cwd``."""
        self.load()
        return len(self.get_config(cwd))

    def _load_defaults(self) -> Optional[list[RuleGroup]]:
        groups = parse_groups(self.kind, _read_json(self.defaults_path), source=str(self.defaults_path))
        return merge_groups([], groups) if groups is not None else None

    def _load_global(self) -> Optional[list[RuleGroup]]:
        settings = _read_json(self.global_path)
        if not isinstance(settings, dict):
            return None
        return parse_groups(self.kind, settings.get(self.kind.value), source=str(self.global_path))

    def _load_project(self, cwd: Path) -> Optional[list[RuleGroup]]:
        path = cwd / PROJECT_CONFIG_DIRNAME / self.project_filename
        groups = parse_groups(self.kind, _read_json(path), source=str(path))
        return merge_groups([], groups) if groups is not None else None

    # --- Resolution ---

    def get_config(self, cwd: str | Path) -> list[RuleGroup]:
        """Return the resolved, ordered group list for a working directory."""
        if not self._loaded:
            self.load()

        if self._global is not None:
            return self._global

        key = str(Path(cwd).resolve())
        cached = self._project_cache.get(key)
        if cached is not None:
            return cached

        resolved = merge_groups(self._defaults or [], self._load_project(Path(key)) or [])
        self._project_cache[key] = resolved
        return resolved

    def get_project_config(self, cwd: str | Path) -> list[RuleGroup]:
        return self._load_project(Path(cwd).resolve()) or []

    def has_global_config(self) -> bool:
        if not self._loaded:
            self.load()
        return self._global is not None

    def has_defaults_config(self) -> bool:
        if not self._loaded:
            self.load()
        return self._defaults is not None

    def get_global_config(self) -> list[RuleGroup]:
        if not self._loaded:
            self.load()
        return self._global or []

    def get_defaults_config(self) -> list[RuleGroup]:
        if not self._loaded:
            self.load()
        return self._defaults or []

    # --- Persistence ---

    def save_global(self, groups: list[RuleGroup] | list[dict]) -> None:
        """Persist ``groups`` as the Global source and reload.

        Other keys in the settings document are preserved; an unreadable
        document is replaced. Raises InvalidConfigError for bad input.
        """
        payload = [g if isinstance(g, dict) else dump_groups([g])[0] for g in groups]
        validated = validate_config(self.kind, payload)

        settings = _read_json(self.global_path)
        if not isinstance(settings, dict):
            settings = {}
        settings[self.kind.value] = dump_groups(validated)

        self.global_path.parent.mkdir(parents=True, exist_ok=True)
        self.global_path.write_text(json.dumps(settings, indent=2) + "\n", encoding="utf-8")
        logger.info("Saved %d %s groups to %s", len(validated), self.kind.value, self.global_path)
        self.load()
