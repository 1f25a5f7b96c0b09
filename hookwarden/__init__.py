"""
hookwarden - Policy guardrails and automation hooks for coding agents.

Guardrails allow, block or ask before a tool call runs. Hooks run shell
commands on lifecycle events (format after write, test before commit...).
Both are configured as JSON rule groups, layered from bundled defaults,
a project file and the user's global settings:
  ~/.pi/agent/settings.json   "guardrails" / "hooks" keys (replaces the rest)
  <project>/.pi/guardrails.json, <project>/.pi/hooks.json
"""

__version__ = "0.3.0"


def __getattr__(name: str):
    """Lazy imports so the command hook entry point stays quick to start."""
    _public = {
        "ConfigStore": "hookwarden.config",
        "LifecycleDispatcher": "hookwarden.dispatcher",
        "EvaluationContext": "hookwarden.models",
        "Decision": "hookwarden.models",
        "HookEvent": "hookwarden.models",
        "RuleKind": "hookwarden.models",
        "InvalidConfigError": "hookwarden.models",
        "validate_config": "hookwarden.models",
        "is_valid_config": "hookwarden.models",
    }
    if name in _public:
        import importlib
        module = importlib.import_module(_public[name])
        return getattr(module, name)
    raise AttributeError(f"module 'hookwarden' has no attribute {name!r}")


__all__ = [
    "__version__",
    "ConfigStore",
    "LifecycleDispatcher",
    "EvaluationContext",
    "Decision",
    "HookEvent",
    "RuleKind",
    "InvalidConfigError",
    "validate_config",
    "is_valid_config",
]
