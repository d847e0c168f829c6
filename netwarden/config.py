"""
Guard configuration, loaded from netwarden.toml.

The schema is intentionally small: rules are data, evaluation is code.

    ledger_path = "netwarden.cfg"
    plugin_root_marker = "plugins"
    decision_log = "netwarden-decisions.log"

    [[extra_rules]]
    pattern = "paramiko."
    category = "network-io"
    description = "SSH client"

A `rules` array replaces the built-in rule set; `extra_rules` appends to it.
Relative paths resolve against the directory holding the config file.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .scanner import (
    DEFAULT_PLUGIN_ROOT_MARKER,
    DEFAULT_RULES,
    CapabilityRule,
    CapabilityScanner,
)

CONFIG_FILENAME = "netwarden.toml"
DEFAULT_LEDGER_FILENAME = "netwarden.cfg"
DEFAULT_DECISION_LOG_FILENAME = "netwarden-decisions.log"


class ConfigError(ValueError):
    """The configuration file is present but unusable."""


@dataclass(frozen=True)
class GuardConfig:
    ledger_path: Path = Path(DEFAULT_LEDGER_FILENAME)
    plugin_root_marker: str = DEFAULT_PLUGIN_ROOT_MARKER
    decision_log_path: Path | None = Path(DEFAULT_DECISION_LOG_FILENAME)
    rules: tuple[CapabilityRule, ...] = field(default=DEFAULT_RULES)

    def scanner(self) -> CapabilityScanner:
        return CapabilityScanner(self.rules, self.plugin_root_marker)


def _parse_rules(raw: Any, key: str) -> list[CapabilityRule]:
    if not isinstance(raw, list):
        raise ConfigError(f"{key} must be an array of tables")

    rules: list[CapabilityRule] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigError(f"{key}[{index}] must be a table")
        pattern = str(entry.get("pattern", "")).strip()
        if not pattern:
            raise ConfigError(f"{key}[{index}].pattern is required")
        category = str(entry.get("category", "network-io")).strip() or "network-io"
        description = entry.get("description")
        rules.append(
            CapabilityRule(
                pattern=pattern,
                category=category,
                description=str(description) if isinstance(description, str) else "",
            )
        )
    return rules


def _resolve(base: Path, value: Any, key: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a non-empty string")
    path = Path(value.strip()).expanduser()
    return path if path.is_absolute() else base / path


def load_config(path: Path | None = None) -> GuardConfig:
    """
    Load configuration from a TOML file.

    Args:
        path: Config file; None or a missing file yields the defaults,
              with paths relative to the current directory

    Raises:
        ConfigError: if the file cannot be parsed or a field is invalid
    """
    if path is None or not path.exists():
        base = path.parent if path is not None else Path.cwd()
        return GuardConfig(
            ledger_path=base / DEFAULT_LEDGER_FILENAME,
            decision_log_path=base / DEFAULT_DECISION_LOG_FILENAME,
        )

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    base = path.parent

    ledger_path = _resolve(base, data.get("ledger_path", DEFAULT_LEDGER_FILENAME), "ledger_path")

    decision_log_raw = data.get("decision_log", DEFAULT_DECISION_LOG_FILENAME)
    decision_log_path: Path | None
    if decision_log_raw is False or decision_log_raw == "":
        decision_log_path = None
    else:
        decision_log_path = _resolve(base, decision_log_raw, "decision_log")

    marker = data.get("plugin_root_marker", DEFAULT_PLUGIN_ROOT_MARKER)
    if not isinstance(marker, str) or not marker.strip():
        raise ConfigError("plugin_root_marker must be a non-empty string")

    rules = list(DEFAULT_RULES)
    if "rules" in data:
        rules = _parse_rules(data["rules"], "rules")
    if "extra_rules" in data:
        rules.extend(_parse_rules(data["extra_rules"], "extra_rules"))
    if not rules:
        raise ConfigError("at least one capability rule is required")

    return GuardConfig(
        ledger_path=ledger_path,
        plugin_root_marker=marker.strip(),
        decision_log_path=decision_log_path,
        rules=tuple(rules),
    )


def find_config(start: Path) -> Path | None:
    """Find netwarden.toml by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        candidate = p / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
