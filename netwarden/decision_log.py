"""
Append-only log of operator decisions.

Each trust ledger commit appends one JSON Lines entry recording which
violators were permitted and which stayed denied. The ledger itself only
holds the latest verdict per module; this log keeps the history.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class DecisionEntry:
    """A single decision log entry."""

    timestamp: str
    operation: str
    permitted: list[str] = field(default_factory=list)
    denied: list[str] = field(default_factory=list)
    records: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "operation": self.operation,
            "permitted": list(self.permitted),
            "denied": list(self.denied),
            "records": self.records,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DecisionEntry":
        return cls(
            timestamp=data["timestamp"],
            operation=data["operation"],
            permitted=list(data.get("permitted", [])),
            denied=list(data.get("denied", [])),
            records=int(data.get("records", 0)),
            metadata=data.get("metadata", {}),
        )


def log_decision(
    log_path: Path,
    operation: str,
    permitted: list[str] | None = None,
    denied: list[str] | None = None,
    records: int = 0,
    metadata: dict[str, Any] | None = None,
) -> DecisionEntry:
    """
    Append a decision to the log.

    Args:
        log_path: Path to the decision log file
        operation: Name of the operation (e.g., "ledger-commit")
        permitted: Violators the operator allowed
        denied: Violators left disabled
        records: Number of ledger records written
        metadata: Additional context (e.g., ledger path)

    Returns:
        The created entry
    """
    entry = DecisionEntry(
        timestamp=datetime.now(timezone.utc).isoformat(),
        operation=operation,
        permitted=sorted(permitted or []),
        denied=sorted(denied or []),
        records=records,
        metadata=metadata or {},
    )

    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry.to_dict()) + "\n")

    return entry


def read_decision_log(log_path: Path, last_n: int | None = None) -> list[DecisionEntry]:
    """Read entries from the decision log, oldest first; malformed lines are skipped."""
    if not log_path.exists():
        return []

    entries = []
    with log_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    entries.append(DecisionEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                    continue

    if last_n is not None:
        return entries[-last_n:] if last_n > 0 else []
    return entries


def format_decision_entry(entry: DecisionEntry) -> str:
    lines = [f"[{entry.timestamp}] {entry.operation} ({entry.records} records)"]
    if entry.permitted:
        lines.append(f"  Permitted: {', '.join(entry.permitted)}")
    if entry.denied:
        lines.append(f"  Denied: {', '.join(entry.denied)}")
    for key, value in entry.metadata.items():
        lines.append(f"  {key}: {value}")
    return "\n".join(lines)
