"""Ledger commands - inspect stored trust records and decision history."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..config import GuardConfig
from ..decision_log import format_decision_entry, read_decision_log
from ..ledger import TrustLedger
from ..session import label


def run_ledger_show(config: GuardConfig, *, output_json: bool = False) -> int:
    """List every trust record in the ledger."""
    ledger = TrustLedger.load(config.ledger_path)

    if output_json:
        result = [
            {
                "record_key": r.record_key,
                "identity": r.identity,
                "hash": r.content_fingerprint,
                "violator": r.is_violator,
                "permitted": r.is_permitted,
            }
            for r in ledger.records()
        ]
        print(json.dumps(result, indent=2))
        return 0

    console = Console()
    if not len(ledger):
        console.print(f"[dim]No trust records in {config.ledger_path}.[/dim]")
        return 0

    table = Table(title=f"Trust ledger ({len(ledger)} records)")
    table.add_column("Module", style="bold")
    table.add_column("Violator")
    table.add_column("Permitted")
    table.add_column("Hash", style="dim")

    for record in sorted(ledger.records(), key=lambda r: r.identity):
        table.add_row(
            label(record.identity, config.plugin_root_marker),
            "[red]yes[/red]" if record.is_violator else "no",
            ("[yellow]yes[/yellow]" if record.is_permitted else "no") if record.is_violator else "-",
            record.content_fingerprint[:16],
        )
    console.print(table)
    return 0


def run_ledger_history(log_path: Path | None, *, last_n: int | None = None) -> int:
    """Print decision log entries, oldest first."""
    console = Console()
    if log_path is None:
        console.print("[dim]Decision log is disabled.[/dim]")
        return 0

    entries = read_decision_log(log_path, last_n=last_n)
    if not entries:
        console.print("[dim]No decisions recorded.[/dim]")
        return 0

    for entry in entries:
        console.print(format_decision_entry(entry), highlight=False)
    return 0


def run_rules(config: GuardConfig) -> int:
    """List the active capability rules."""
    console = Console()
    table = Table(title=f"Capability rules ({len(config.rules)})")
    table.add_column("Pattern", style="bold")
    table.add_column("Category")
    table.add_column("Description")
    for rule in config.rules:
        table.add_row(rule.pattern, rule.category, rule.description)
    console.print(table)
    console.print(f"[dim]Plugin root marker: {config.plugin_root_marker}[/dim]")
    return 0
