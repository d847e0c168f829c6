"""Scan command - reconcile a plugin directory against the trust ledger."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Mapping, Sequence

import click
from rich.console import Console
from rich.table import Table

from ..config import GuardConfig
from ..host import ComponentHost, discover_plugin_dir
from ..instructions import ModuleSnapshot
from ..reconcile import SessionWorkingSets
from ..reader import read_module
from ..scanner import CapabilityMatch, CapabilityScanner
from ..service import NetworkGuard, deny_all
from ..session import label


class RecordingScanner:
    """Scanner wrapper remembering which call made each module a violator."""

    def __init__(self, inner: CapabilityScanner):
        self.inner = inner
        self.scanned: set[str] = set()
        self.matches: dict[str, CapabilityMatch] = {}

    def scan(self, module: ModuleSnapshot) -> bool:
        self.scanned.add(module.identity)
        match = self.inner.find_violation(module)
        if match is not None:
            self.matches[module.identity] = match
        return match is not None


def confirm_each(marker: str, console: Console) -> Callable[[str, Sequence[str]], Mapping[str, bool]]:
    """Interactive choice: ask the operator about each pending violator."""

    def present(prompt: str, pending: Sequence[str]) -> Mapping[str, bool]:
        console.print(f"[bold]{prompt}[/bold]")
        return {
            identity: click.confirm(f"Enable {label(identity, marker)}?", default=False)
            for identity in pending
        }

    return present


def _status(identity: str, sets: SessionWorkingSets) -> str:
    if identity in sets.unreadable:
        return "unreadable"
    if identity in sets.violators:
        return "permitted" if sets.is_permitted(identity) else "denied"
    return "clean"


def _source(identity: str, sets: SessionWorkingSets, scanner: RecordingScanner) -> str:
    if identity in sets.matched:
        return "ledger"
    if not scanner.inner.is_eligible(identity):
        return "outside plugin root"
    return "scanned"


def run_scan(
    plugin_dir: Path,
    config: GuardConfig,
    *,
    prompt: bool = True,
    output_json: bool = False,
) -> int:
    """
    Scan a plugin directory, ask about new violators, and commit the ledger.

    Args:
        plugin_dir: Directory holding plugin modules
        config: Guard configuration (ledger path, rules, plugin root marker)
        prompt: Ask the operator about new violators; otherwise deny them
        output_json: Emit a JSON report instead of a table (implies no prompt)

    Returns:
        Exit code (0 if no unpermitted violator remains, 1 otherwise)
    """
    console = Console(stderr=True)

    if not plugin_dir.is_dir():
        console.print(f"[red]Not a directory:[/red] {plugin_dir}")
        return 2

    resolved = plugin_dir.resolve()
    marker = config.plugin_root_marker
    if marker not in resolved.as_uri():
        console.print(
            f"[yellow]{resolved} is outside the plugin root marker '{marker}'; "
            "its modules will not be scanned.[/yellow]"
        )

    scanner = RecordingScanner(config.scanner())
    present = confirm_each(marker, console) if prompt and not output_json else deny_all
    guard = NetworkGuard(
        config,
        host=ComponentHost(),
        discover=lambda: discover_plugin_dir(resolved),
        present_choice=present,
        scanner=scanner,
    )
    guard.start()
    sets = guard.working_sets
    if sets is None:
        console.print("[red]Plugin scan did not run.[/red]")
        return 2

    identities = sorted(set(sets.all_modules) | sets.unreadable)
    denied = sets.denied()

    if output_json:
        result = {
            "ledger": str(config.ledger_path),
            "newly_discovered": sets.newly_discovered,
            "modules": [
                {
                    "identity": identity,
                    "status": _status(identity, sets),
                    "source": _source(identity, sets, scanner),
                    "reason": scanner.matches[identity].describe() if identity in scanner.matches else None,
                }
                for identity in identities
            ],
            "denied": denied,
        }
        print(json.dumps(result, indent=2))
        return 1 if denied else 0

    output_console = Console()
    table = Table(title=f"Plugin modules ({len(identities)})")
    table.add_column("Module", style="bold")
    table.add_column("Status")
    table.add_column("Source")
    table.add_column("Reason")

    styles = {"clean": "green", "permitted": "yellow", "denied": "red", "unreadable": "dim"}
    for identity in identities:
        status = _status(identity, sets)
        match = scanner.matches.get(identity)
        table.add_row(
            label(identity, marker),
            f"[{styles[status]}]{status}[/{styles[status]}]",
            _source(identity, sets, scanner),
            match.describe() if match else "",
        )
    output_console.print(table)

    if guard.session is not None and guard.session.committed:
        output_console.print(f"[dim]Ledger updated: {config.ledger_path}[/dim]")

    if denied:
        output_console.print(f"[red]{len(denied)} network-capable module(s) disabled.[/red]")
        return 1
    output_console.print("[green]No unpermitted network-capable modules.[/green]")
    return 0


def run_check(
    module_path: Path,
    config: GuardConfig,
    *,
    anywhere: bool = False,
    output_json: bool = False,
) -> int:
    """
    Scan a single module file and report the first network call found.

    Returns:
        Exit code (1 if the module calls into a networking namespace)
    """
    console = Console()

    snapshot = read_module(module_path)
    if snapshot.content_fingerprint is None:
        console.print(f"[red]Cannot read {module_path}[/red]")
        return 2

    marker = None if anywhere else config.plugin_root_marker
    scanner = CapabilityScanner(config.rules, marker)
    eligible = scanner.is_eligible(snapshot.identity)
    match = scanner.find_violation(snapshot)

    if output_json:
        result = {
            "identity": snapshot.identity,
            "fingerprint": snapshot.content_fingerprint,
            "eligible": eligible,
            "violation": None
            if match is None
            else {
                "type": match.type_name,
                "method": match.method_name,
                "target": match.target,
                "line": match.line,
                "rule": match.rule.pattern,
                "category": match.rule.category,
            },
        }
        print(json.dumps(result, indent=2))
        return 1 if match else 0

    console.print(f"[bold]{label(snapshot.identity, config.plugin_root_marker)}[/bold]")
    console.print(f"  Fingerprint: {snapshot.content_fingerprint}")
    if not eligible:
        console.print(
            f"  [yellow]Outside the plugin root marker '{config.plugin_root_marker}'; "
            "not scanned (use --anywhere).[/yellow]"
        )
        return 0
    if match is None:
        console.print("  [green]No network capability detected.[/green]")
        return 0
    console.print(f"  [red]Network capability:[/red] {match.describe()}")
    return 1
