"""
Reconciliation of freshly discovered modules against the trust ledger.

For each candidate module:
- content unchanged since the stored decision: reuse the stored verdict,
  no rescan (a prior approval stays valid across runs)
- no record, or content changed: rescan; a violator starts out denied and
  marks the pass as having new discoveries
- content unreadable: left out of this pass entirely, its record untouched

The result is a disposable view for one run. Nothing here writes the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from .instructions import ModuleSnapshot
from .ledger import TrustLedger

logger = logging.getLogger(__name__)


class Scanner(Protocol):
    def scan(self, module: ModuleSnapshot) -> bool: ...


@dataclass
class SessionWorkingSets:
    """Per-run verdicts threaded from reconciliation to enforcement and commit."""

    violators: set[str] = field(default_factory=set)
    permitted: dict[str, bool] = field(default_factory=dict)
    all_modules: dict[str, ModuleSnapshot] = field(default_factory=dict)
    newly_discovered: bool = False
    matched: set[str] = field(default_factory=set)
    unreadable: set[str] = field(default_factory=set)

    def is_permitted(self, identity: str) -> bool:
        return self.permitted.get(identity) is True

    def denied(self) -> list[str]:
        """Violators without permission, in stable order."""
        return sorted(i for i in self.violators if not self.is_permitted(i))


def reconcile(
    candidates: Iterable[ModuleSnapshot],
    ledger: TrustLedger,
    scanner: Scanner,
) -> SessionWorkingSets:
    """
    Build this run's working sets from candidate modules and the ledger.

    Args:
        candidates: Modules currently loaded by the host
        ledger: Trust ledger as loaded at startup (not modified)
        scanner: Capability scanner, consulted only for unmatched modules

    Returns:
        Session working sets; `newly_discovered` is True when any unmatched
        module scanned as a violator
    """
    sets = SessionWorkingSets()

    for module in candidates:
        identity = module.identity
        if identity in sets.all_modules or identity in sets.unreadable:
            logger.debug(f"Ignoring duplicate candidate {identity}")
            continue

        if module.content_fingerprint is None:
            logger.warning(f"Content of {identity} is unreadable; skipping it this run")
            sets.unreadable.add(identity)
            continue

        sets.all_modules[identity] = module
        record = ledger.lookup(identity)

        if record is not None and record.content_fingerprint == module.content_fingerprint:
            sets.matched.add(identity)
            if record.is_violator:
                sets.violators.add(identity)
            sets.permitted[identity] = record.is_permitted
            logger.debug(
                f"Matched {identity}: violator={record.is_violator} permitted={record.is_permitted}"
            )
            continue

        if record is not None:
            logger.info(f"Content of {identity} changed since last decision; rescanning")

        if scanner.scan(module):
            logger.info(f"Module {identity} contains network functions")
            sets.violators.add(identity)
            sets.permitted[identity] = False
            sets.newly_discovered = True

    return sets
