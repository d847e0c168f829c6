"""
Operator decision session for newly discovered violators.

A session exists for one run. It lists the violators still waiting for an
answer, and folds the operator's answers back into the trust ledger:
every module seen this run gets a fresh record, modules not seen this run
keep their historical record, and the ledger is then saved as a whole.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Callable, Mapping
from urllib.parse import unquote

from .ledger import TrustLedger, TrustRecord
from .reconcile import SessionWorkingSets
from .scanner import DEFAULT_PLUGIN_ROOT_MARKER

logger = logging.getLogger(__name__)

PROMPT_TEXT = (
    "New plugins have been detected which might access the network. "
    "Please opt-in as you see fit. "
    "Please be aware you will need to restart for these changes to take effect."
)


def label(identity: str, plugin_root_marker: str = DEFAULT_PLUGIN_ROOT_MARKER) -> str:
    """Human-readable label: module name plus its path from the plugin root."""
    words = unquote(identity).split("/")
    name = PurePosixPath(words[-1]).stem or identity

    marker = plugin_root_marker.lower()
    index = -1
    for i, word in enumerate(words):
        if word.lower() == marker:
            index = i
    local_path = "/".join(words[index:]) if index != -1 else identity
    return f"{name} ({local_path})"


class DecisionSession:
    """Pending operator decisions for one run, and the commit that records them."""

    def __init__(
        self,
        working_sets: SessionWorkingSets,
        ledger: TrustLedger,
        save: Callable[[TrustLedger], None] | None = None,
    ):
        """
        Args:
            working_sets: Result of this run's reconciliation
            ledger: Ledger loaded at startup; updated in place on commit
            save: Persists the whole ledger after a commit
        """
        self.working_sets = working_sets
        self.ledger = ledger
        self._save = save
        self.committed = False

    @property
    def active(self) -> bool:
        return self.working_sets.newly_discovered

    def pending(self) -> list[str]:
        if not self.active:
            return []
        return self.working_sets.denied()

    def commit(self, answers: Mapping[str, bool]) -> list[TrustRecord]:
        """
        Record the operator's answers and persist the ledger.

        Returns:
            The records written for modules seen this run (empty when the
            session had nothing new to decide)
        """
        if not self.active:
            return []

        sets = self.working_sets
        for identity, allowed in answers.items():
            if identity in sets.violators:
                sets.permitted[identity] = bool(allowed)

        written: list[TrustRecord] = []
        for identity, module in sets.all_modules.items():
            if module.content_fingerprint is None:
                continue
            permitted = answers.get(identity, sets.permitted.get(identity, False))
            record = TrustRecord.create(
                identity=identity,
                content_fingerprint=module.content_fingerprint,
                is_violator=identity in sets.violators,
                is_permitted=bool(permitted),
            )
            self.ledger.upsert(record)
            written.append(record)

        if self._save is not None:
            self._save(self.ledger)
        self.committed = True
        logger.info(
            f"Committed {len(written)} trust records "
            f"({len(sets.violators) - len(sets.denied())} permitted violators)"
        )
        return written
