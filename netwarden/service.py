"""
Long-lived guard service wiring the scan into the host lifecycle.

The host may call start() many times per process (once per scene or
lifecycle phase). Only the first call discovers and reconciles modules;
every call enforces, so components spawned later are suspended too. When
the first pass found new violators, the operator is asked *after*
enforcement, so a freshly discovered module never runs unsupervised while
the prompt is open.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

from .config import GuardConfig
from .decision_log import log_decision
from .enforce import enforce
from .host import ComponentHostProtocol
from .instructions import ModuleSnapshot
from .ledger import TrustLedger
from .reconcile import Scanner, SessionWorkingSets, reconcile
from .session import PROMPT_TEXT, DecisionSession

logger = logging.getLogger(__name__)

# (prompt text, pending identities) -> answers, or None to answer later via resolve()
PresentChoice = Callable[[str, Sequence[str]], Mapping[str, bool] | None]


def deny_all(prompt: str, pending: Sequence[str]) -> Mapping[str, bool]:
    """Non-interactive choice: every pending violator stays disabled."""
    return {identity: False for identity in pending}


class NetworkGuard:
    """Process-wide guard: load once, scan once, enforce on every start."""

    def __init__(
        self,
        config: GuardConfig,
        host: ComponentHostProtocol,
        discover: Callable[[], Iterable[ModuleSnapshot]],
        present_choice: PresentChoice = deny_all,
        scanner: Scanner | None = None,
    ):
        self.config = config
        self.host = host
        self.discover = discover
        self.present_choice = present_choice
        self.scanner = scanner if scanner is not None else config.scanner()

        self.ledger: TrustLedger | None = None
        self.working_sets: SessionWorkingSets | None = None
        self.session: DecisionSession | None = None
        self.scan_complete = False

    @property
    def ledger_path(self) -> Path:
        return self.config.ledger_path

    def awake(self) -> TrustLedger:
        """Load the ledger; later calls return the already loaded one."""
        if self.ledger is None:
            self.ledger = TrustLedger.load(self.ledger_path)
            logger.debug(f"Awake: {len(self.ledger)} trust records from {self.ledger_path}")
        return self.ledger

    def start(self) -> list[Any]:
        """
        Run one lifecycle pass.

        Returns:
            Component handles suspended by this pass
        """
        ledger = self.awake()

        working_sets = self.working_sets
        newly_discovered = False
        if working_sets is None:
            working_sets = reconcile(self.discover(), ledger, self.scanner)
            self.working_sets = working_sets
            self.scan_complete = True
            newly_discovered = working_sets.newly_discovered

        suspended = enforce(working_sets.violators, working_sets.permitted, self.host)

        if newly_discovered:
            self._prompt(working_sets, ledger)
        return suspended

    def _prompt(self, working_sets: SessionWorkingSets, ledger: TrustLedger) -> None:
        self.session = DecisionSession(working_sets, ledger, save=self._save)
        pending = self.session.pending()

        try:
            answers = self.present_choice(PROMPT_TEXT, pending)
        except Exception as e:
            logger.warning(f"Operator prompt failed; decisions deferred to next run: {e}")
            return
        if answers is not None:
            self.resolve(answers)

    def resolve(self, answers: Mapping[str, bool]) -> None:
        """Commit operator answers collected after start() returned."""
        if self.session is None or self.session.committed:
            logger.debug("No pending decision session to resolve")
            return
        pending = self.session.pending()
        records = self.session.commit(answers)
        self._log_decision(pending, len(records))

    def _save(self, ledger: TrustLedger) -> None:
        try:
            ledger.save(self.ledger_path)
        except (OSError, UnicodeError) as e:
            logger.warning(f"Cannot save trust ledger {self.ledger_path}: {e}")

    def _log_decision(self, pending: Sequence[str], record_count: int) -> None:
        if self.config.decision_log_path is None or self.working_sets is None:
            return
        permitted = [i for i in pending if self.working_sets.is_permitted(i)]
        denied = [i for i in pending if not self.working_sets.is_permitted(i)]
        try:
            log_decision(
                self.config.decision_log_path,
                "ledger-commit",
                permitted=permitted,
                denied=denied,
                records=record_count,
                metadata={"ledger": str(self.ledger_path)},
            )
        except OSError as e:
            logger.warning(f"Cannot append to decision log: {e}")
