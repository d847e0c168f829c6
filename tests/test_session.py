"""Tests for operator decision sessions and ledger commits."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import SOCKET_CTOR, make_module
from netwarden.ledger import TrustLedger, TrustRecord
from netwarden.reconcile import reconcile
from netwarden.scanner import CapabilityScanner
from netwarden.session import DecisionSession, label

A = "mod://plugins/A"
B = "mod://plugins/B"
CLEAN = "mod://plugins/Clean"
OLD = "mod://plugins/Removed"


@pytest.fixture
def ledger() -> TrustLedger:
    ledger = TrustLedger()
    ledger.upsert(TrustRecord.create(OLD, "AA", True, True))
    return ledger


@pytest.fixture
def session(ledger: TrustLedger, scanner: CapabilityScanner) -> DecisionSession:
    modules = [
        make_module(A, SOCKET_CTOR),
        make_module(B, "requests.get"),
        make_module(CLEAN, "json.dumps"),
    ]
    return DecisionSession(reconcile(modules, ledger, scanner), ledger)


class TestLabel:
    def test_name_and_path_from_plugin_root(self):
        assert label("file:///game/plugins/maps/world.py") == "world (plugins/maps/world.py)"

    def test_last_marker_occurrence_wins(self):
        assert label("file:///plugins/x/plugins/chat.py") == "chat (plugins/chat.py)"

    def test_marker_is_case_insensitive(self):
        assert label("file:///KSP/GameData/Relay.dll", "gamedata") == "Relay (GameData/Relay.dll)"

    def test_outside_plugin_root_uses_identity(self):
        assert label("mod://vendor/B") == "B (mod://vendor/B)"

    def test_percent_escapes_decoded(self):
        assert label("file:///game/plugins/world%20map.py") == "world map (plugins/world map.py)"


class TestPending:
    def test_lists_denied_violators(self, session: DecisionSession):
        assert session.active is True
        assert session.pending() == [A, B]

    def test_inactive_without_new_discoveries(self, scanner: CapabilityScanner):
        sets = reconcile([make_module(CLEAN, "json.dumps")], TrustLedger(), scanner)
        session = DecisionSession(sets, TrustLedger())
        assert session.active is False
        assert session.pending() == []


class TestCommit:
    def test_records_every_seen_module(self, session: DecisionSession, ledger: TrustLedger):
        written = session.commit({A: True, B: False})

        assert {r.identity for r in written} == {A, B, CLEAN}
        assert ledger.lookup(A).is_violator and ledger.lookup(A).is_permitted
        assert ledger.lookup(B).is_violator and not ledger.lookup(B).is_permitted
        assert not ledger.lookup(CLEAN).is_violator
        assert ledger.lookup(A).content_fingerprint == session.working_sets.all_modules[A].content_fingerprint

    def test_unseen_records_preserved(self, session: DecisionSession, ledger: TrustLedger):
        session.commit({A: True, B: True})
        assert ledger.lookup(OLD) == TrustRecord.create(OLD, "AA", True, True)

    def test_unanswered_violators_stay_denied(self, session: DecisionSession, ledger: TrustLedger):
        session.commit({A: True})
        assert ledger.lookup(B).is_permitted is False

    def test_answers_folded_into_working_sets(self, session: DecisionSession):
        session.commit({A: True, CLEAN: True})
        assert session.working_sets.is_permitted(A)
        assert CLEAN not in session.working_sets.violators
        assert session.working_sets.denied() == [B]

    def test_saves_whole_ledger(self, session: DecisionSession, tmp_path: Path):
        path = tmp_path / "netwarden.cfg"
        session._save = lambda ledger: ledger.save(path)
        session.commit({A: False, B: False})

        loaded = TrustLedger.load(path)
        assert set(loaded.identities()) == {A, B, CLEAN, OLD}
        assert session.committed is True

    def test_noop_without_new_discoveries(self, scanner: CapabilityScanner):
        saves = []
        ledger = TrustLedger()
        sets = reconcile([make_module(CLEAN, "json.dumps")], ledger, scanner)
        session = DecisionSession(sets, ledger, save=saves.append)

        assert session.commit({CLEAN: True}) == []
        assert saves == []
        assert len(ledger) == 0
        assert session.committed is False
