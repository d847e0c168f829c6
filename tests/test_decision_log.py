"""Tests for the decision log."""

from __future__ import annotations

import json
from pathlib import Path

from netwarden.decision_log import (
    DecisionEntry,
    format_decision_entry,
    log_decision,
    read_decision_log,
)


class TestDecisionLog:
    def test_append_and_read(self, tmp_path: Path):
        log_path = tmp_path / "logs" / "decisions.log"
        log_decision(log_path, "ledger-commit", permitted=["b", "a"], denied=["c"], records=3)
        log_decision(log_path, "ledger-commit", denied=["d"], records=1)

        entries = read_decision_log(log_path)
        assert [e.records for e in entries] == [3, 1]
        assert entries[0].permitted == ["a", "b"]
        assert entries[1].permitted == []

    def test_one_json_object_per_line(self, tmp_path: Path):
        log_path = tmp_path / "decisions.log"
        log_decision(log_path, "ledger-commit", metadata={"ledger": "netwarden.cfg"})
        lines = log_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["metadata"] == {"ledger": "netwarden.cfg"}

    def test_last_n(self, tmp_path: Path):
        log_path = tmp_path / "decisions.log"
        for i in range(5):
            log_decision(log_path, "ledger-commit", records=i)

        assert [e.records for e in read_decision_log(log_path, last_n=2)] == [3, 4]
        assert read_decision_log(log_path, last_n=0) == []

    def test_missing_log_is_empty(self, tmp_path: Path):
        assert read_decision_log(tmp_path / "absent.log") == []

    def test_malformed_lines_skipped(self, tmp_path: Path):
        log_path = tmp_path / "decisions.log"
        log_decision(log_path, "ledger-commit", records=1)
        with log_path.open("a", encoding="utf-8") as f:
            f.write("not json\n")
            f.write('{"operation": "missing timestamp"}\n')
            f.write("\n")
        log_decision(log_path, "ledger-commit", records=2)

        assert [e.records for e in read_decision_log(log_path)] == [1, 2]


class TestFormat:
    def test_format_entry(self):
        entry = DecisionEntry(
            timestamp="2026-01-01T00:00:00+00:00",
            operation="ledger-commit",
            permitted=["mod://plugins/A"],
            denied=["mod://plugins/B"],
            records=4,
            metadata={"ledger": "netwarden.cfg"},
        )
        assert format_decision_entry(entry) == (
            "[2026-01-01T00:00:00+00:00] ledger-commit (4 records)\n"
            "  Permitted: mod://plugins/A\n"
            "  Denied: mod://plugins/B\n"
            "  ledger: netwarden.cfg"
        )

    def test_round_trip_dict(self):
        entry = DecisionEntry(timestamp="t", operation="ledger-commit", denied=["x"])
        assert DecisionEntry.from_dict(entry.to_dict()) == entry
