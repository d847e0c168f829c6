"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pytest

from netwarden.config import GuardConfig
from netwarden.host import Component
from netwarden.instructions import Instruction, MethodBody, ModuleSnapshot, OpCode, TypeDef
from netwarden.scanner import CapabilityScanner

SOCKET_CTOR = "System.Void System.Net.Sockets.Socket::.ctor(System.Net.Sockets.AddressFamily)"


def make_type(name: str, *methods: tuple[str, Iterable[Instruction] | None]) -> TypeDef:
    """Build a type whose methods are all declared on it."""
    return TypeDef(
        name,
        tuple(
            MethodBody(method_name, name, None if body is None else tuple(body))
            for method_name, body in methods
        ),
    )


def make_module(
    identity: str,
    *targets: str,
    content: bytes | None = None,
    opcode: OpCode = OpCode.CALL,
) -> ModuleSnapshot:
    """A one-type, one-method module calling each target in turn."""
    if content is None:
        content = ("\n".join(targets) or identity).encode("utf-8")
    body = [Instruction(opcode, target) for target in targets]
    return ModuleSnapshot.capture(identity, content, [make_type("Plugin", ("Update", body))])


class SpyScanner:
    """Scanner wrapper counting which modules were actually scanned."""

    def __init__(self, inner: CapabilityScanner | None = None):
        self.inner = inner or CapabilityScanner()
        self.calls: list[str] = []

    def scan(self, module: ModuleSnapshot) -> bool:
        self.calls.append(module.identity)
        return self.inner.scan(module)


class Recorder(Component):
    """Component that records its lifecycle hooks."""

    def __init__(self) -> None:
        super().__init__()
        self.awake_calls = 0
        self.destroy_calls = 0
        self.ticks = 0

    def on_awake(self) -> None:
        self.awake_calls += 1
        self.invoke(self.tick, delay=1.0)

    def tick(self) -> None:
        self.ticks += 1

    def on_destroy(self) -> None:
        self.destroy_calls += 1


@pytest.fixture
def scanner() -> CapabilityScanner:
    return CapabilityScanner()


@pytest.fixture
def spy_scanner() -> SpyScanner:
    return SpyScanner()


@pytest.fixture
def plugin_dir(tmp_path: Path) -> Path:
    """Directory under the plugin root marker."""
    path = tmp_path / "plugins"
    path.mkdir()
    return path


@pytest.fixture
def guard_config(tmp_path: Path) -> GuardConfig:
    return GuardConfig(
        ledger_path=tmp_path / "state" / "netwarden.cfg",
        decision_log_path=tmp_path / "state" / "decisions.log",
    )
