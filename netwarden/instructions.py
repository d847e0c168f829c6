"""
Runtime-neutral instruction model for plugin modules.

A module is a set of types; each type declares methods; each method body is
a flat stream of instructions. Only call-like instructions carry meaning for
capability scanning, everything else is kept so readers can stay faithful to
what they saw.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from .fingerprint import fingerprint


class OpCode(str, Enum):
    """Instruction kinds understood by the scanner."""

    CALL = "call"  # direct call
    CALLVIRT = "callvirt"  # call through an instance
    NEWOBJ = "newobj"  # object construction
    LOAD = "load"  # attribute/name read
    OTHER = "other"

    @property
    def is_call(self) -> bool:
        return self in _CALL_OPCODES


_CALL_OPCODES = frozenset({OpCode.CALL, OpCode.CALLVIRT, OpCode.NEWOBJ})


@dataclass(frozen=True)
class Instruction:
    opcode: OpCode
    target: str | None = None  # fully qualified callee, None if unresolvable
    line: int | None = None


@dataclass(frozen=True)
class MethodBody:
    """A method as declared on a type. `instructions` is None when unreadable."""

    name: str
    declaring_type: str
    instructions: Sequence[Instruction] | None = field(default_factory=tuple)


@dataclass(frozen=True)
class TypeDef:
    name: str
    methods: Sequence[MethodBody] = field(default_factory=tuple)


@dataclass
class ModuleSnapshot:
    """
    One candidate module as seen during a single pass.

    `content_fingerprint` is None when the module's bytes could not be read.
    `instructions` may be lazy (a generator); it is only consumed when the
    module actually needs scanning.
    """

    identity: str
    content_fingerprint: str | None
    instructions: Iterable[TypeDef] = field(default_factory=tuple)

    @classmethod
    def capture(
        cls,
        identity: str,
        content: bytes | None,
        instructions: Iterable[TypeDef] = (),
    ) -> ModuleSnapshot:
        """Build a snapshot from raw content, fingerprinting it once."""
        digest = fingerprint(content) if content is not None else None
        return cls(identity=identity, content_fingerprint=digest, instructions=instructions)
