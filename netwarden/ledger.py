"""
Trust ledger: persisted verdicts for plugin modules.

Storage format: a line-oriented document of named sections, one per module,
each section named by the record key (sha256 of the module identity):

    3F2A...
    {
    	codebase = file%3A%2F%2F%2Fhost%2Fplugins%2Fchat.py
    	hash = 9B71...
    	violator = True
    	permitted = False
    }

Key properties:
- the whole document is rewritten on every save, never appended to
- sections are written in record-key order, so re-serializing an unchanged
  ledger reproduces the same bytes
- loading is tolerant: a missing or unparseable file is an empty ledger
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator
from urllib.parse import quote, unquote

from .fingerprint import fingerprint_identity

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
IDENTITY_ERRORS = "surrogatepass"

FIELD_CODEBASE = "codebase"
FIELD_HASH = "hash"
FIELD_VIOLATOR = "violator"
FIELD_PERMITTED = "permitted"


class LedgerFormatError(ValueError):
    """The persisted ledger document is structurally broken."""


@dataclass(frozen=True)
class TrustRecord:
    """
    Verdict for one module identity.

    `is_permitted` only means something when `is_violator` is true; the
    enforcer ignores it for clean modules.
    """

    record_key: str
    identity: str
    content_fingerprint: str
    is_violator: bool = False
    is_permitted: bool = False

    @classmethod
    def create(
        cls,
        identity: str,
        content_fingerprint: str,
        is_violator: bool,
        is_permitted: bool,
    ) -> TrustRecord:
        return cls(
            record_key=fingerprint_identity(identity),
            identity=identity,
            content_fingerprint=content_fingerprint,
            is_violator=is_violator,
            is_permitted=is_permitted,
        )


def encode_identity(identity: str) -> str:
    """
    Percent-encode an identity for the codebase field, `/` included.

    Lone surrogates (undecodable file names) are escaped as their raw UTF-8
    bytes, so every identity encodes to plain ASCII.
    """
    return quote(identity, safe="", errors=IDENTITY_ERRORS)


def decode_identity(value: str) -> str:
    """Reverse encode_identity(); malformed escapes are kept literally."""
    try:
        return unquote(value, errors=IDENTITY_ERRORS)
    except UnicodeDecodeError:
        logger.warning(f"Keeping undecodable ledger codebase literally: {value}")
        return value


def _parse_bool(value: str | None) -> bool:
    return value is not None and value.strip().lower() == "true"


def _format_bool(value: bool) -> str:
    return "True" if value else "False"


def _parse_sections(text: str) -> list[tuple[str, dict[str, str]]]:
    """Split a ledger document into (section name, fields) pairs."""
    sections: list[tuple[str, dict[str, str]]] = []
    pending_name: str | None = None
    current: dict[str, str] | None = None
    nested_depth = 0

    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.split("//", 1)[0].strip()
        if not line:
            continue

        if nested_depth:
            # sub-sections are not part of the schema; skip their contents
            if line.endswith("{"):
                nested_depth += 1
            elif line == "}":
                nested_depth -= 1
            continue

        if line.endswith("{"):
            name = line[:-1].strip() or pending_name
            if current is not None:
                nested_depth = 1
                pending_name = None
                continue
            if not name:
                raise LedgerFormatError(f"line {line_no}: section without a name")
            current = {}
            sections.append((name, current))
            pending_name = None
        elif line == "}":
            if current is None:
                raise LedgerFormatError(f"line {line_no}: unbalanced closing brace")
            current = None
        elif "=" in line:
            if current is None:
                raise LedgerFormatError(f"line {line_no}: value outside a section")
            key, value = line.split("=", 1)
            current.setdefault(key.strip(), value.strip())
        else:
            if pending_name is not None:
                raise LedgerFormatError(f"line {line_no}: section {pending_name!r} has no body")
            pending_name = line

    if current is not None or nested_depth:
        raise LedgerFormatError("unterminated section at end of document")
    if pending_name is not None:
        raise LedgerFormatError(f"section {pending_name!r} has no body")
    return sections


class TrustLedger:
    """Mapping of module identity to trust record, persisted as a whole."""

    def __init__(self, records: dict[str, TrustRecord] | None = None):
        self._records: dict[str, TrustRecord] = dict(records or {})

    # --- Mapping-ish access ---

    def lookup(self, identity: str) -> TrustRecord | None:
        return self._records.get(identity)

    def upsert(self, record: TrustRecord) -> None:
        self._records[record.identity] = record

    def identities(self) -> list[str]:
        return list(self._records)

    def records(self) -> list[TrustRecord]:
        """Records in canonical (record-key) order."""
        return sorted(self._records.values(), key=lambda r: (r.record_key, r.identity))

    def __iter__(self) -> Iterator[TrustRecord]:
        return iter(self.records())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: object) -> bool:
        return identity in self._records

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TrustLedger):
            return NotImplemented
        return self._records == other._records

    def __repr__(self) -> str:
        return f"TrustLedger({len(self._records)} records)"

    # --- Serialization ---

    def serialize(self) -> bytes:
        """Canonical document bytes for the whole ledger."""
        lines: list[str] = []
        for record in self.records():
            lines.extend([
                record.record_key,
                "{",
                f"\t{FIELD_CODEBASE} = {encode_identity(record.identity)}",
                f"\t{FIELD_HASH} = {record.content_fingerprint}",
                f"\t{FIELD_VIOLATOR} = {_format_bool(record.is_violator)}",
                f"\t{FIELD_PERMITTED} = {_format_bool(record.is_permitted)}",
                "}",
            ])
        text = "\n".join(lines) + "\n" if lines else ""
        return text.encode(ENCODING)

    @classmethod
    def parse(cls, data: bytes | str) -> TrustLedger:
        """
        Parse a ledger document.

        Raises:
            LedgerFormatError: if the document structure is broken
        """
        if isinstance(data, bytes):
            try:
                data = data.decode(ENCODING)
            except UnicodeDecodeError as e:
                raise LedgerFormatError(f"not {ENCODING} text: {e}") from e

        ledger = cls()
        for name, fields in _parse_sections(data):
            codebase = fields.get(FIELD_CODEBASE)
            if not codebase:
                logger.debug(f"Ignoring ledger section {name} without a codebase")
                continue

            record = TrustRecord.create(
                identity=decode_identity(codebase),
                content_fingerprint=fields.get(FIELD_HASH, ""),
                is_violator=_parse_bool(fields.get(FIELD_VIOLATOR)),
                is_permitted=_parse_bool(fields.get(FIELD_PERMITTED)),
            )
            if record.record_key != name:
                logger.debug(f"Ledger section {name} rekeyed to {record.record_key}")
            ledger.upsert(record)
        return ledger

    # --- Persistence ---

    @classmethod
    def load(cls, path: Path) -> TrustLedger:
        """Load a ledger file; missing or corrupt files yield an empty ledger."""
        if not path.exists():
            return cls()
        try:
            ledger = cls.parse(path.read_bytes())
        except (OSError, LedgerFormatError) as e:
            logger.warning(f"Ignoring unreadable trust ledger {path}: {e}")
            return cls()
        logger.debug(f"Loaded {len(ledger)} trust records from {path}")
        return ledger

    def save(self, path: Path) -> None:
        """Rewrite the ledger file atomically (write to temp, then rename)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(path.name + ".tmp")
        temp_path.write_bytes(self.serialize())
        temp_path.replace(path)
        logger.debug(f"Saved {len(self)} trust records to {path}")
