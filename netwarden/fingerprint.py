"""
Content fingerprints for plugin modules.

Two digests live here and they are never interchangeable:

- fingerprint(): sha256 of a module's raw bytes, used to detect content drift
- fingerprint_identity(): sha256 of an identity string, used only to name a
  ledger section

Both are upper-case hex so they can be compared as plain strings.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Identity strings are hashed over a fixed encoding so record keys stay
# stable across platforms.
IDENTITY_ENCODING = "utf-16-le"

_CHUNK_SIZE = 1 << 16


def fingerprint(content: bytes) -> str:
    """Compute the sha256 content fingerprint of a byte string."""
    return hashlib.sha256(content).hexdigest().upper()


def fingerprint_identity(identity: str) -> str:
    """
    Compute the ledger record key for a module identity.

    Args:
        identity: Module identity (load location URI)

    Returns:
        Upper-case hex sha256 over the UTF-16-LE encoding of the identity
    """
    data = identity.encode(IDENTITY_ENCODING, errors="surrogatepass")
    return hashlib.sha256(data).hexdigest().upper()


def fingerprint_file(path: Path) -> str | None:
    """Stream a file through sha256, or return None if it cannot be read."""
    digest = hashlib.sha256()
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as e:
        logger.warning(f"Cannot fingerprint {path}: {e}")
        return None
    return digest.hexdigest().upper()
