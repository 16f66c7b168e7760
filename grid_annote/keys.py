# grid_annote/keys.py
from __future__ import annotations

import base64
import hashlib
import hmac
from typing import List

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .domain import MAX_GRID_INDEX, GridCell, KeyIdentity
from .errors import CoordinateOutOfRange, InvalidNamespace
from .mnemonic_seed import mnemonic_to_seed, passphrase_to_mnemonic


# Domain-separation key for child seeds. Shared by every client; changing it
# changes every derived key.
DOMAIN_LABEL = b"necessitated/premises"

CHILD_SEED_BYTES = 32

# Base identity of a namespace lives at m/0/0.
IDENTITY_ROW = 0
IDENTITY_COLUMN = 0


# -----------------------------
# Validation
# -----------------------------

def validate_namespace(namespace: str) -> str:
    if not isinstance(namespace, str) or not namespace.strip():
        raise InvalidNamespace(f"Namespace must be a non-blank string, got {namespace!r}")
    return namespace


def _validate_index(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CoordinateOutOfRange(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > MAX_GRID_INDEX:
        raise CoordinateOutOfRange(f"{name} {value} outside 0..{MAX_GRID_INDEX}")
    return value


def _validate_dimension(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CoordinateOutOfRange(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > MAX_GRID_INDEX + 1:
        raise CoordinateOutOfRange(f"{name} {value} outside 0..{MAX_GRID_INDEX + 1}")
    return value


def _validate_second(second: int) -> int:
    if isinstance(second, bool) or not isinstance(second, int):
        raise CoordinateOutOfRange(f"second must be an integer, got {second!r}")
    if second < 0:
        raise CoordinateOutOfRange(f"second must be >= 0, got {second}")
    return second


# -----------------------------
# Seed -> key
# -----------------------------

def derive_child_seed(master_seed: bytes, row: int, column: int) -> bytes:
    """HMAC-SHA-512(DOMAIN_LABEL, master_seed || row || column)[:32]."""
    _validate_index("row", row)
    _validate_index("column", column)
    message = bytes(master_seed) + bytes([row, column])
    digest = hmac.new(DOMAIN_LABEL, message, hashlib.sha512).digest()
    return digest[:CHILD_SEED_BYTES]


def public_key_from_seed(seed: bytes) -> bytes:
    """Raw 32-byte Ed25519 public key for a 32-byte private seed."""
    private_key = Ed25519PrivateKey.from_private_bytes(bytes(seed))
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def encode_public_key(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _identity_from_master_seed(master_seed: bytes, row: int, column: int) -> KeyIdentity:
    child = derive_child_seed(master_seed, row, column)
    return KeyIdentity(
        path=f"m/{row}/{column}",
        public_key=encode_public_key(public_key_from_seed(child)),
    )


def derive_keypair(mnemonic_phrase: str, row: int, column: int) -> KeyIdentity:
    _validate_index("row", row)
    _validate_index("column", column)
    return _identity_from_master_seed(mnemonic_to_seed(mnemonic_phrase), row, column)


# -----------------------------
# Namespace level
# -----------------------------

def time_scoped_namespace(namespace: str, second: int) -> str:
    return f"{namespace}/T+{second}s"


def derive_namespace_identity(namespace: str) -> KeyIdentity:
    """Stable base key of a namespace; its graph lists the namespace's tags."""
    validate_namespace(namespace)
    return derive_keypair(passphrase_to_mnemonic(namespace), IDENTITY_ROW, IDENTITY_COLUMN)


def _grid_from_mnemonic(mnemonic_phrase: str, rows: int, columns: int) -> List[GridCell]:
    # Every cell shares the mnemonic, so the master seed is stretched once per grid.
    master_seed = mnemonic_to_seed(mnemonic_phrase)
    out: List[GridCell] = []
    for row in range(rows):
        for column in range(columns):
            ident = _identity_from_master_seed(master_seed, row, column)
            out.append(GridCell(row=row, column=column, public_key=ident.public_key))
    return out


def derive_grid(namespace: str, rows: int, columns: int) -> List[GridCell]:
    """All cells of [0,rows) x [0,columns) in row-major order."""
    validate_namespace(namespace)
    _validate_dimension("rows", rows)
    _validate_dimension("columns", columns)
    return _grid_from_mnemonic(passphrase_to_mnemonic(namespace), rows, columns)


def derive_time_scoped_grid(namespace: str, second: int, rows: int, columns: int) -> List[GridCell]:
    validate_namespace(namespace)
    _validate_second(second)
    return derive_grid(time_scoped_namespace(namespace, second), rows, columns)
