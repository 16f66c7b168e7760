# grid_annote/mnemonic_seed.py
from __future__ import annotations

import hashlib

from mnemonic import Mnemonic


# BIP-39 English wordlist; entropy of 32 bytes -> 24 words.
MNEMONIC_LANGUAGE = "english"
ENTROPY_BYTES = 32

_WORDLIST = Mnemonic(MNEMONIC_LANGUAGE)


def passphrase_to_mnemonic(passphrase: str) -> str:
    """
    Deterministic recovery phrase for a passphrase.

    SHA-512 over the UTF-8 bytes, first 32 bytes taken as entropy, encoded as a
    checksummed BIP-39 phrase.
    """
    digest = hashlib.sha512(str(passphrase).encode("utf-8")).digest()
    return _WORDLIST.to_mnemonic(digest[:ENTROPY_BYTES])


def mnemonic_to_seed(phrase: str) -> bytes:
    """BIP-39 seed expansion (PBKDF2-HMAC-SHA512, salt "mnemonic", 2048 rounds)."""
    return Mnemonic.to_seed(phrase, passphrase="")
