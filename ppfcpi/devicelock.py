"""
Device-lock CSEC generation.

A locked pack carries an authentication blob whose inner key is folded out
of the target device's full identifier. Only firmware running the same fold
over its own identifier can open the AIVF record, so the pack installs on
that one device.
"""

from __future__ import annotations

import secrets
from typing import Optional, Union

from .chaining import (
    AIRI_KEY,
    OUTER_KEY,
    des_cbc_encrypt,
    triple_des_cbc_encrypt,
    vendor_pad,
)
from .chunks import encode_chunk, encode_container
from .errors import StructuralError

KEY_SLOT_LEN = 16
MAX_IDENTIFIER_LEN = 128
FIRST_BLOCK_LEN = 16
CSEC_LEN = 80
CSEC_VERSION = b"\x00\x01"

XOR_SEED = bytes((
    0x0F, 0x62, 0xBE, 0x39, 0xD1, 0x70, 0xC7, 0xF4,
    0x1A, 0x85, 0x2D, 0x5C, 0x96, 0xE8, 0x4B, 0xA3,
))

# Two key-slot indices per output byte, 16 entries per 8-byte DES key.
EXPANSION_TABLE = (
    0x07, 0x0C, 0x0E, 0x0A, 0x0B, 0x0D, 0x00, 0x01,
    0x06, 0x02, 0x0F, 0x03, 0x09, 0x04, 0x08, 0x05,
    0x00, 0x0F, 0x02, 0x08, 0x06, 0x09, 0x01, 0x0A,
    0x0E, 0x0C, 0x0B, 0x03, 0x04, 0x05, 0x07, 0x0D,
    0x07, 0x05, 0x0C, 0x04, 0x0F, 0x0D, 0x01, 0x09,
    0x08, 0x0A, 0x00, 0x03, 0x0B, 0x06, 0x0E, 0x02,
)


def _identifier_bytes(identifier: Union[str, bytes, bytearray, memoryview]) -> bytes:
    if isinstance(identifier, str):
        return identifier.encode("utf-8")
    if isinstance(identifier, (bytes, bytearray, memoryview)):
        return bytes(identifier)
    raise TypeError(f"Unsupported device identifier type: {type(identifier)!r}")


def derive_key_slot(identifier: Union[str, bytes, bytearray, memoryview]) -> bytes:
    """Fold a device identifier into the 16-byte key slot."""
    src = _identifier_bytes(identifier)[:MAX_IDENTIFIER_LEN]
    length = len(src)
    if length == 0:
        raise StructuralError("Device identifier is empty; no key material can be derived")

    out = bytearray(KEY_SLOT_LEN)
    if length >= KEY_SLOT_LEN:
        buf = src.ljust(MAX_IDENTIFIER_LEN, b"\x00")
        for i in range(KEY_SLOT_LEN):
            value = 0
            for base in range(0, MAX_IDENTIFIER_LEN, KEY_SLOT_LEN):
                value ^= buf[base + i]
            out[i] = value
    else:
        out[:length] = src
        for j in range(KEY_SLOT_LEN - length):
            out[length + j] = XOR_SEED[length + j] ^ src[j % length]
    return bytes(out)


def expand_key(key_slot: bytes) -> bytes:
    """Spread a 16-byte key slot into the 24-byte Triple-DES key."""
    if len(key_slot) != KEY_SLOT_LEN:
        raise ValueError(f"Key slot must be {KEY_SLOT_LEN} bytes, got {len(key_slot)}")
    out = bytearray(24)
    for group in range(3):
        for j in range(8):
            idx1 = EXPANSION_TABLE[group * 16 + 2 * j]
            idx2 = EXPANSION_TABLE[group * 16 + 2 * j + 1]
            out[group * 8 + j] = key_slot[idx1] ^ key_slot[idx2]
    return bytes(out)


def derive_second_block(key_slot: bytes, first_block: bytes) -> bytes:
    # byte j pairs with first_block[15 - j]
    return bytes(
        (key_slot[j] + first_block[FIRST_BLOCK_LEN - 1 - j]) & 0xFF
        for j in range(FIRST_BLOCK_LEN)
    )


def build_csec_plaintext(airi: bytes, aivf: bytes) -> bytes:
    abcf = encode_chunk("ABCF", CSEC_VERSION)
    abei = encode_container("ABEI", [encode_chunk("AIRI", airi), encode_chunk("AIVF", aivf)])
    return abcf + abei


def build_locked_csec(
    identifier: Union[str, bytes, bytearray, memoryview],
    first_block: Optional[bytes] = None,
) -> bytes:
    """
    Build the 80-byte CSEC blob bound to ``identifier``.

    ``first_block`` defaults to 16 fresh random bytes; pass a fixed value
    only to reproduce a blob.
    """
    key_slot = derive_key_slot(identifier)
    if first_block is None:
        first_block = secrets.token_bytes(FIRST_BLOCK_LEN)
    elif len(first_block) != FIRST_BLOCK_LEN:
        raise ValueError(f"First block must be {FIRST_BLOCK_LEN} bytes, got {len(first_block)}")
    second_block = derive_second_block(key_slot, first_block)

    airi = des_cbc_encrypt(vendor_pad(first_block), AIRI_KEY)
    aivf = triple_des_cbc_encrypt(second_block, expand_key(key_slot))

    plaintext = build_csec_plaintext(airi, aivf)
    return des_cbc_encrypt(vendor_pad(plaintext), OUTER_KEY)


__all__ = [
    "CSEC_LEN",
    "build_csec_plaintext",
    "build_locked_csec",
    "derive_key_slot",
    "derive_second_block",
    "expand_key",
]
