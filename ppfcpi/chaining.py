"""Vendor padding, CBC chaining and Triple-DES EDE over the DES core."""

from __future__ import annotations

from typing import List

from .des import (
    BLOCK_SIZE,
    Subkey,
    adjust_parity,
    decrypt_block,
    encrypt_block,
    key_schedule,
)

OUTER_KEY = b"Foatfkio"  # payload and CSEC outer layer
AIRI_KEY = b"dualseal"
ZERO_IV = bytes(BLOCK_SIZE)


def vendor_pad(data: bytes) -> bytes:
    """
    Pad to a block boundary. Unlike PKCS#7 only the last byte carries
    information: it holds ``len(data) % 8`` and every other pad byte is zero.
    An already aligned input gains a whole block ending in 0.
    """
    remainder = len(data) % BLOCK_SIZE
    pad_len = BLOCK_SIZE - remainder
    padded = bytearray(len(data) + pad_len)
    padded[:len(data)] = data
    padded[-1] = remainder
    return bytes(padded)


def _schedule(key: bytes) -> List[Subkey]:
    return key_schedule(adjust_parity(key))


def _xor_block(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b))


def _check_aligned(data: bytes) -> None:
    if len(data) % BLOCK_SIZE:
        raise ValueError(f"CBC input must be a multiple of {BLOCK_SIZE} bytes, got {len(data)}")


def des_cbc_encrypt(data: bytes, key: bytes, iv: bytes = ZERO_IV) -> bytes:
    _check_aligned(data)
    if len(iv) != BLOCK_SIZE:
        raise ValueError(f"IV must be {BLOCK_SIZE} bytes")
    subkeys = _schedule(key)
    out = bytearray(len(data))
    prev = bytes(iv)
    for offset in range(0, len(data), BLOCK_SIZE):
        block = encrypt_block(_xor_block(data[offset:offset + BLOCK_SIZE], prev), subkeys)
        out[offset:offset + BLOCK_SIZE] = block
        prev = block
    return bytes(out)


def triple_des_cbc_encrypt(data: bytes, key: bytes) -> bytes:
    """EDE with three 8-byte sub-keys, chained from a zero IV."""
    _check_aligned(data)
    if len(key) != 3 * BLOCK_SIZE:
        raise ValueError(f"Triple-DES key must be {3 * BLOCK_SIZE} bytes, got {len(key)}")
    sk1 = _schedule(key[0:8])
    sk2 = _schedule(key[8:16])
    sk3 = _schedule(key[16:24])
    out = bytearray(len(data))
    prev = ZERO_IV
    for offset in range(0, len(data), BLOCK_SIZE):
        block = _xor_block(data[offset:offset + BLOCK_SIZE], prev)
        block = encrypt_block(decrypt_block(encrypt_block(block, sk1), sk2), sk3)
        out[offset:offset + BLOCK_SIZE] = block
        prev = block
    return bytes(out)


__all__ = [
    "AIRI_KEY",
    "OUTER_KEY",
    "ZERO_IV",
    "des_cbc_encrypt",
    "triple_des_cbc_encrypt",
    "vendor_pad",
]
