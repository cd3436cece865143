"""
Table-driven DES block cipher on 32-bit halves.

The initial and final permutations are done with five masked delta swaps
each, and the S-box substitution is fused with the P permutation into eight
64-entry tables indexed directly by the 6-bit expanded group. The result is
bit-identical to FIPS 46-3 for every key and block.
"""

from __future__ import annotations

import struct
from typing import Iterable, List, Sequence, Tuple

BLOCK_SIZE = 8

Subkey = Tuple[int, int]

# 56-of-64 key selection, split into the C and D halves (1-based key bits).
PC1_C = (
    57, 49, 41, 33, 25, 17, 9, 1, 58, 50, 42, 34, 26, 18,
    10, 2, 59, 51, 43, 35, 27, 19, 11, 3, 60, 52, 44, 36,
)
PC1_D = (
    63, 55, 47, 39, 31, 23, 15, 7, 62, 54, 46, 38, 30, 22,
    14, 6, 61, 53, 45, 37, 29, 21, 13, 5, 28, 20, 12, 4,
)

# 56-to-48 subkey selection (1-based bits of C||D).
PC2 = (
    14, 17, 11, 24, 1, 5, 3, 28, 15, 6, 21, 10,
    23, 19, 12, 4, 26, 8, 16, 7, 27, 20, 13, 2,
    41, 52, 31, 37, 47, 55, 30, 40, 51, 45, 33, 48,
    44, 49, 39, 56, 34, 53, 46, 42, 50, 36, 29, 32,
)

ROTATIONS = (1, 1, 2, 2, 2, 2, 2, 2, 1, 2, 2, 2, 2, 2, 2, 1)

# S-box i fused with P: entry g is the 32-bit P output of S_i(g).
SP_BOXES: Tuple[Tuple[int, ...], ...] = (
    # S1
    (
        0x00808200, 0x00000000, 0x00008000, 0x00808202, 0x00808002, 0x00008202, 0x00000002, 0x00008000,
        0x00000200, 0x00808200, 0x00808202, 0x00000200, 0x00800202, 0x00808002, 0x00800000, 0x00000002,
        0x00000202, 0x00800200, 0x00800200, 0x00008200, 0x00008200, 0x00808000, 0x00808000, 0x00800202,
        0x00008002, 0x00800002, 0x00800002, 0x00008002, 0x00000000, 0x00000202, 0x00008202, 0x00800000,
        0x00008000, 0x00808202, 0x00000002, 0x00808000, 0x00808200, 0x00800000, 0x00800000, 0x00000200,
        0x00808002, 0x00008000, 0x00008200, 0x00800002, 0x00000200, 0x00000002, 0x00800202, 0x00008202,
        0x00808202, 0x00008002, 0x00808000, 0x00800202, 0x00800002, 0x00000202, 0x00008202, 0x00808200,
        0x00000202, 0x00800200, 0x00800200, 0x00000000, 0x00008002, 0x00008200, 0x00000000, 0x00808002,
    ),
    # S2
    (
        0x40084010, 0x40004000, 0x00004000, 0x00084010, 0x00080000, 0x00000010, 0x40080010, 0x40004010,
        0x40000010, 0x40084010, 0x40084000, 0x40000000, 0x40004000, 0x00080000, 0x00000010, 0x40080010,
        0x00084000, 0x00080010, 0x40004010, 0x00000000, 0x40000000, 0x00004000, 0x00084010, 0x40080000,
        0x00080010, 0x40000010, 0x00000000, 0x00084000, 0x00004010, 0x40084000, 0x40080000, 0x00004010,
        0x00000000, 0x00084010, 0x40080010, 0x00080000, 0x40004010, 0x40080000, 0x40084000, 0x00004000,
        0x40080000, 0x40004000, 0x00000010, 0x40084010, 0x00084010, 0x00000010, 0x00004000, 0x40000000,
        0x00004010, 0x40084000, 0x00080000, 0x40000010, 0x00080010, 0x40004010, 0x40000010, 0x00080010,
        0x00084000, 0x00000000, 0x40004000, 0x00004010, 0x40000000, 0x40080010, 0x40084010, 0x00084000,
    ),
    # S3
    (
        0x00000104, 0x04010100, 0x00000000, 0x04010004, 0x04000100, 0x00000000, 0x00010104, 0x04000100,
        0x00010004, 0x04000004, 0x04000004, 0x00010000, 0x04010104, 0x00010004, 0x04010000, 0x00000104,
        0x04000000, 0x00000004, 0x04010100, 0x00000100, 0x00010100, 0x04010000, 0x04010004, 0x00010104,
        0x04000104, 0x00010100, 0x00010000, 0x04000104, 0x00000004, 0x04010104, 0x00000100, 0x04000000,
        0x04010100, 0x04000000, 0x00010004, 0x00000104, 0x00010000, 0x04010100, 0x04000100, 0x00000000,
        0x00000100, 0x00010004, 0x04010104, 0x04000100, 0x04000004, 0x00000100, 0x00000000, 0x04010004,
        0x04000104, 0x00010000, 0x04000000, 0x04010104, 0x00000004, 0x00010104, 0x00010100, 0x04000004,
        0x04010000, 0x04000104, 0x00000104, 0x04010000, 0x00010104, 0x00000004, 0x04010004, 0x00010100,
    ),
    # S4
    (
        0x80401000, 0x80001040, 0x80001040, 0x00000040, 0x00401040, 0x80400040, 0x80400000, 0x80001000,
        0x00000000, 0x00401000, 0x00401000, 0x80401040, 0x80000040, 0x00000000, 0x00400040, 0x80400000,
        0x80000000, 0x00001000, 0x00400000, 0x80401000, 0x00000040, 0x00400000, 0x80001000, 0x00001040,
        0x80400040, 0x80000000, 0x00001040, 0x00400040, 0x00001000, 0x00401040, 0x80401040, 0x80000040,
        0x00400040, 0x80400000, 0x00401000, 0x80401040, 0x80000040, 0x00000000, 0x00000000, 0x00401000,
        0x00001040, 0x00400040, 0x80400040, 0x80000000, 0x80401000, 0x80001040, 0x80001040, 0x00000040,
        0x80401040, 0x80000040, 0x80000000, 0x00001000, 0x80400000, 0x80001000, 0x00401040, 0x80400040,
        0x80001000, 0x00001040, 0x00400000, 0x80401000, 0x00000040, 0x00400000, 0x00001000, 0x00401040,
    ),
    # S5
    (
        0x00000080, 0x01040080, 0x01040000, 0x21000080, 0x00040000, 0x00000080, 0x20000000, 0x01040000,
        0x20040080, 0x00040000, 0x01000080, 0x20040080, 0x21000080, 0x21040000, 0x00040080, 0x20000000,
        0x01000000, 0x20040000, 0x20040000, 0x00000000, 0x20000080, 0x21040080, 0x21040080, 0x01000080,
        0x21040000, 0x20000080, 0x00000000, 0x21000000, 0x01040080, 0x01000000, 0x21000000, 0x00040080,
        0x00040000, 0x21000080, 0x00000080, 0x01000000, 0x20000000, 0x01040000, 0x21000080, 0x20040080,
        0x01000080, 0x20000000, 0x21040000, 0x01040080, 0x20040080, 0x00000080, 0x01000000, 0x21040000,
        0x21040080, 0x00040080, 0x21000000, 0x21040080, 0x01040000, 0x00000000, 0x20040000, 0x21000000,
        0x00040080, 0x01000080, 0x20000080, 0x00040000, 0x00000000, 0x20040000, 0x01040080, 0x20000080,
    ),
    # S6
    (
        0x10000008, 0x10200000, 0x00002000, 0x10202008, 0x10200000, 0x00000008, 0x10202008, 0x00200000,
        0x10002000, 0x00202008, 0x00200000, 0x10000008, 0x00200008, 0x10002000, 0x10000000, 0x00002008,
        0x00000000, 0x00200008, 0x10002008, 0x00002000, 0x00202000, 0x10002008, 0x00000008, 0x10200008,
        0x10200008, 0x00000000, 0x00202008, 0x10202000, 0x00002008, 0x00202000, 0x10202000, 0x10000000,
        0x10002000, 0x00000008, 0x10200008, 0x00202000, 0x10202008, 0x00200000, 0x00002008, 0x10000008,
        0x00200000, 0x10002000, 0x10000000, 0x00002008, 0x10000008, 0x10202008, 0x00202000, 0x10200000,
        0x00202008, 0x10202000, 0x00000000, 0x10200008, 0x00000008, 0x00002000, 0x10200000, 0x00202008,
        0x00002000, 0x00200008, 0x10002008, 0x00000000, 0x10202000, 0x10000000, 0x00200008, 0x10002008,
    ),
    # S7
    (
        0x00100000, 0x02100001, 0x02000401, 0x00000000, 0x00000400, 0x02000401, 0x00100401, 0x02100400,
        0x02100401, 0x00100000, 0x00000000, 0x02000001, 0x00000001, 0x02000000, 0x02100001, 0x00000401,
        0x02000400, 0x00100401, 0x00100001, 0x02000400, 0x02000001, 0x02100000, 0x02100400, 0x00100001,
        0x02100000, 0x00000400, 0x00000401, 0x02100401, 0x00100400, 0x00000001, 0x02000000, 0x00100400,
        0x02000000, 0x00100400, 0x00100000, 0x02000401, 0x02000401, 0x02100001, 0x02100001, 0x00000001,
        0x00100001, 0x02000000, 0x02000400, 0x00100000, 0x02100400, 0x00000401, 0x00100401, 0x02100400,
        0x00000401, 0x02000001, 0x02100401, 0x02100000, 0x00100400, 0x00000000, 0x00000001, 0x02100401,
        0x00000000, 0x00100401, 0x02100000, 0x00000400, 0x02000001, 0x02000400, 0x00000400, 0x00100001,
    ),
    # S8
    (
        0x08000820, 0x00000800, 0x00020000, 0x08020820, 0x08000000, 0x08000820, 0x00000020, 0x08000000,
        0x00020020, 0x08020000, 0x08020820, 0x00020800, 0x08020800, 0x00020820, 0x00000800, 0x00000020,
        0x08020000, 0x08000020, 0x08000800, 0x00000820, 0x00020800, 0x00020020, 0x08020020, 0x08020800,
        0x00000820, 0x00000000, 0x00000000, 0x08020020, 0x08000020, 0x08000800, 0x00020820, 0x00020000,
        0x00020820, 0x00020000, 0x08020800, 0x00000800, 0x00000020, 0x08020020, 0x00000800, 0x00020820,
        0x08000800, 0x00000020, 0x08000020, 0x08020000, 0x08020020, 0x08000000, 0x00020000, 0x08000820,
        0x00000000, 0x08020820, 0x00020020, 0x08000020, 0x08020000, 0x08000800, 0x08000820, 0x00000000,
        0x08020820, 0x00020800, 0x00020800, 0x00000820, 0x00000820, 0x00020020, 0x08000000, 0x08020800,
    ),
)

SP1, SP2, SP3, SP4, SP5, SP6, SP7, SP8 = SP_BOXES


def adjust_parity(key: bytes) -> bytes:
    """Replace bit 7 of every key byte so the byte has odd parity."""
    out = bytearray(len(key))
    for i, value in enumerate(key):
        low = value & 0x7F
        out[i] = low if bin(low).count("1") & 1 else low | 0x80
    return bytes(out)


def key_schedule(key: bytes) -> List[Subkey]:
    """Build the 16 round subkeys as (high 24 bits, low 24 bits) pairs."""
    if len(key) != BLOCK_SIZE:
        raise ValueError(f"DES key must be {BLOCK_SIZE} bytes, got {len(key)}")
    bits = int.from_bytes(key, "big")
    c = 0
    d = 0
    for pos in PC1_C:
        c = (c << 1) | ((bits >> (64 - pos)) & 1)
    for pos in PC1_D:
        d = (d << 1) | ((bits >> (64 - pos)) & 1)

    subkeys: List[Subkey] = []
    for shift in ROTATIONS:
        c = ((c << shift) | (c >> (28 - shift))) & 0x0FFFFFFF
        d = ((d << shift) | (d >> (28 - shift))) & 0x0FFFFFFF
        cd = (c << 28) | d
        hi = 0
        lo = 0
        for pos in PC2[:24]:
            hi = (hi << 1) | ((cd >> (56 - pos)) & 1)
        for pos in PC2[24:]:
            lo = (lo << 1) | ((cd >> (56 - pos)) & 1)
        subkeys.append((hi, lo))
    return subkeys


def initial_permutation(left: int, right: int) -> Tuple[int, int]:
    t = ((left >> 4) ^ right) & 0x0F0F0F0F
    right ^= t
    left ^= t << 4
    t = ((left >> 16) ^ right) & 0x0000FFFF
    right ^= t
    left ^= t << 16
    t = ((right >> 2) ^ left) & 0x33333333
    left ^= t
    right ^= t << 2
    t = ((right >> 8) ^ left) & 0x00FF00FF
    left ^= t
    right ^= t << 8
    t = ((left >> 1) ^ right) & 0x55555555
    right ^= t
    left ^= t << 1
    return left, right


def final_permutation(left: int, right: int) -> Tuple[int, int]:
    t = ((left >> 1) ^ right) & 0x55555555
    right ^= t
    left ^= t << 1
    t = ((right >> 8) ^ left) & 0x00FF00FF
    left ^= t
    right ^= t << 8
    t = ((right >> 2) ^ left) & 0x33333333
    left ^= t
    right ^= t << 2
    t = ((left >> 16) ^ right) & 0x0000FFFF
    right ^= t
    left ^= t << 16
    t = ((left >> 4) ^ right) & 0x0F0F0F0F
    right ^= t
    left ^= t << 4
    return left, right


def feistel(right: int, subkey: Subkey) -> int:
    """Round function: expansion, key mix and the fused S/P lookups."""
    k_hi, k_lo = subkey
    return (
        SP1[(((right & 1) << 5) | (right >> 27)) ^ (k_hi >> 18)]
        ^ SP2[((right >> 23) & 0x3F) ^ ((k_hi >> 12) & 0x3F)]
        ^ SP3[((right >> 19) & 0x3F) ^ ((k_hi >> 6) & 0x3F)]
        ^ SP4[((right >> 15) & 0x3F) ^ (k_hi & 0x3F)]
        ^ SP5[((right >> 11) & 0x3F) ^ (k_lo >> 18)]
        ^ SP6[((right >> 7) & 0x3F) ^ ((k_lo >> 12) & 0x3F)]
        ^ SP7[((right >> 3) & 0x3F) ^ ((k_lo >> 6) & 0x3F)]
        ^ SP8[(((right & 0x1F) << 1) | (right >> 31)) ^ (k_lo & 0x3F)]
    )


def _crypt_block(block: bytes, subkeys: Iterable[Subkey]) -> bytes:
    if len(block) != BLOCK_SIZE:
        raise ValueError(f"DES block must be {BLOCK_SIZE} bytes, got {len(block)}")
    left, right = struct.unpack(">II", block)
    left, right = initial_permutation(left, right)
    for subkey in subkeys:
        left, right = right, left ^ feistel(right, subkey)
    left, right = final_permutation(right, left)
    return struct.pack(">II", left, right)


def encrypt_block(block: bytes, subkeys: Sequence[Subkey]) -> bytes:
    return _crypt_block(block, subkeys)


def decrypt_block(block: bytes, subkeys: Sequence[Subkey]) -> bytes:
    return _crypt_block(block, reversed(subkeys))


__all__ = [
    "BLOCK_SIZE",
    "SP_BOXES",
    "adjust_parity",
    "decrypt_block",
    "encrypt_block",
    "feistel",
    "final_permutation",
    "initial_permutation",
    "key_schedule",
]
