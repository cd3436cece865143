"""
Tag/length/value chunk codec used by PPF and CPI containers.

Every chunk is a 4-byte ASCII tag, a big-endian u32 payload length and the
payload itself. Readers only accept tags from a fixed vocabulary and skip any
other byte one at a time until the next recognized tag, which lets them walk
over the undocumented filler the vendor tools leave between chunks. Reading
never raises: a truncated container simply yields fewer chunks.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional

HEADER_LEN = 8
MAX_PAYLOAD_LEN = 0xFFFFFFFF

RECOGNIZED_TAGS = frozenset({
    b"XPFH", b"XPIH", b"XMDL", b"XPID",
    b"EUID", b"ETIT", b"BLOB", b"EEXT", b"EICO", b"FBIN",
    b"CSEC",
    # CSEC plaintext internals
    b"ABCF", b"AIRI", b"AIVF", b"ABEI",
})


@dataclass(frozen=True)
class Chunk:
    tag: str
    size: int
    data: bytes
    offset: int

    @property
    def truncated(self) -> bool:
        """True when the payload was clipped to the enclosing container."""
        return len(self.data) < self.size


def _tag_bytes(tag: "str | bytes") -> bytes:
    raw = tag.encode("ascii") if isinstance(tag, str) else bytes(tag)
    if len(raw) != 4:
        raise ValueError(f"Chunk tag must be exactly 4 bytes, got {raw!r}")
    return raw


def is_recognized_tag(buf: bytes, pos: int) -> bool:
    if pos < 0 or pos + 4 > len(buf):
        return False
    return bytes(buf[pos:pos + 4]) in RECOGNIZED_TAGS


def _skip_to_next_tag(buf: bytes, pos: int, end: int) -> int:
    while pos < end:
        if is_recognized_tag(buf, pos):
            return pos
        pos += 1
    return pos


def decode_chunks(buf: bytes, start: int = 0, end: Optional[int] = None) -> List[Chunk]:
    """Decode the sibling chunks found in ``buf[start:end]``."""
    mv = memoryview(bytes(buf))
    limit = len(mv) if end is None else max(0, min(end, len(mv)))
    chunks: List[Chunk] = []
    pos = max(0, start)
    while pos + HEADER_LEN <= limit:
        pos = _skip_to_next_tag(mv, pos, limit)
        if pos + HEADER_LEN > limit:
            break
        tag = bytes(mv[pos:pos + 4])
        size = struct.unpack_from(">I", mv, pos + 4)[0]
        data_start = pos + HEADER_LEN
        data_end = min(data_start + size, limit)
        chunks.append(Chunk(tag.decode("ascii"), size, bytes(mv[data_start:data_end]), pos))
        pos = data_end
    return chunks


def decode_children(chunk: Chunk) -> List[Chunk]:
    return decode_chunks(chunk.data, 0)


def chunk_text(chunk: Chunk) -> str:
    # Every NUL goes, not only the terminator; vendor files embed them mid-string.
    return chunk.data.decode("utf-8", errors="replace").replace("\x00", "")


def encode_chunk(tag: "str | bytes", payload: bytes) -> bytes:
    raw_tag = _tag_bytes(tag)
    payload = bytes(payload)
    if len(payload) > MAX_PAYLOAD_LEN:
        raise ValueError(f"Chunk payload too large for a u32 length: {len(payload)} bytes")
    out = bytearray(HEADER_LEN + len(payload))
    mv = memoryview(out)
    mv[0:4] = raw_tag
    struct.pack_into(">I", out, 4, len(payload))
    mv[HEADER_LEN:] = payload
    return bytes(out)


def encode_container(tag: "str | bytes", children: Iterable[bytes]) -> bytes:
    return encode_chunk(tag, b"".join(children))


def encode_text(tag: "str | bytes", text: str) -> bytes:
    return encode_chunk(tag, (text + "\0").encode("utf-8"))


__all__ = [
    "Chunk",
    "HEADER_LEN",
    "RECOGNIZED_TAGS",
    "chunk_text",
    "decode_children",
    "decode_chunks",
    "encode_chunk",
    "encode_container",
    "encode_text",
    "is_recognized_tag",
]
