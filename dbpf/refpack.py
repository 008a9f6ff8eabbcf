"""
RefPack decompression.

RefPack is a byte-oriented LZ77 variant. A stream starts with a compression
type byte, the ``0xFB`` signature, and a 3-byte (type high bit set) or 4-byte
big-endian size that is ignored here because the index carries the real
decompressed length. Opcodes follow:

- ``0x00-0x7F``: 2 bytes; 0-3 literals, copy 3-10 bytes from up to 1024 back
- ``0x80-0xBF``: 3 bytes; 0-3 literals, copy 4-67 bytes from up to 16384 back
- ``0xC0-0xDF``: 4 bytes; 0-3 literals, copy 5-1028 bytes from up to 131072 back
- ``0xE0-0xFB``: 1 byte; 4-112 literals, no copy
- ``0xFC-0xFF``: 1 byte; 0-3 literals, end of stream

Literals are taken from the input before each back-reference. Copies run one
byte at a time so an offset shorter than the length repeats the tail.
"""

from __future__ import annotations

from .constants import REFPACK_SIGNATURE
from .errors import RefPackError


def _copy_plain(src: bytes, r_pos: int, dest: bytearray, w_pos: int, count: int):
    if r_pos + count > len(src) or w_pos + count > len(dest):
        raise RefPackError(
            f"RefPack: plain copy out of bounds (read={r_pos}, write={w_pos}, count={count})"
        )
    dest[w_pos : w_pos + count] = src[r_pos : r_pos + count]
    return r_pos + count, w_pos + count


def _copy_ref(dest: bytearray, w_pos: int, count: int, offset: int) -> int:
    if offset > w_pos or w_pos + count > len(dest):
        raise RefPackError(
            f"RefPack: reference copy out of bounds (offset={offset}, pos={w_pos}, count={count}, len={len(dest)})"
        )
    for _ in range(count):
        dest[w_pos] = dest[w_pos - offset]
        w_pos += 1
    return w_pos


def decompress(data: bytes, memory_size: int) -> bytes:
    """Decode a RefPack stream into exactly ``memory_size`` bytes.

    Output past the point where the stream ends stays zero-filled.
    """
    if len(data) < 2:
        raise RefPackError("RefPack data too short")
    compression_type = data[0]
    signature = data[1]
    if signature != REFPACK_SIGNATURE:
        raise RefPackError(f"Invalid RefPack signature: expected 0xFB, got 0x{signature:02X}")
    size_bytes = 3 if compression_type & 0x80 else 4
    r_pos = 2 + size_bytes
    if r_pos > len(data):
        raise RefPackError("RefPack data too short for size header")

    out = bytearray(memory_size)
    w_pos = 0
    n = len(data)
    while w_pos < memory_size and r_pos < n:
        b0 = data[r_pos]
        r_pos += 1
        if b0 <= 0x7F:
            if r_pos >= n:
                break
            b1 = data[r_pos]
            r_pos += 1
            num_plain = b0 & 0x03
            num_copy = ((b0 >> 2) & 0x07) + 3
            offset = ((b0 & 0x60) << 3) + b1 + 1
        elif b0 <= 0xBF:
            if r_pos + 1 >= n:
                break
            b1, b2 = data[r_pos], data[r_pos + 1]
            r_pos += 2
            num_plain = (b1 & 0xC0) >> 6
            num_copy = (b0 & 0x3F) + 4
            offset = ((b1 & 0x3F) << 8) + b2 + 1
        elif b0 <= 0xDF:
            if r_pos + 2 >= n:
                break
            b1, b2, b3 = data[r_pos], data[r_pos + 1], data[r_pos + 2]
            r_pos += 3
            num_plain = b0 & 0x03
            num_copy = ((b0 & 0x0C) << 6) + b3 + 5
            offset = ((b0 & 0x10) << 12) + (b1 << 8) + b2 + 1
        elif b0 <= 0xFB:
            num_plain = ((b0 & 0x1F) << 2) + 4
            r_pos, w_pos = _copy_plain(data, r_pos, out, w_pos, num_plain)
            continue
        else:
            num_plain = b0 & 0x03
            r_pos, w_pos = _copy_plain(data, r_pos, out, w_pos, num_plain)
            break
        r_pos, w_pos = _copy_plain(data, r_pos, out, w_pos, num_plain)
        w_pos = _copy_ref(out, w_pos, num_copy, offset)
    return bytes(out)
