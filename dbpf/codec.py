from __future__ import annotations

import sys
import zlib
from typing import Optional, Tuple

from . import refpack
from .constants import (
    COMPRESSION_DEFLATE,
    COMPRESSION_NONE,
    DEFAULT_DEFLATE_LEVEL,
    REFPACK_SIGNATURE,
    ZLIB_HEADER,
)
from .errors import DeflateError


def looks_compressed(data: bytes) -> bool:
    """Sniff a zlib header or a RefPack signature at the start of ``data``."""
    return len(data) >= 2 and (data[0] == ZLIB_HEADER or data[1] == REFPACK_SIGNATURE)


def is_refpack(data: bytes) -> bool:
    return len(data) >= 2 and data[1] == REFPACK_SIGNATURE


class Codec:
    """Payload codec keyed by an index entry's compression tag.

    Any nonzero tag means compressed; the algorithm is picked by sniffing the
    stored bytes, so a tag written by another tool still decodes.
    """

    def __init__(self, compression_tag: int, level: Optional[int] = None):
        self.compression_tag = compression_tag
        self.level = level

    def compress(self, data: bytes) -> bytes:
        if self.compression_tag == COMPRESSION_NONE:
            return data
        try:
            return zlib.compress(data, self.level if self.level is not None else DEFAULT_DEFLATE_LEVEL)
        except zlib.error as e:
            raise DeflateError(f"deflate compression failed: {e}")

    def decompress(self, data: bytes, memory_size: int) -> bytes:
        if self.compression_tag == COMPRESSION_NONE:
            return data
        if is_refpack(data):
            return refpack.decompress(data, memory_size)
        # Declared compressed but stored as-is (compression did not pay off)
        stored_verbatim = len(data) == memory_size
        if stored_verbatim and data[:1] != bytes([ZLIB_HEADER]):
            return data
        try:
            out = zlib.decompress(data)
        except zlib.error as e:
            if stored_verbatim:
                return data
            raise DeflateError(f"Failed to decompress resource data (zlib): {e}")
        if len(out) != memory_size:
            print(
                f"Warning: decompressed size mismatch for resource: expected {memory_size}, got {len(out)}",
                file=sys.stderr,
            )
        return out


def decode_payload(compression_tag: int, memory_size: int, stored: bytes) -> bytes:
    return Codec(compression_tag).decompress(stored, memory_size)


def encode_payload(
    data: bytes,
    compression_tag: int = COMPRESSION_NONE,
    *,
    force: bool = False,
    level: Optional[int] = None,
) -> Tuple[bytes, int]:
    """Encode one payload for writing and return ``(stored_bytes, tag)``.

    Compression applies when ``force`` is set or the resource already carries a
    nonzero tag. Payloads that already look compressed pass through. A deflated
    form that is not smaller is discarded in favour of the input, still tagged as
    compressed.
    """
    if not force and compression_tag == COMPRESSION_NONE:
        return data, COMPRESSION_NONE
    if looks_compressed(data):
        return data, COMPRESSION_DEFLATE
    compressed = Codec(COMPRESSION_DEFLATE, level).compress(data)
    if len(compressed) < len(data):
        return compressed, COMPRESSION_DEFLATE
    return data, COMPRESSION_DEFLATE
