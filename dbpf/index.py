from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO, List, Optional

from .constants import (
    COMPRESSION_DEFLATE,
    COMPRESSION_NONE,
    INDEX_CONST_GROUP,
    INDEX_CONST_INSTANCE_HI,
    INDEX_CONST_KIND,
    INDEX_MIN_ENTRY_SIZE,
    STORED_SIZE_COMPRESSED,
    STORED_SIZE_MASK,
)
from .errors import IndexSizeError, TruncatedArchiveError
from .header import ArchiveHeader
from .tgi import ResourceKey


_U32 = struct.Struct("<I")
# instance_lo u32, offset u32, stored_size|flag u32, memory_size u32, compression u16, committed u16
_ENTRY_TAIL_STRUCT = struct.Struct("<IIIIHH")
# Full explicit record: kind, group, instance_hi + tail (32 bytes)
_ENTRY_FULL_STRUCT = struct.Struct("<IIIIIIIHH")


@dataclass(frozen=True)
class DirectoryEntry:
    key: ResourceKey
    offset: int
    stored_size: int
    memory_size: int
    compression_tag: int = COMPRESSION_NONE
    committed: int = 1

    @property
    def is_compressed(self) -> bool:
        return self.compression_tag != COMPRESSION_NONE

    def pack(self) -> bytes:
        stored = self.stored_size
        tag = COMPRESSION_NONE
        if self.is_compressed:
            stored |= STORED_SIZE_COMPRESSED
            tag = self.compression_tag
        return _ENTRY_FULL_STRUCT.pack(
            self.key.kind,
            self.key.group,
            self.key.instance_hi,
            self.key.instance_lo,
            self.offset,
            stored,
            self.memory_size,
            tag,
            self.committed,
        )


def _read_exact(f: BinaryIO, n: int, what: str) -> bytes:
    raw = f.read(n)
    if len(raw) != n:
        raise TruncatedArchiveError(f"Truncated {what}: expected {n} bytes, got {len(raw)}")
    return raw


def _read_u32(f: BinaryIO, what: str) -> int:
    return _U32.unpack(_read_exact(f, 4, what))[0]


def read_index(f: BinaryIO, header: ArchiveHeader, file_size: int) -> List[DirectoryEntry]:
    """
    Load the directory entries described by ``header``.

    The block starts with ``index_type``; each of its low three bits marks one of
    kind, group and instance-high as stored once up front instead of per entry.
    Entries whose stored size carries the legacy compressed bit, no explicit tag,
    and a size that differs from the memory size are given the deflate tag so
    archives written by other tools still decode.
    """
    count = header.index_count
    # Bound the count before allocating anything for it
    if count * INDEX_MIN_ENTRY_SIZE > file_size:
        raise IndexSizeError(
            f"Invalid package header: index_count {count} too large for file size {file_size}"
        )
    f.seek(header.index_position)
    index_type = _read_u32(f, "index type")
    const_kind: Optional[int] = None
    const_group: Optional[int] = None
    const_hi: Optional[int] = None
    if index_type & INDEX_CONST_KIND:
        const_kind = _read_u32(f, "index constant kind")
    if index_type & INDEX_CONST_GROUP:
        const_group = _read_u32(f, "index constant group")
    if index_type & INDEX_CONST_INSTANCE_HI:
        const_hi = _read_u32(f, "index constant instance")

    entries: List[DirectoryEntry] = []
    for _ in range(count):
        kind = const_kind if const_kind is not None else _read_u32(f, "index entry")
        group = const_group if const_group is not None else _read_u32(f, "index entry")
        hi = const_hi if const_hi is not None else _read_u32(f, "index entry")
        lo, offset, stored_raw, memory_size, tag, committed = _ENTRY_TAIL_STRUCT.unpack(
            _read_exact(f, _ENTRY_TAIL_STRUCT.size, "index entry")
        )
        stored = stored_raw & STORED_SIZE_MASK
        if stored_raw & STORED_SIZE_COMPRESSED and tag == COMPRESSION_NONE and stored != memory_size:
            tag = COMPRESSION_DEFLATE
        entries.append(
            DirectoryEntry(
                key=ResourceKey(kind, group, (hi << 32) | lo),
                offset=offset,
                stored_size=stored,
                memory_size=memory_size,
                compression_tag=tag,
                committed=committed,
            )
        )
    return entries


def pack_index(entries: List[DirectoryEntry]) -> bytes:
    # Always the explicit layout: index_type 0, then 32 bytes per entry
    out = bytearray(_U32.pack(0))
    for e in entries:
        out += e.pack()
    return bytes(out)
