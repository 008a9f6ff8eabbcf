from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Tuple

from .constants import (
    DBPF_MAGIC,
    HEADER_SIZE,
    INDEX_MINOR_VERSION,
    VERSION_MAJOR,
    VERSION_MINOR,
)
from .errors import TruncatedArchiveError, UnsupportedArchiveError


_HEADER_STRUCT = struct.Struct("<4sIIIIIIIIIIII3IQ6I")
# Fields (little endian):
# magic[4], major u32, minor u32, unused1..3 u32, created u32, modified u32,
# index_version u32, index_count u32, index_size_total_deprecated u32,
# unused4 u32, index_size u32, unused5 u32 x3, index_position u64,
# unused6 u32 x6


@dataclass
class ArchiveHeader:
    magic: bytes = DBPF_MAGIC
    major: int = VERSION_MAJOR
    minor: int = VERSION_MINOR
    unused1: int = 0
    unused2: int = 0
    unused3: int = 0
    created: int = 0
    modified: int = 0
    index_version: int = 0
    index_count: int = 0
    index_size_total_deprecated: int = 0
    unused4: int = 0
    index_size: int = 0
    unused5: Tuple[int, int, int] = (0, 0, 0)
    index_position: int = 0
    unused6: Tuple[int, ...] = field(default_factory=lambda: (0,) * 6)

    def is_valid(self) -> bool:
        # Only the signature and major version are checked; everything else is permissive
        return self.magic == DBPF_MAGIC and self.major == VERSION_MAJOR

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            self.magic,
            self.major,
            self.minor,
            self.unused1,
            self.unused2,
            self.unused3,
            self.created,
            self.modified,
            self.index_version,
            self.index_count,
            self.index_size_total_deprecated,
            self.unused4,
            self.index_size,
            *self.unused5,
            self.index_position,
            *self.unused6,
        )

    @classmethod
    def unpack(cls, raw: bytes) -> "ArchiveHeader":
        if len(raw) != HEADER_SIZE:
            raise TruncatedArchiveError(f"Header too short: {len(raw)} of {HEADER_SIZE} bytes")
        v = _HEADER_STRUCT.unpack(raw)
        return cls(
            magic=v[0],
            major=v[1],
            minor=v[2],
            unused1=v[3],
            unused2=v[4],
            unused3=v[5],
            created=v[6],
            modified=v[7],
            index_version=v[8],
            index_count=v[9],
            index_size_total_deprecated=v[10],
            unused4=v[11],
            index_size=v[12],
            unused5=tuple(v[13:16]),
            index_position=v[16],
            unused6=tuple(v[17:23]),
        )


def new_header(index_count: int = 0, index_position: int = 0, index_block_size: int = 0) -> ArchiveHeader:
    """Header as emitted by the writer.

    The block size goes in the legacy slot and ``index_size`` stays zero, which is
    what archives produced alongside ``index_version = 0`` carry.
    """
    return ArchiveHeader(
        index_version=0,
        index_count=index_count,
        unused4=index_block_size,
        index_size=0,
        unused5=(0, 0, INDEX_MINOR_VERSION),
        index_position=index_position,
    )


def read_header(f: BinaryIO) -> ArchiveHeader:
    f.seek(0)
    return ArchiveHeader.unpack(f.read(HEADER_SIZE))


def read_valid_header(f: BinaryIO) -> ArchiveHeader:
    header = read_header(f)
    if not header.is_valid():
        raise UnsupportedArchiveError(
            f"Invalid DBPF header or unsupported version (magic={header.magic!r}, major={header.major})"
        )
    return header


def write_header(f: BinaryIO, header: ArchiveHeader) -> None:
    f.seek(0)
    f.write(header.pack())
