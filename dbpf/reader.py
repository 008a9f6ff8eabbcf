from __future__ import annotations

import os
from typing import BinaryIO, Dict, List, Optional

from .codec import decode_payload
from .constants import is_manifest_kind
from .errors import DbpfError, ManifestNotFoundError, TruncatedArchiveError
from .header import ArchiveHeader, read_valid_header
from .index import DirectoryEntry, read_index
from .manifest import ManifestResource, loads_manifest
from .resources import decode_resource
from .tgi import ResourceKey


class ArchiveReader:
    """Random-access view of one DBPF archive.

    One instance owns one file handle. Threads that read concurrently must each
    open their own reader.
    """

    def __init__(self, path: str):
        self.path = path
        self.f: Optional[BinaryIO] = None
        self.header: Optional[ArchiveHeader] = None
        self.entries: List[DirectoryEntry] = []
        self.file_size: int = 0
        self._by_key: Dict[ResourceKey, DirectoryEntry] = {}

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        self.f = open(self.path, "rb")
        try:
            self.file_size = os.fstat(self.f.fileno()).st_size
            self.header = read_valid_header(self.f)
            self.entries = read_index(self.f, self.header, self.file_size)
            self._by_key = {}
            for e in self.entries:
                # Duplicate keys: the first index entry wins
                self._by_key.setdefault(e.key, e)
        except (DbpfError, OSError, ValueError):
            # Ensure file handle is closed on failure to avoid leaks
            self.close()
            raise

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def list(self) -> List[DirectoryEntry]:
        return self.entries

    def find(self, key: ResourceKey) -> Optional[DirectoryEntry]:
        return self._by_key.get(key)

    def read_stored(self, entry: DirectoryEntry) -> bytes:
        """Payload bytes exactly as stored on disk."""
        if self.f is None:
            raise RuntimeError("Archive not open")
        self.f.seek(entry.offset)
        data = self.f.read(entry.stored_size)
        if len(data) != entry.stored_size:
            raise TruncatedArchiveError(
                f"Resource {entry.key} truncated: expected {entry.stored_size} bytes at 0x{entry.offset:08X}, got {len(data)}"
            )
        return data

    def read_raw(self, entry: DirectoryEntry) -> bytes:
        """Decoded payload: decompressed when the entry is tagged compressed."""
        return decode_payload(entry.compression_tag, entry.memory_size, self.read_stored(entry))

    def read_typed(self, entry: DirectoryEntry) -> object:
        return decode_resource(entry.key.kind, self.read_raw(entry))

    def manifest_entry(self) -> Optional[DirectoryEntry]:
        for e in self.entries:
            if is_manifest_kind(e.key.kind):
                return e
        return None

    def read_manifest(self) -> ManifestResource:
        entry = self.manifest_entry()
        if entry is None:
            raise ManifestNotFoundError(
                f"No manifest found in {self.path}. This package cannot be un-merged automatically."
            )
        return loads_manifest(self.read_raw(entry))


def open_archive(path: str) -> ArchiveReader:
    r = ArchiveReader(path)
    r.open()
    return r
