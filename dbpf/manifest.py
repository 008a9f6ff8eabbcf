"""
Merge manifest codec.

Layout (little endian)
- version u32
- padding u64 (ignored)
- entry_count u32
- per entry:
  - name_len u32, name (utf-8, name_len bytes)
  - resource_count u32
  - resource_count keys, each ``instance u64, kind u32, group u32``

Keys are stored instance-first here, unlike the index.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Dict, List

from .constants import MANIFEST_VERSION
from .errors import ManifestFormatError
from .tgi import ResourceKey


_MANIFEST_HDR = struct.Struct("<IQI")
_U32 = struct.Struct("<I")
_MANIFEST_KEY = struct.Struct("<QII")


@dataclass
class ManifestEntry:
    source_name: str
    resources: List[ResourceKey] = field(default_factory=list)


@dataclass
class ManifestResource:
    version: int = MANIFEST_VERSION
    padding: int = 0
    entries: List[ManifestEntry] = field(default_factory=list)

    def key_owners(self) -> Dict[ResourceKey, str]:
        """Map each listed key to the source name that contributed it (later entries win)."""
        owners: Dict[ResourceKey, str] = {}
        for entry in self.entries:
            for key in entry.resources:
                owners[key] = entry.source_name
        return owners


class _Cursor:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def take(self, n: int, what: str) -> bytes:
        if n < 0 or self.pos + n > len(self.data):
            raise ManifestFormatError(f"Manifest truncated reading {what} at offset {self.pos}")
        out = self.data[self.pos : self.pos + n]
        self.pos += n
        return out

    def remaining(self) -> int:
        return len(self.data) - self.pos


def loads_manifest(data: bytes) -> ManifestResource:
    cur = _Cursor(bytes(data))
    version, padding, entry_count = _MANIFEST_HDR.unpack(cur.take(_MANIFEST_HDR.size, "header"))
    # Every entry needs at least its two counts
    if entry_count * 8 > cur.remaining():
        raise ManifestFormatError(f"Manifest entry count {entry_count} exceeds payload size")
    entries: List[ManifestEntry] = []
    for _ in range(entry_count):
        (name_len,) = _U32.unpack(cur.take(4, "name length"))
        name = cur.take(name_len, "name").decode("utf-8", errors="replace")
        (res_count,) = _U32.unpack(cur.take(4, "resource count"))
        if res_count * _MANIFEST_KEY.size > cur.remaining():
            raise ManifestFormatError(f"Manifest resource count {res_count} for {name!r} exceeds payload size")
        keys: List[ResourceKey] = []
        for _ in range(res_count):
            instance, kind, group = _MANIFEST_KEY.unpack(cur.take(_MANIFEST_KEY.size, "resource key"))
            keys.append(ResourceKey(kind, group, instance))
        entries.append(ManifestEntry(source_name=name, resources=keys))
    return ManifestResource(version=version, padding=padding, entries=entries)


def dumps_manifest(manifest: ManifestResource) -> bytes:
    out = bytearray(_MANIFEST_HDR.pack(manifest.version, manifest.padding, len(manifest.entries)))
    for entry in manifest.entries:
        name = entry.source_name.encode("utf-8")
        out += _U32.pack(len(name))
        out += name
        out += _U32.pack(len(entry.resources))
        for key in entry.resources:
            out += _MANIFEST_KEY.pack(key.instance, key.kind, key.group)
    return bytes(out)
