"""
Typed views of resource payloads for inspection tools.

``decode_resource(kind, data)`` maps a kind code and decoded bytes to one of the
dataclasses below. Unrecognised kinds, and payloads a decoder rejects, come back
as ``OpaqueResource`` so callers always get the bytes. Merge and unmerge never go
through here; they copy bytes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .constants import KIND_MANIFEST, KIND_MANIFEST_ALT, KIND_THUMBNAIL
from .errors import DbpfError
from .manifest import loads_manifest


@dataclass
class OpaqueResource:
    kind: int
    data: bytes
    label: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TextResource:
    content: str


@dataclass
class NameMapResource:
    version: int
    names: Dict[int, str] = field(default_factory=dict)


@dataclass
class StringTableEntry:
    key_hash: int
    flags: int
    value: str


@dataclass
class StringTableResource:
    version: int
    is_compressed: int
    reserved: bytes
    string_length: int
    entries: List[StringTableEntry] = field(default_factory=list)


@dataclass
class ThumbnailResource:
    has_alpha: bool
    data: bytes


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def unpack(self, fmt: str):
        st = struct.Struct(fmt)
        if self.pos + st.size > len(self.data):
            raise ValueError(f"unexpected end of data at offset {self.pos}")
        vals = st.unpack_from(self.data, self.pos)
        self.pos += st.size
        return vals

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise ValueError(f"unexpected end of data at offset {self.pos}")
        out = self.data[self.pos : self.pos + n]
        self.pos += n
        return out


def _decode_text(data: bytes) -> TextResource:
    return TextResource(content=data.decode("utf-8", errors="replace"))


def _decode_name_map(data: bytes) -> NameMapResource:
    r = _Reader(data)
    version, count = r.unpack("<II")
    names: Dict[int, str] = {}
    for _ in range(count):
        instance, name_len = r.unpack("<QI")
        names[instance] = r.take(name_len).decode("utf-8", errors="replace")
    return NameMapResource(version=version, names=names)


def _decode_string_table(data: bytes) -> StringTableResource:
    r = _Reader(data)
    if r.take(4) != b"STBL":
        raise ValueError("bad STBL magic")
    version, is_compressed, count = r.unpack("<HBQ")
    reserved = r.take(2)
    (string_length,) = r.unpack("<I")
    # 7 bytes minimum per entry
    if count * 7 > len(data) - r.pos:
        raise ValueError(f"STBL entry count {count} exceeds payload size")
    entries: List[StringTableEntry] = []
    for _ in range(count):
        key_hash, flags, length = r.unpack("<IBH")
        entries.append(StringTableEntry(key_hash, flags, r.take(length).decode("utf-8", errors="replace")))
    return StringTableResource(version, is_compressed, reserved, string_length, entries)


def _decode_thumbnail(data: bytes) -> ThumbnailResource:
    has_alpha = len(data) > 28 and data[24:28] == b"ALFA"
    return ThumbnailResource(has_alpha=has_alpha, data=bytes(data))


_DECODERS: Dict[int, Callable[[bytes], object]] = {
    KIND_MANIFEST: loads_manifest,
    KIND_MANIFEST_ALT: loads_manifest,
    0x0166038C: _decode_name_map,
    0xF3A38370: _decode_name_map,
    0x220557AA: _decode_string_table,
    0x220557DA: _decode_string_table,
    0x034AEECB: _decode_text,
    0xE882D22F: _decode_text,
    0x738E14F4: _decode_text,
    0x6017E351: _decode_text,
    KIND_THUMBNAIL: _decode_thumbnail,
    0x0D338A3A: _decode_thumbnail,
    0x3BD45407: _decode_thumbnail,
    0x5B282D45: _decode_thumbnail,
    0xCD9DE247: _decode_thumbnail,
}

# Recognised kinds without a structured decoder
KIND_LABELS: Dict[int, str] = {
    0xC0DB5AE7: "object definition",
    0x545AC67A: "simdata",
    0x319E4F1D: "catalog object",
    0x9F5CFF10: "catalog style",
    0x3453CF95: "rle texture",
    0x00B2D882: "dst image",
    0xB6C8B6A0: "dst image",
    0x073FAA07: "python script",
    0x6B20C4F3: "animation clip",
    0x034AE111: "cas part",
    0x02D5DF13: "jazz graph",
    0x015A1849: "geometry",
    0x01D0E75D: "material definition",
    0x01D10F34: "model lod",
    0x01661233: "model",
    0x8EAF13DE: "rig",
    0x03B4C61D: "light",
    0x044AE110: "complate",
    0x033A1435: "texture compositor",
    0x0341ACC9: "texture compositor",
    0x02DC343F: "object key",
    0xC5F6763E: "sim modifier",
    0x00AE6C67: "bone delta",
    0x81CA1A10: "material table",
    0x76BCF80C: "trim",
    0x01A527DB: "audio",
    0x01EEF63A: "audio",
    0x2E75C764: "image",
    0x2F7D0004: "image",
}


def is_known_kind(kind: int) -> bool:
    return kind in _DECODERS or kind in KIND_LABELS


def decode_resource(kind: int, data: bytes) -> object:
    decoder = _DECODERS.get(kind)
    if decoder is None:
        return OpaqueResource(kind=kind, data=bytes(data), label=KIND_LABELS.get(kind))
    try:
        return decoder(bytes(data))
    except (ValueError, struct.error, DbpfError) as exc:
        return OpaqueResource(kind=kind, data=bytes(data), label=KIND_LABELS.get(kind), error=str(exc))
