from __future__ import annotations

import concurrent.futures as _fut
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from .codec import encode_payload
from .constants import (
    COMMITTED_DEFAULT,
    COMPRESSION_NONE,
    DEFAULT_JOBS,
    HEADER_SIZE,
    MAX_U32,
    STORED_SIZE_MASK,
    is_manifest_kind,
)
from .errors import ArchiveTooLargeError, EmptyResourceSetError
from .header import new_header, write_header
from .index import DirectoryEntry, pack_index
from .tgi import ResourceKey


@dataclass
class ResourceData:
    """One resource queued for writing.

    ``payload`` is the decoded content unless ``stored`` is set, in which case it
    is the on-disk form and is written verbatim with its tag. ``memory_size`` is
    only written for stored payloads; a decoded payload records its own length.
    """

    payload: bytes
    memory_size: int
    compression_tag: int = COMPRESSION_NONE
    committed: int = COMMITTED_DEFAULT
    stored: bool = False

    @classmethod
    def from_bytes(cls, payload: bytes, compression_tag: int = COMPRESSION_NONE, committed: int = COMMITTED_DEFAULT) -> "ResourceData":
        return cls(payload=payload, memory_size=len(payload), compression_tag=compression_tag, committed=committed)


ResourceSet = Mapping[ResourceKey, ResourceData]


def write_order(keys) -> List[ResourceKey]:
    """Manifest resources first, then ascending (kind, group, instance)."""
    return sorted(keys, key=lambda k: (not is_manifest_kind(k.kind), k.kind, k.group, k.instance))


def _encode_one(item: Tuple[ResourceKey, ResourceData], force_compress: bool, level: Optional[int]) -> Tuple[bytes, int]:
    _key, res = item
    if res.stored:
        return res.payload, res.compression_tag
    return encode_payload(res.payload, res.compression_tag, force=force_compress, level=level)


def write_archive(
    out_path: str,
    resources: ResourceSet,
    *,
    force_compress: bool = False,
    jobs: int = DEFAULT_JOBS,
    level: Optional[int] = None,
) -> List[DirectoryEntry]:
    """
    Write ``resources`` as a new archive at ``out_path``.

    Payloads are encoded in parallel, then appended one after another since an
    offset is only known once everything before it is written. The index follows
    the payloads and the header is rewritten last with its final position.

    Returns:
        The directory entries in on-disk order.

    Raises:
        EmptyResourceSetError: If ``resources`` is empty (no file is created).
        ArchiveTooLargeError: If an offset or size does not fit the u32 fields.
    """
    if not resources:
        raise EmptyResourceSetError(f"No resources to write to {out_path}")
    order = write_order(resources.keys())
    items = [(k, resources[k]) for k in order]

    with _fut.ThreadPoolExecutor(max_workers=max(1, int(jobs))) as ex:
        encoded = list(ex.map(lambda it: _encode_one(it, force_compress, level), items))

    entries: List[DirectoryEntry] = []
    with open(out_path, "wb") as f:
        # Placeholder header; rewritten once the index position is known
        f.write(new_header().pack())
        f.seek(HEADER_SIZE)
        for (key, res), (data, tag) in zip(items, encoded):
            offset = f.tell()
            # Decoded payloads declare their own length
            memory_size = res.memory_size if res.stored else len(res.payload)
            if offset > MAX_U32:
                raise ArchiveTooLargeError(f"Archive body exceeds 4 GiB at resource {key}")
            if len(data) > STORED_SIZE_MASK or memory_size > MAX_U32:
                raise ArchiveTooLargeError(f"Resource {key} too large ({len(data)} bytes)")
            f.write(data)
            entries.append(
                DirectoryEntry(
                    key=key,
                    offset=offset,
                    stored_size=len(data),
                    memory_size=memory_size,
                    compression_tag=tag,
                    committed=res.committed,
                )
            )
        index_position = f.tell()
        index_block = pack_index(entries)
        f.write(index_block)
        write_header(f, new_header(len(entries), index_position, len(index_block)))
    return entries
