from __future__ import annotations

import concurrent.futures as _fut
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .constants import DEFAULT_JOBS, PACKAGE_EXT, UNMERGED_DIRNAME
from .errors import DbpfError, UnmergeError
from .manifest import ManifestEntry
from .reader import ArchiveReader
from .tgi import ResourceKey
from .writer import ResourceData, write_archive


@dataclass
class UnmergeResult:
    outdir: str
    written: List[str] = field(default_factory=list)
    missing: Dict[str, List[ResourceKey]] = field(default_factory=dict)
    empty: List[str] = field(default_factory=list)


def target_filename(name: str) -> str:
    # Manifest names are plain file names; drop any directory part
    name = name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if name in ("", ".", ".."):
        name = "unnamed"
    if name.lower().endswith(PACKAGE_EXT):
        return name
    return name + PACKAGE_EXT


def _rebuild_one(path: str, entry: ManifestEntry, out_path: str) -> Tuple[List[ResourceKey], bool]:
    """Write one sub-archive; returns the listed keys that were not found and whether a file was written."""
    missing: List[ResourceKey] = []
    resources: Dict[ResourceKey, ResourceData] = {}
    # Own handle per worker; readers are not shared across threads
    with ArchiveReader(path) as r:
        for key in entry.resources:
            found = r.find(key)
            if found is None:
                print(
                    f"Warning: resource {key} listed in manifest for {entry.source_name!r} but not found in package",
                    file=sys.stderr,
                )
                missing.append(key)
                continue
            resources[key] = ResourceData(
                payload=r.read_stored(found),
                memory_size=found.memory_size,
                compression_tag=found.compression_tag,
                committed=found.committed,
                stored=True,
            )
    if not resources:
        return missing, False
    # Stored payloads: nothing to encode
    write_archive(out_path, resources, jobs=1)
    return missing, True


def _unique_name(filename: str, used: Dict[str, int]) -> str:
    # Two sources with the same stem would otherwise write the same file
    key = filename.lower()
    n = used.get(key, 0) + 1
    used[key] = n
    if n == 1:
        return filename
    root, ext = os.path.splitext(filename)
    return f"{root} ({n}){ext}"


def unmerge_archive(path: str, *, outdir: Optional[str] = None, jobs: int = DEFAULT_JOBS) -> UnmergeResult:
    """
    Split a merged archive back into the packages listed in its manifest.

    Each manifest entry becomes ``<outdir>/<name>.package`` holding exactly the
    listed resources, copied byte-for-byte with their original compression tag
    and committed flag. Keys missing from the archive are warned about and left
    out. Entries left with no resources produce no file.

    Raises:
        ManifestNotFoundError: If the archive carries no manifest.
        UnmergeError: If one or more targets failed; the rest are still written.
    """
    with ArchiveReader(path) as r:
        manifest = r.read_manifest()

    out_root = outdir or os.path.join(os.path.dirname(os.path.abspath(path)), UNMERGED_DIRNAME)
    os.makedirs(out_root, exist_ok=True)
    result = UnmergeResult(outdir=out_root)
    failures: Dict[str, str] = {}

    with _fut.ThreadPoolExecutor(max_workers=max(1, int(jobs))) as ex:
        futures = {}
        used: Dict[str, int] = {}
        for entry in manifest.entries:
            filename = _unique_name(target_filename(entry.source_name), used)
            out_path = os.path.join(out_root, filename)
            futures[ex.submit(_rebuild_one, path, entry, out_path)] = (filename, out_path)
        for fut in _fut.as_completed(futures):
            filename, out_path = futures[fut]
            try:
                missing, wrote = fut.result()
            except (DbpfError, OSError, ValueError) as exc:
                print(f"Error: failed to rebuild {filename}: {exc}", file=sys.stderr)
                failures[filename] = str(exc)
                continue
            if missing:
                result.missing[filename] = missing
            if wrote:
                result.written.append(out_path)
            else:
                print(f"Warning: no resources left for {filename}; nothing written", file=sys.stderr)
                result.empty.append(filename)

    result.written.sort()
    if failures:
        raise UnmergeError(failures)
    return result
