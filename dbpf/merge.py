from __future__ import annotations

import concurrent.futures as _fut
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .constants import (
    COMMITTED_DEFAULT,
    COMPRESSION_DEFLATE,
    DEFAULT_JOBS,
    KIND_MANIFEST,
    MANIFEST_VERSION,
    MERGED_DIRNAME,
    MERGED_FILENAME,
    PACKAGE_EXT,
    is_manifest_kind,
)
from .errors import DbpfError, EmptyMergeError
from .manifest import ManifestEntry, ManifestResource, dumps_manifest
from .reader import ArchiveReader
from .tgi import ResourceKey
from .writer import ResourceData, write_archive


MANIFEST_KEY = ResourceKey(KIND_MANIFEST, 0, 0)


@dataclass
class SourceResult:
    path: str
    name: str
    keys: List[ResourceKey] = field(default_factory=list)
    resources: List[Tuple[ResourceKey, ResourceData]] = field(default_factory=list)


@dataclass
class MergeResult:
    output: Optional[str]
    processed: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    resource_count: int = 0


def find_archives(folder: str) -> List[str]:
    """Recursively list ``*.package`` files under ``folder``, sorted.

    A previous merge output (``merged/merged.package``) is left out.
    """
    previous = os.path.normcase(os.path.abspath(os.path.join(folder, MERGED_DIRNAME, MERGED_FILENAME)))
    found: List[str] = []
    for root, _dirs, files in os.walk(folder):
        for fn in files:
            if not fn.lower().endswith(PACKAGE_EXT):
                continue
            full = os.path.join(root, fn)
            if os.path.normcase(os.path.abspath(full)) == previous:
                continue
            found.append(full)
    found.sort()
    return found


def source_name(path: str) -> str:
    return Path(path).stem


def collect_source(path: str) -> SourceResult:
    """Read every non-manifest resource of one archive into memory, decoded."""
    res = SourceResult(path=path, name=source_name(path))
    with ArchiveReader(path) as r:
        for entry in r.list():
            if is_manifest_kind(entry.key.kind):
                continue
            data = r.read_raw(entry)
            # The decoded length wins over a mismatched index memory size
            res.resources.append(
                (entry.key, ResourceData(data, len(data), entry.compression_tag, entry.committed))
            )
            res.keys.append(entry.key)
    return res


def fold_sources(results: Iterable[SourceResult]) -> Tuple[Dict[ResourceKey, ResourceData], ManifestResource]:
    """Fold per-source results into one resource set plus the manifest describing it.

    Sources are applied in ascending path order; on a key collision the last one
    applied wins.
    """
    merged: Dict[ResourceKey, ResourceData] = {}
    manifest = ManifestResource(version=MANIFEST_VERSION, padding=0)
    for src in sorted(results, key=lambda s: s.path):
        manifest.entries.append(ManifestEntry(source_name=src.name, resources=list(src.keys)))
        for key, data in src.resources:
            merged[key] = data
    return merged, manifest


def merge_archives(paths: List[str], out_path: str, *, jobs: int = DEFAULT_JOBS) -> MergeResult:
    """
    Merge several archives into ``out_path`` with an embedded manifest.

    Sources are read in parallel. A source that fails to open or decode is
    reported on stderr and skipped. When nothing is left to write the call
    returns with ``output=None`` and no file is created.

    Raises:
        EmptyMergeError: If ``paths`` is empty.
    """
    if not paths:
        raise EmptyMergeError("No .package files given to merge")
    result = MergeResult(output=None)
    done: List[SourceResult] = []

    with _fut.ThreadPoolExecutor(max_workers=max(1, int(jobs))) as ex:
        futures = {ex.submit(collect_source, p): p for p in paths}
        for fut in _fut.as_completed(futures):
            p = futures[fut]
            try:
                done.append(fut.result())
            except (DbpfError, OSError, ValueError) as exc:
                print(f"Error: failed to read {p}: {exc}. Skipping.", file=sys.stderr)
                result.skipped[p] = str(exc)

    merged, manifest = fold_sources(done)
    result.processed = [e.source_name for e in manifest.entries]
    if not merged:
        print("Warning: no resources found to merge", file=sys.stderr)
        return result

    manifest_bytes = dumps_manifest(manifest)
    merged[MANIFEST_KEY] = ResourceData(
        manifest_bytes, len(manifest_bytes), COMPRESSION_DEFLATE, COMMITTED_DEFAULT
    )
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    write_archive(out_path, merged, force_compress=True, jobs=jobs)
    result.output = out_path
    result.resource_count = len(merged)
    return result


def merge_folder(folder: str, *, output: Optional[str] = None, jobs: int = DEFAULT_JOBS) -> MergeResult:
    """Merge every archive under ``folder`` into ``<folder>/merged/merged.package``."""
    paths = find_archives(folder)
    if not paths:
        raise EmptyMergeError(f"No .package files found to merge in {folder}")
    out_path = output or os.path.join(folder, MERGED_DIRNAME, MERGED_FILENAME)
    return merge_archives(paths, out_path, jobs=jobs)
