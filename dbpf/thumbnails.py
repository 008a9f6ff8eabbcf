from __future__ import annotations

import concurrent.futures as _fut
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .constants import DEFAULT_JOBS, KIND_THUMBNAIL, THUMBS_DIRNAME
from .errors import DbpfError
from .index import DirectoryEntry
from .reader import ArchiveReader
from .tgi import ResourceKey


def _extract_one(path: str, entry: DirectoryEntry, out_path: str) -> str:
    with ArchiveReader(path) as r:
        data = r.read_raw(entry)
    with open(out_path, "wb") as wf:
        wf.write(data)
    return out_path


def extract_thumbnails(path: str, *, outdir: Optional[str] = None, jobs: int = DEFAULT_JOBS) -> List[str]:
    """Write every thumbnail resource of ``path`` to ``<outdir>/<name>_<instance>.jpg``.

    ``name`` is the source package recorded in the manifest when the archive is a
    merge, otherwise the archive's own stem.

    Returns:
        Written file paths, sorted.
    """
    with ArchiveReader(path) as r:
        thumbs = [e for e in r.list() if e.key.kind == KIND_THUMBNAIL]
        if not thumbs:
            print(f"Warning: no thumbnail resources (0x{KIND_THUMBNAIL:08X}) found in {path}", file=sys.stderr)
            return []
        owners: Dict[ResourceKey, str] = {}
        if r.manifest_entry() is not None:
            try:
                owners = r.read_manifest().key_owners()
            except DbpfError as exc:
                print(f"Warning: unreadable manifest in {path}: {exc}", file=sys.stderr)

    out_root = outdir or os.path.join(os.path.dirname(os.path.abspath(path)), THUMBS_DIRNAME)
    os.makedirs(out_root, exist_ok=True)
    package_name = Path(path).stem

    with _fut.ThreadPoolExecutor(max_workers=max(1, int(jobs))) as ex:
        futures = []
        for e in thumbs:
            base = owners.get(e.key, package_name).replace("/", "_").replace("\\", "_")
            out_path = os.path.join(out_root, f"{base}_{e.key.instance:016X}.jpg")
            futures.append(ex.submit(_extract_one, path, e, out_path))
        written = [f.result() for f in futures]
    return sorted(written)
