from __future__ import annotations

import argparse
import sys
import time
from collections import Counter
from typing import Dict, List, Optional

from dbpf.constants import DEFAULT_JOBS, KIND_THUMBNAIL, is_manifest_kind
from dbpf.errors import (
    DbpfError,
    IndexSizeError,
    TruncatedArchiveError,
    UnmergeError,
    UnsupportedArchiveError,
)
from dbpf.manifest import ManifestResource
from dbpf.merge import merge_folder
from dbpf.reader import ArchiveReader
from dbpf.resources import OpaqueResource, is_known_kind
from dbpf.thumbnails import extract_thumbnails
from dbpf.unmerge import unmerge_archive


def cmd_merge(folder: str, *, output: Optional[str] = None, jobs: int = DEFAULT_JOBS, quiet: bool = False) -> bool:
    """Merge every .package file under a folder into one package with a manifest.

    Args:
        folder: Directory searched recursively for .package files.
        output: Merged package path (default: <folder>/merged/merged.package).
        jobs: Maximum parallel workers.
        quiet: Print only the summary.

    Returns:
        True when a merged package was written. False when every source was
        skipped or empty; that is still a successful run and `dbpf merge` exits 0.
    """
    t0 = time.time()
    res = merge_folder(folder, output=output, jobs=jobs)
    if not quiet:
        for name in res.processed:
            print(f"MERGED   {name}")
        for path, msg in sorted(res.skipped.items()):
            print(f"SKIPPED  {path}: {msg}")
    if res.output is None:
        print("Nothing to merge: no resources found.")
        return False
    print(
        f"Done: {len(res.processed)} package(s) merged, {len(res.skipped)} skipped, "
        f"{res.resource_count} resource(s) in {time.time() - t0:.1f}s -> {res.output}"
    )
    return True


def cmd_unmerge(archive: str, *, outdir: Optional[str] = None, jobs: int = DEFAULT_JOBS, quiet: bool = False) -> bool:
    """Split a merged package back into its original packages.

    Args:
        archive: Merged .package file carrying a manifest.
        outdir: Output directory (default: "unmerged" next to the archive).
        jobs: Maximum parallel workers.
        quiet: Print only the summary.
    """
    res = unmerge_archive(archive, outdir=outdir, jobs=jobs)
    if not quiet:
        for p in res.written:
            print(f"WROTE    {p}")
        for name in sorted(res.empty):
            print(f"EMPTY    {name}")
    missing = sum(len(v) for v in res.missing.values())
    print(f"Done: {len(res.written)} package(s) written to {res.outdir}; missing resources={missing}")
    return True


def cmd_extract_thumbnails(archive: str, *, outdir: Optional[str] = None, jobs: int = DEFAULT_JOBS) -> bool:
    """Extract thumbnail resources as .jpg files.

    Args:
        archive: Package to read.
        outdir: Output directory (default: "thumbs" next to the archive).
        jobs: Maximum parallel workers.
    """
    written = extract_thumbnails(archive, outdir=outdir, jobs=jobs)
    print(f"Extracted {len(written)} thumbnail(s)")
    return bool(written)


def cmd_list(archive: str) -> bool:
    with ArchiveReader(archive) as r:
        for e in r.list():
            print(
                f"{e.key}  off=0x{e.offset:08X} stored={e.stored_size} mem={e.memory_size} "
                f"comp=0x{e.compression_tag:04X} committed={e.committed}"
            )
    return True


def cmd_info(archive: str) -> bool:
    """Show header fields, per-entry details and a compression summary.

    The first 20 entries, the last 5 and any manifest entry are printed with the
    first 8 stored bytes; up to 10 uncompressed entries are listed as samples.
    """
    with ArchiveReader(archive) as r:
        h = r.header
        entries = r.list()
        print(f"Package: {archive}")
        if h is not None:
            print(f"  Version: {h.major}.{h.minor}")
            print(f"  Index version: {h.index_version}")
            print(f"  Index count: {h.index_count}")
            print(f"  Index position: 0x{h.index_position:X}")
            print(f"  Index size: {h.index_size} (legacy slot {h.unused4})")
        uncompressed = []
        for i, e in enumerate(entries):
            if not e.is_compressed:
                uncompressed.append((i, e))
            if i < 20 or i >= len(entries) - 5 or is_manifest_kind(e.key.kind):
                head = r.read_stored(e)[:8]
                print(f"  Entry {i}: {e.key}")
                print(f"    Offset: 0x{e.offset:08X}  Stored: {e.stored_size}  Memory: {e.memory_size}")
                print(f"    Compression: 0x{e.compression_tag:04X}  Committed: 0x{e.committed:04X}")
                print(f"    Data head: {head.hex(' ').upper()}")
            elif i == 20:
                print("  ... skipping intermediate entries ...")
        compressed = len(entries) - len(uncompressed)
        total = len(entries) or 1
        print(f"  Entries: {len(entries)}")
        print(f"    Compressed: {compressed} ({compressed * 100.0 / total:.2f}%)")
        print(f"    Uncompressed: {len(uncompressed)} ({len(uncompressed) * 100.0 / total:.2f}%)")
        if uncompressed:
            print("  Uncompressed samples (up to 10):")
            for i, e in uncompressed[:10]:
                print(f"    Entry {i}: {e.key} size={e.memory_size}")
        manifest = r.manifest_entry()
        print(f"  Manifest: {manifest.key if manifest else 'none'}")
    return True


def cmd_investigate(archive: str) -> bool:
    """Report resource kinds and whether each one decodes.

    Prints one line per kind with KNOWN, UNKNOWN or FAILED status, plus the
    manifest's package list when present.
    """
    counts: Counter = Counter()
    failed: Dict[int, List[str]] = {}
    with ArchiveReader(archive) as r:
        for e in r.list():
            kind = e.key.kind
            counts[kind] += 1
            try:
                typed = r.read_typed(e)
            except DbpfError as exc:
                failed.setdefault(kind, []).append(str(exc))
                continue
            if isinstance(typed, OpaqueResource) and typed.error:
                failed.setdefault(kind, []).append(typed.error)
            elif isinstance(typed, ManifestResource) and is_manifest_kind(kind):
                print(f"--- Manifest (0x{kind:08X}) version {typed.version}, {len(typed.entries)} package(s) ---")
                for i, me in enumerate(typed.entries, 1):
                    print(f"  [{i:>2}] {me.source_name!r}: {len(me.resources)} resource(s)")
    print("Resource kind summary:")
    for kind in sorted(counts):
        if kind in failed:
            status = f"FAILED ({len(failed[kind])} errors)"
        elif is_known_kind(kind):
            status = "KNOWN"
        else:
            status = "UNKNOWN"
        print(f"  0x{kind:08X} | {counts[kind]:>5} | {status}")
    for kind, errs in sorted(failed.items()):
        print(f"  0x{kind:08X}: {errs[0]}", file=sys.stderr)
    return not failed


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="dbpf",
        description="DBPF .package tool: merge, unmerge and inspect packages",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_merge = sub.add_parser("merge", help="Merge all .package files in a folder into one package")
    ap_merge.add_argument("folder", help="Folder containing .package files (searched recursively)")
    ap_merge.add_argument("--output", "-o", help="Merged package path (default: <folder>/merged/merged.package)")
    ap_merge.add_argument("--jobs", "-j", type=int, default=DEFAULT_JOBS, help=f"Parallel jobs (default {DEFAULT_JOBS})")
    ap_merge.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_unmerge = sub.add_parser("unmerge", help="Split a merged package into its original packages using its manifest")
    ap_unmerge.add_argument("archive", help="Merged .package path")
    ap_unmerge.add_argument("--outdir", help="Output directory (default: 'unmerged' next to the package)")
    ap_unmerge.add_argument("--jobs", "-j", type=int, default=DEFAULT_JOBS, help=f"Parallel jobs (default {DEFAULT_JOBS})")
    ap_unmerge.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_extract = sub.add_parser("extract", help="Extract specific resource kinds")
    ext_sub = ap_extract.add_subparsers(dest="what", required=True)
    ap_thumbs = ext_sub.add_parser("thumbnails", help=f"Extract thumbnail resources (0x{KIND_THUMBNAIL:08X}) as .jpg files")
    ap_thumbs.add_argument("archive", help="Package path")
    ap_thumbs.add_argument("--outdir", help="Output directory (default: 'thumbs' next to the package)")
    ap_thumbs.add_argument("--jobs", "-j", type=int, default=DEFAULT_JOBS, help=f"Parallel jobs (default {DEFAULT_JOBS})")

    ap_list = sub.add_parser("list", help="List index entries")
    ap_list.add_argument("archive", help="Package path")

    ap_info = sub.add_parser("info", help="Show header and compression summary")
    ap_info.add_argument("archive", help="Package path")

    ap_inv = sub.add_parser("investigate", help="Scan resource kinds and report which ones decode")
    ap_inv.add_argument("archive", help="Package path")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "merge":
            cmd_merge(args.folder, output=args.output, jobs=args.jobs, quiet=args.quiet)
        elif args.cmd == "unmerge":
            cmd_unmerge(args.archive, outdir=args.outdir, jobs=args.jobs, quiet=args.quiet)
        elif args.cmd == "extract":
            cmd_extract_thumbnails(args.archive, outdir=args.outdir, jobs=args.jobs)
        elif args.cmd == "list":
            cmd_list(args.archive)
        elif args.cmd == "info":
            cmd_info(args.archive)
        elif args.cmd == "investigate":
            success = cmd_investigate(args.archive)
            sys.exit(0 if success else 1)
        else:
            raise RuntimeError("Unknown command")
    except UnmergeError as exc:
        for name, msg in sorted(exc.failures.items()):
            print(f"FAILED   {name}: {msg}", file=sys.stderr)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except (UnsupportedArchiveError, TruncatedArchiveError, IndexSizeError) as exc:
        print(f"Error: not a readable DBPF package: {exc}", file=sys.stderr)
        sys.exit(2)
    except (DbpfError, OSError, ValueError, RuntimeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
