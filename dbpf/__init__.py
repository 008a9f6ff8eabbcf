"""
dbpf: reading, writing, merging and un-merging DBPF ``.package`` archives.

Features:

- Header and index parsing, including the constant-field index layout and the
  legacy compressed bit on stored sizes.
- Payload codecs: deflate (zlib) for reading and writing, RefPack for reading.
- Merge a folder of packages into one archive with an embedded manifest, and
  split a merged archive back into its sources byte-for-byte.
- Inspection helpers: index listing, header info, per-kind decode report and
  thumbnail extraction.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "reader",
    "writer",
    "merge",
    "unmerge",
    "thumbnails",
]

# Programmatic API lives in dbpf.reader/dbpf.writer and dbpf.merge/dbpf.unmerge;
# the CLI functions in dbpf.cli (cmd_merge/cmd_unmerge) take normal parameters.
