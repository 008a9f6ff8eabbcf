# Magic and version
DBPF_MAGIC = b"DBPF"
VERSION_MAJOR = 2
VERSION_MINOR = 1
# Index minor version recorded in the header's reserved block
INDEX_MINOR_VERSION = 3

HEADER_SIZE = 96

# Index layout flags (low 3 bits of index_type)
INDEX_CONST_KIND = 1 << 0
INDEX_CONST_GROUP = 1 << 1
INDEX_CONST_INSTANCE_HI = 1 << 2
# Minimum on-disk bytes per index entry; bounds index_count against file size
INDEX_MIN_ENTRY_SIZE = 20

# Stored size high bit doubles as a legacy "compressed" flag
STORED_SIZE_COMPRESSED = 0x80000000
STORED_SIZE_MASK = 0x7FFFFFFF
MAX_U32 = 0xFFFFFFFF

# Compression tags (0=none, 0x5A42=deflate/zlib; 0xFFFF is RefPack in other tools)
COMPRESSION_NONE = 0x0000
COMPRESSION_DEFLATE = 0x5A42
COMPRESSION_REFPACK = 0xFFFF

REFPACK_SIGNATURE = 0xFB
ZLIB_HEADER = 0x78

COMMITTED_DEFAULT = 1

# Resource kinds
KIND_MANIFEST = 0x7FB6AD8A
KIND_MANIFEST_ALT = 0x73E93EEB
MANIFEST_KINDS = (KIND_MANIFEST, KIND_MANIFEST_ALT)
MANIFEST_VERSION = 1
KIND_THUMBNAIL = 0x3C1AF1F2

PACKAGE_EXT = ".package"
MERGED_DIRNAME = "merged"
MERGED_FILENAME = "merged.package"
UNMERGED_DIRNAME = "unmerged"
THUMBS_DIRNAME = "thumbs"

DEFAULT_JOBS = 4
DEFAULT_DEFLATE_LEVEL = 6


def is_manifest_kind(kind: int) -> bool:
    return kind in MANIFEST_KINDS
