from typing import Dict


class DbpfError(Exception):
    """Base class for DBPF-specific errors."""


# Container format
class TruncatedArchiveError(DbpfError, OSError):
    """Short read while parsing the header, index, or a payload."""


class UnsupportedArchiveError(DbpfError):
    pass


class IndexSizeError(DbpfError):
    pass


class ArchiveTooLargeError(DbpfError):
    pass


# Codecs
class RefPackError(DbpfError):
    pass


class DeflateError(DbpfError):
    pass


# Manifest
class ManifestFormatError(DbpfError):
    pass


class ManifestNotFoundError(DbpfError):
    pass


# Preconditions
class EmptyMergeError(DbpfError):
    pass


class EmptyResourceSetError(DbpfError):
    pass


class UnmergeError(DbpfError):
    """One or more unmerge targets failed; the others were written."""

    def __init__(self, failures: Dict[str, str]):
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        super().__init__(f"Failed to rebuild {len(self.failures)} package(s): {names}")
