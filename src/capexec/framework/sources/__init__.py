"""
Enumeration sources.

Walker adapters decouple *where* items come from (file trees, database rows,
API listings) from *what* the engine does with them.
"""

from capexec.framework.sources.file import (
    FileSystemWalkerAdapter,
    FsEntry,
    FsPayload,
    FsWalkSpec,
    FsWalkSpecNorm,
    glob_to_regex,
)
from capexec.framework.sources.protocol import (
    Encountered,
    InvalidSpec,
    WalkerAdapter,
    aiter_supplier,
    maybe_await,
    walk,
)

__all__ = [
    # Protocol
    "Encountered",
    "InvalidSpec",
    "WalkerAdapter",
    "aiter_supplier",
    "maybe_await",
    "walk",
    # File system
    "FileSystemWalkerAdapter",
    "FsEntry",
    "FsPayload",
    "FsWalkSpec",
    "FsWalkSpecNorm",
    "glob_to_regex",
]
