"""
File system walker adapter.

Enumerates regular files (and symlinks to files) below a root directory.

Supports:
- Relative roots resolved against a base directory
- Include / exclude globs, absolute or relative to the root
- ``**`` crossing directories, ``*`` and ``?`` within one path segment
- Per-item payload (``FsPayload(rel_path)`` by default, or a custom factory)

Usage:
    from capexec.framework.sources.file import FileSystemWalkerAdapter, FsWalkSpec

    adapter = FileSystemWalkerAdapter()
    spec = FsWalkSpec(root="pages", include=("**/*.ts",), exclude=("**/node_modules/**",))
"""

from __future__ import annotations

import os
import re
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from capexec.core.errors import InvalidSpecError


@dataclass(frozen=True)
class FsWalkSpec:
    """User-facing file system spec."""

    root: str | Path
    base_dir: str | Path = "."
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()


@dataclass(frozen=True)
class FsWalkSpecNorm:
    """Normalized spec: absolute root plus pre-compiled absolute-path patterns."""

    abs_root: Path
    spec: FsWalkSpec
    include_res: tuple[re.Pattern[str], ...] = field(default_factory=tuple)
    exclude_res: tuple[re.Pattern[str], ...] = field(default_factory=tuple)

    @property
    def include_all(self) -> bool:
        return not self.include_res

    def accepts(self, path: str) -> bool:
        """Check an absolute path against the include / exclude patterns."""
        if not (self.include_all or any(r.match(path) for r in self.include_res)):
            return False
        return not any(r.match(path) for r in self.exclude_res)


@dataclass(frozen=True)
class FsEntry:
    """A file found during the walk."""

    path: Path
    name: str
    is_symlink: bool = False


@dataclass(frozen=True)
class FsPayload:
    """Default per-item payload."""

    rel_path: str


PayloadFactory = Callable[..., Any]


def glob_to_regex(pattern: str, prefix: str = "") -> re.Pattern[str]:
    """
    Compile a glob into an anchored regex over ``/``-separated paths.

    ``prefix`` is matched literally ahead of the pattern (the walk root for
    relative globs).

    ``**`` matches any number of path segments, ``*`` and ``?`` never
    cross a separator, ``[...]`` is a character class (``[!...]`` negates
    it but never matches ``/``) and ``{a,b}`` an alternation that may nest.
    """
    out: list[str] = [re.escape(prefix)]
    i, n = 0, len(pattern)
    depth = 0
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^/" + body[1:]
                out.append(f"[{body}]")
                i = end
        elif c == "{":
            depth += 1
            out.append("(?:")
        elif c == "}" and depth:
            depth -= 1
            out.append(")")
        elif c == "," and depth:
            out.append("|")
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


def _to_posix(path: str) -> str:
    return path.replace(os.sep, "/") if os.sep != "/" else path


def _compile_glob(abs_root: Path, glob: str) -> re.Pattern[str]:
    if os.path.isabs(glob):
        return glob_to_regex(_to_posix(glob))
    return glob_to_regex(_to_posix(glob), prefix=_to_posix(str(abs_root)).rstrip("/") + "/")


class FileSystemWalkerAdapter:
    """
    ``WalkerAdapter`` over local directory trees.

    Keys are absolute paths. Directory entries and file names are visited in
    sorted order so repeated walks over an unchanged tree are stable.
    """

    kind = "filesystem"

    def __init__(
        self,
        payload_factory: PayloadFactory | None = None,
        follow_symlinks: bool = False,
    ):
        """
        Args:
            payload_factory: Optional ``(norm, entry, abs_path, rel_path) -> payload``
                (sync or async); replaces the default ``FsPayload``
            follow_symlinks: Descend into symlinked directories
        """
        self.payload_factory = payload_factory
        self.follow_symlinks = follow_symlinks

    async def normalize(self, spec: FsWalkSpec) -> FsWalkSpecNorm:
        root = Path(spec.root)
        abs_root = Path(os.path.abspath(root if root.is_absolute() else Path(spec.base_dir) / root))

        if not abs_root.exists():
            raise InvalidSpecError(f"FS root does not exist: {abs_root}").with_context(path=str(abs_root))
        if not abs_root.is_dir():
            raise InvalidSpecError(f"FS root is not a directory: {abs_root}").with_context(path=str(abs_root))

        return FsWalkSpecNorm(
            abs_root=abs_root,
            spec=spec,
            include_res=tuple(_compile_glob(abs_root, g) for g in spec.include),
            exclude_res=tuple(_compile_glob(abs_root, g) for g in spec.exclude),
        )

    async def list(self, spec: FsWalkSpecNorm) -> AsyncIterator[FsEntry]:
        for dirpath, dirnames, filenames in os.walk(spec.abs_root, followlinks=self.follow_symlinks):
            dirnames.sort()
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if os.path.isdir(path):
                    continue
                if not spec.accepts(_to_posix(path)):
                    continue
                yield FsEntry(path=Path(path), name=name, is_symlink=os.path.islink(path))

    def key_of(self, spec: FsWalkSpecNorm, item: FsEntry) -> str:
        return str(item.path)

    def payload(self, spec: FsWalkSpecNorm, item: FsEntry) -> Any:
        rel_path = _to_posix(os.path.relpath(item.path, spec.abs_root))
        if self.payload_factory is not None:
            return self.payload_factory(
                norm=spec,
                entry=item,
                abs_path=str(item.path),
                rel_path=rel_path,
            )
        return FsPayload(rel_path=rel_path)


__all__ = [
    "FileSystemWalkerAdapter",
    "FsEntry",
    "FsPayload",
    "FsWalkSpec",
    "FsWalkSpecNorm",
    "glob_to_regex",
]
