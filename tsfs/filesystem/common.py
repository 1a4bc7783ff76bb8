"""Data structures and interfaces shared by the file system backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import enum
import stat
from typing import Any, Callable, Dict, List, Optional, Tuple


class FileType(enum.IntFlag):
    """Kind of a file system entry. Symbolic links are combined with their target."""

    UNKNOWN = 0
    FILE = 1
    DIRECTORY = 2
    SYMBOLIC_LINK = 64

    @staticmethod
    def from_mode(mode: Optional[int]) -> FileType:
        """Determine the kind of an entry from the st_mode bits reported for it."""
        if mode is None:
            return FileType.UNKNOWN
        elif stat.S_ISDIR(mode):
            return FileType.DIRECTORY
        elif stat.S_ISREG(mode):
            return FileType.FILE
        elif stat.S_ISLNK(mode):
            return FileType.SYMBOLIC_LINK
        else:
            return FileType.UNKNOWN

    @staticmethod
    def from_description(description: str) -> FileType:
        """Determine the kind of an entry from the %F output of stat(1)."""
        if description == "directory":
            return FileType.DIRECTORY
        elif description in ("regular file", "regular empty file"):
            return FileType.FILE
        elif description == "symbolic link":
            return FileType.SYMBOLIC_LINK
        else:
            return FileType.UNKNOWN


DirectoryEntry = Tuple[str, FileType]


@dataclass(frozen=True)
class FileStat:
    """Metadata of a file system entry with timestamps in milliseconds since epoch."""

    kind: FileType
    size: int
    ctime: int
    mtime: int

    @staticmethod
    def from_seconds(
        kind: FileType, size: Optional[int], ctime: Optional[float], mtime: Optional[float]
    ) -> FileStat:
        """Instantiate from timestamps in seconds, as reported by remote stat calls."""
        return FileStat(
            kind=kind,
            size=int(size or 0),
            ctime=int(round((ctime or 0) * 1000)),
            mtime=int(round((mtime or 0) * 1000)),
        )

    @staticmethod
    def from_stat_json(data: Dict[str, Any], kind: Optional[FileType] = None) -> FileStat:
        """
        Instantiate from the JSON document printed by stat(1) on the remote.

        The document has the form {"type": "%F", "size": %s, "ctime": %Z, "mtime": %Y}.
        The kind can be overridden, which is used for resolved symbolic links.
        """
        if kind is None:
            kind = FileType.from_description(data.get("type", ""))

        return FileStat.from_seconds(
            kind, data.get("size"), data.get("ctime"), data.get("mtime")
        )


def sort_entries(entries: List[DirectoryEntry]) -> List[DirectoryEntry]:
    """
    Sort directory entries the way a file explorer shows them.

    Directories (including links to directories) come first, then everything else, with
    each group ordered by name without regard to case.
    """

    def key(entry: DirectoryEntry) -> Tuple[bool, str, str]:
        name, kind = entry
        return (not kind & FileType.DIRECTORY, name.casefold(), name)

    return sorted(entries, key=key)


class FileOperations(ABC):
    """
    File system operations against a single remote host.

    Paths are plain (unescaped) POSIX paths that are either absolute or relative to the
    home directory of the remote user. Every operation is a network round trip.
    Concurrent calls on the same object are allowed, but may complete in any order.
    """

    @abstractmethod
    async def stat(self, path: str) -> FileStat:
        """Return metadata of an entry without following a symbolic link at path."""

    @abstractmethod
    async def read_directory(self, path: str) -> List[DirectoryEntry]:
        """List the entries of a directory, sorted with sort_entries()."""

    @abstractmethod
    async def read_file(self, path: str) -> bytes:
        """Return the contents of a file."""

    @abstractmethod
    async def write_file(self, path: str, data: bytes) -> None:
        """Replace the contents of a file, creating it if needed."""

    @abstractmethod
    async def create_directory(self, path: str) -> None:
        """Create a directory along with any missing parents."""

    @abstractmethod
    async def delete(self, path: str, recursive: bool = False) -> None:
        """Delete a file or directory, with its contents if recursive is set."""

    @abstractmethod
    async def rename(self, old_path: str, new_path: str, overwrite: bool = False) -> None:
        """Move an entry, replacing an existing target only if overwrite is set."""

    @abstractmethod
    async def get_home_directory(self) -> str:
        """Return the absolute path of the home directory of the remote user."""

    @abstractmethod
    async def read_symbolic_link(self, path: str) -> str:
        """Return the target of a symbolic link, made absolute if it was relative."""

    @abstractmethod
    async def upload(self, local_path: str, remote_path: str) -> None:
        """Stream a local file to the remote."""


# Wraps file operations once when they are created, e.g. with_timing()
Middleware = Callable[[FileOperations], FileOperations]


class Backend(ABC):
    """Supplier of FileOperations for remote hosts."""

    @abstractmethod
    async def get_file_operations(self, host: str) -> FileOperations:
        """Return file operations for a host, connecting and authenticating if needed."""

    @abstractmethod
    async def close_connection(self, host: str) -> None:
        """Release any connection held for a host."""

    @abstractmethod
    async def close_all(self) -> None:
        """Release all connections."""
