"""
Modules that implement the file system operations against a single remote host.

A remote host is accessed through a FileOperations object, which exposes a small set of
coroutines (stat, read_directory, read_file, write_file, ...) on plain POSIX paths.
There are two interchangeable implementations:

* SFTP
    * Runs every operation over one SFTP session of a pooled SSH connection. This is
    the default since a connection is only set up once per host and user.
* ssh commands
    * Spawns an ssh process per operation that runs a GNU coreutils or findutils command
    on the remote. Much slower, but it only needs an ssh client locally and a shell
    remotely, which makes it a useful fallback for hosts where the SFTP subsystem is
    disabled.

Both report entries in the same way. Symbolic links are never followed implicitly when
modifying the file system, but their kind is resolved so that a link to a directory is
reported as both a symbolic link and a directory.

FileOperations can be wrapped by middleware like with_timing(), which is applied once
when the operations for a host are created.
"""

from .common import (
    Backend,
    DirectoryEntry,
    FileOperations,
    FileStat,
    FileType,
    Middleware,
    sort_entries,
)
from .sftp import SftpFileOperations
from .ssh import SshCommandBackend, SshFileOperations
from .timing import TimedFileOperations, with_timing

__all__ = [
    "Backend",
    "DirectoryEntry",
    "FileOperations",
    "FileStat",
    "FileType",
    "Middleware",
    "sort_entries",
    "SftpFileOperations",
    "SshCommandBackend",
    "SshFileOperations",
    "TimedFileOperations",
    "with_timing",
]
