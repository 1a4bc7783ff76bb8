"""Module that implements file operations on top of a pooled SFTP session."""

import posixpath
from typing import List, Optional

import asyncssh

from tsfs.constants import MAX_SYMLINK_DEPTH, UPLOAD_CHUNK_SIZE
from tsfs.errors import DirectoryNotEmptyError, FileExists, TooManySymlinksError
from tsfs.filesystem.common import (
    DirectoryEntry,
    FileOperations,
    FileStat,
    FileType,
    sort_entries,
)
from tsfs.logger import component_log

log = component_log("sftp")


class SftpFileOperations(FileOperations):
    """
    File operations that run over an SFTP session of an established SSH connection.

    lstat is used rather than stat throughout and symbolic links are followed manually.
    Entries returned by readdir claim to be a symbolic link, but neither a file nor a
    directory, so the link target has to be inspected to tell what it points to. This
    also keeps symbolic links to directories from being treated as directories
    themselves, so deleting a link never deletes the contents of its target.
    """

    def __init__(self, sftp: asyncssh.SFTPClient):
        """Instantiate file operations for an open SFTP client."""
        self._sftp = sftp
        self._home_directory: Optional[str] = None

    #
    # Metadata access
    #

    async def stat(self, path: str) -> FileStat:
        attrs = await self._sftp.lstat(path)
        kind = await self._resolve_kind(path, attrs)

        # SFTP v3 has no creation time, so fall back to the modification time
        ctime = getattr(attrs, "crtime", None)
        if ctime is None:
            ctime = attrs.mtime

        return FileStat.from_seconds(kind, attrs.size, ctime, attrs.mtime)

    async def read_directory(self, path: str) -> List[DirectoryEntry]:
        entries: List[DirectoryEntry] = []

        for entry in await self._sftp.readdir(path):
            if entry.filename in (".", ".."):
                continue

            entry_path = posixpath.join(path, entry.filename)

            try:
                kind = await self._resolve_kind(entry_path, entry.attrs)
            except TooManySymlinksError:
                # A link loop only makes that one entry unresolvable
                log.debug(f"symbolic link loop at {entry_path}")
                kind = FileType.SYMBOLIC_LINK

            entries.append((entry.filename, kind))

        return sort_entries(entries)

    async def read_symbolic_link(self, path: str) -> str:
        target = await self._sftp.readlink(path)

        # Relative links are relative to the directory containing the link. This is a
        # POSIX path even if the local machine is not.
        if not target.startswith("/"):
            target = posixpath.join(posixpath.dirname(path), target)

        return target

    async def get_home_directory(self) -> str:
        if self._home_directory is None:
            self._home_directory = await self._sftp.realpath(".")

        return self._home_directory

    async def _resolve_kind(
        self, path: str, attrs: asyncssh.SFTPAttrs, depth: int = 0
    ) -> FileType:
        """Classify an entry, following symbolic links up to MAX_SYMLINK_DEPTH deep."""
        kind = FileType.from_mode(attrs.permissions)

        if kind != FileType.SYMBOLIC_LINK:
            return kind

        if depth >= MAX_SYMLINK_DEPTH:
            raise TooManySymlinksError(f"too many levels of symbolic links: {path}")

        target = await self.read_symbolic_link(path)

        try:
            target_attrs = await self._sftp.lstat(target)
        except (asyncssh.SFTPNoSuchFile, asyncssh.SFTPPermissionDenied) as e:
            log.debug(f"unresolvable symbolic link {path} -> {target}: {e}")
            return FileType.SYMBOLIC_LINK

        return FileType.SYMBOLIC_LINK | await self._resolve_kind(
            target, target_attrs, depth + 1
        )

    async def _exists(self, path: str) -> bool:
        try:
            await self._sftp.lstat(path)
        except asyncssh.SFTPNoSuchFile:
            return False

        return True

    #
    # File contents
    #

    async def read_file(self, path: str) -> bytes:
        f = await self._sftp.open(path, "rb")

        try:
            return await f.read()
        finally:
            await f.close()

    async def write_file(self, path: str, data: bytes) -> None:
        f = await self._sftp.open(path, "wb")

        try:
            await f.write(data)
        finally:
            await f.close()

    async def upload(self, local_path: str, remote_path: str) -> None:
        log.info(f"uploading {local_path} to {remote_path}")

        await self._sftp.put(local_path, remote_path, block_size=UPLOAD_CHUNK_SIZE)

    #
    # File system structure
    #

    async def create_directory(self, path: str) -> None:
        await self._sftp.makedirs(path, exist_ok=True)

    async def delete(self, path: str, recursive: bool = False) -> None:
        # Deleting never follows symbolic links, so lstat alone decides the kind
        attrs = await self._sftp.lstat(path)

        if FileType.from_mode(attrs.permissions) != FileType.DIRECTORY:
            await self._sftp.remove(path)
        elif recursive:
            await self._delete_tree(path)
        else:
            if await self._list_raw(path):
                raise DirectoryNotEmptyError(f"directory not empty: {path}")

            await self._sftp.rmdir(path)

    async def _delete_tree(self, path: str) -> None:
        """Delete a directory depth-first so that it is empty by the time it's removed."""
        for name, kind in await self._list_raw(path):
            entry_path = posixpath.join(path, name)

            if kind == FileType.DIRECTORY:
                await self._delete_tree(entry_path)
            else:
                await self._sftp.remove(entry_path)

        await self._sftp.rmdir(path)

    async def _list_raw(self, path: str) -> List[DirectoryEntry]:
        """List a directory without resolving symbolic links."""
        return [
            (entry.filename, FileType.from_mode(entry.attrs.permissions))
            for entry in await self._sftp.readdir(path)
            if entry.filename not in (".", "..")
        ]

    async def rename(self, old_path: str, new_path: str, overwrite: bool = False) -> None:
        if not overwrite:
            if await self._exists(new_path):
                raise FileExists(f"file already exists: {new_path}")

            await self._sftp.rename(old_path, new_path)
            return

        try:
            await self._sftp.posix_rename(old_path, new_path)
        except asyncssh.SFTPOpUnsupported:
            # Plain SFTP renames refuse to replace the target
            if await self._exists(new_path):
                await self.delete(new_path, recursive=True)

            await self._sftp.rename(old_path, new_path)
