"""
Module with the URI-level entry point to the virtual file system.

RemoteFileSystem is what the rest of an application talks to. It accepts ts:// URIs,
finds the file operations for the addressed host through a backend and makes sure that
every error it raises has been translated into the vocabulary of tsfs.errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from tsfs.config import Config
from tsfs.connections import ConnectionManager, ssh_dialer
from tsfs.errors import CrossHostError, translated
from tsfs.filesystem.common import Backend, DirectoryEntry, FileOperations, FileStat
from tsfs.filesystem.ssh import SshCommandBackend
from tsfs.filesystem.timing import with_timing
from tsfs.settings import FileSettings, Settings, UsernamePrompt
import tsfs.uri as uri


class RemoteFileSystem:
    """Virtual file system spanning all hosts of a tailnet, addressed by ts:// URIs."""

    def __init__(self, backend: Backend):
        """Instantiate the file system on top of a backend."""
        self.backend = backend

    @staticmethod
    def from_config(
        config: Config, prompt: UsernamePrompt, settings: Optional[Settings] = None
    ) -> RemoteFileSystem:
        """Set up the backend selected in the configuration."""
        if settings is None:
            settings = FileSettings(config)

        middleware = with_timing if config.ssh.log_timing else None

        backend: Backend

        if config.ssh.backend == "ssh":
            backend = SshCommandBackend(
                settings, prompt, config.ssh.ssh_command, middleware
            )
        else:
            backend = ConnectionManager(
                settings, prompt, ssh_dialer(config.ssh.known_hosts), middleware
            )

        return RemoteFileSystem(backend)

    async def _open(self, target: str) -> _Target:
        """Parse a URI and obtain the file operations for its host."""
        parsed = uri.parse(target)
        ops = await self.backend.get_file_operations(parsed.host)

        return _Target(parsed, uri.unescape(parsed.resource_path), ops)

    #
    # Metadata access
    #

    @translated("stat")
    async def stat(self, target: str) -> FileStat:
        t = await self._open(target)
        return await t.ops.stat(t.path)

    @translated("read_directory")
    async def read_directory(self, target: str) -> List[DirectoryEntry]:
        t = await self._open(target)
        return await t.ops.read_directory(t.path)

    @translated("read_symbolic_link")
    async def read_symbolic_link(self, target: str) -> str:
        t = await self._open(target)
        return await t.ops.read_symbolic_link(t.path)

    @translated("get_home_directory")
    async def get_home_directory(self, host: str) -> str:
        ops = await self.backend.get_file_operations(host)
        return await ops.get_home_directory()

    @translated("real_path")
    async def real_path(self, target: str) -> str:
        """Return the absolute remote path of a URI, expanding the home directory."""
        t = await self._open(target)

        if not uri.is_home_relative(t.path):
            return t.path

        return uri.expand_home(t.path, await t.ops.get_home_directory())

    #
    # File contents
    #

    @translated("read_file")
    async def read_file(self, target: str) -> bytes:
        t = await self._open(target)
        return await t.ops.read_file(t.path)

    @translated("write_file")
    async def write_file(self, target: str, content: bytes) -> None:
        t = await self._open(target)
        await t.ops.write_file(t.path, content)

    @translated("upload")
    async def upload(self, local_path: str, target: str) -> None:
        t = await self._open(target)
        await t.ops.upload(local_path, t.path)

    #
    # File system structure
    #

    @translated("create_directory")
    async def create_directory(self, target: str) -> None:
        t = await self._open(target)
        await t.ops.create_directory(t.path)

    @translated("delete")
    async def delete(self, target: str, recursive: bool = False) -> None:
        t = await self._open(target)
        await t.ops.delete(t.path, recursive)

    @translated("rename")
    async def rename(self, source: str, target: str, overwrite: bool = False) -> None:
        parsed_source = uri.parse(source)
        parsed_target = uri.parse(target)

        # Moving data between hosts is a copy, which rename must not do implicitly
        if (parsed_source.tailnet, parsed_source.host) != (
            parsed_target.tailnet,
            parsed_target.host,
        ):
            raise CrossHostError(
                f"cannot rename {source} to {target}: different hosts"
            )

        t = await self._open(source)
        await t.ops.rename(t.path, uri.unescape(parsed_target.resource_path), overwrite)

    #
    # Connections
    #

    async def close_connection(self, host: str) -> None:
        await self.backend.close_connection(host)

    async def close(self) -> None:
        await self.backend.close_all()


@dataclass
class _Target:
    """Parsed URI along with the plain path and file operations to act on it."""

    uri: uri.TsUri
    path: str
    ops: FileOperations
