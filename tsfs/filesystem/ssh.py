"""
Module that implements file operations by running shell commands through ssh.

Every operation spawns a new ssh process that runs a standard POSIX utility on the
remote (stat, ls, cat, mkdir, rm, mv). This needs nothing but an ssh client and a login
shell on the remote, at the cost of a full connection setup for every call. It serves
as a fallback for hosts where SFTP is unavailable.
"""

import asyncio
import json
import math
import posixpath
import shlex
from typing import Awaitable, Callable, Dict, IO, List, Optional

from tsfs.auth import with_username_retry
from tsfs.constants import UPLOAD_CHUNK_SIZE
from tsfs.errors import (
    AuthenticationError,
    classify,
    ConnectionTimeoutError,
    FileExists,
    FileNotFound,
    Unavailable,
)
from tsfs.filesystem.common import (
    Backend,
    DirectoryEntry,
    FileOperations,
    FileStat,
    FileType,
    Middleware,
    sort_entries,
)
from tsfs.logger import component_log, summarize
from tsfs.settings import resolve_username, Settings, UsernamePrompt

log = component_log("ssh")

# Format for stat(1) that prints the metadata of a file as a JSON document
STAT_FORMAT = '{"type": "%F", "size": %s, "ctime": %Z, "mtime": %Y}'

# Exit status of the ssh client itself when it fails to connect or authenticate
SSH_ERROR_CODE = 255

# Entry types reported by find -printf %y and %Y
_FIND_TYPES = {
    "f": FileType.FILE,
    "d": FileType.DIRECTORY,
    "l": FileType.SYMBOLIC_LINK,
}

# Runs a shell command on a host and returns its standard output. Either bytes or a
# local file to stream can be supplied as standard input.
RunFunction = Callable[..., Awaitable[bytes]]


class RemoteCommandError(Exception):
    """Exception raised when a remote command exits with a non-zero status."""

    def __init__(self, message: str, returncode: int) -> None:
        """Instantiate the error with the stderr output and exit status."""
        super().__init__(message)

        self.returncode = returncode


def _q(path: str) -> str:
    return shlex.quote(path)


class SshFileOperations(FileOperations):
    """File operations for one host implemented as shell commands."""

    def __init__(self, run: RunFunction):
        """Instantiate with a function that runs commands on the host."""
        self._run = run
        self._home_directory: Optional[str] = None

    async def stat(self, path: str) -> FileStat:
        data = await self._stat_json(path, follow_symlinks=False)
        kind = FileType.from_description(data.get("type", ""))

        if kind == FileType.SYMBOLIC_LINK:
            try:
                target = await self._stat_json(path, follow_symlinks=True)
            except RemoteCommandError as e:
                if classify(e) is not FileNotFound:
                    raise

                log.debug(f"dangling symbolic link {path}")
            else:
                kind |= FileType.from_description(target.get("type", ""))

        return FileStat.from_stat_json(data, kind)

    async def _stat_json(self, path: str, follow_symlinks: bool) -> Dict:
        flags = "-L -c" if follow_symlinks else "-c"
        out = await self._run(f"stat {flags} {_q(STAT_FORMAT)} -- {_q(path)}")

        return json.loads(out.decode().strip())

    async def read_directory(self, path: str) -> List[DirectoryEntry]:
        # %y is the type of the entry itself and %Y the type of what it resolves to
        out = await self._run(
            f"find -H -- {_q(path)} -mindepth 1 -maxdepth 1 -printf '%y %Y %f\\0'"
        )

        entries: List[DirectoryEntry] = []

        for record in out.decode(errors="surrogateescape").split("\0"):
            if record == "":
                continue

            own_type, target_type, name = record.split(" ", 2)
            kind = _FIND_TYPES.get(own_type, FileType.UNKNOWN)

            # Dangling links and link loops resolve to N and L respectively
            if kind == FileType.SYMBOLIC_LINK:
                kind |= _FIND_TYPES.get(target_type, FileType.UNKNOWN)

            entries.append((name, kind))

        return sort_entries(entries)

    async def read_file(self, path: str) -> bytes:
        return await self._run(f"cat -- {_q(path)}")

    async def write_file(self, path: str, data: bytes) -> None:
        await self._run(f"cat > {_q(path)}", data=data)

    async def upload(self, local_path: str, remote_path: str) -> None:
        log.info(f"uploading {local_path} to {remote_path}")

        await self._run(f"cat > {_q(remote_path)}", source_path=local_path)

    async def create_directory(self, path: str) -> None:
        await self._run(f"mkdir -p -- {_q(path)}")

    async def delete(self, path: str, recursive: bool = False) -> None:
        # Only the entry itself matters, rm never follows symbolic links
        data = await self._stat_json(path, follow_symlinks=False)

        if FileType.from_description(data.get("type", "")) != FileType.DIRECTORY:
            await self._run(f"rm -- {_q(path)}")
        elif recursive:
            await self._run(f"rm -r -- {_q(path)}")
        else:
            # rmdir refuses non-empty directories with "Directory not empty"
            await self._run(f"rmdir -- {_q(path)}")

    async def rename(self, old_path: str, new_path: str, overwrite: bool = False) -> None:
        if not overwrite:
            out = await self._run(
                f"if [ -e {_q(new_path)} ] || [ -L {_q(new_path)} ]; then echo exists; fi"
            )

            if out.strip():
                raise FileExists(f"file already exists: {new_path}")

        await self._run(f"mv -f -- {_q(old_path)} {_q(new_path)}")

    async def get_home_directory(self) -> str:
        if self._home_directory is None:
            out = await self._run("echo ~")
            self._home_directory = out.decode().strip()

        return self._home_directory

    async def read_symbolic_link(self, path: str) -> str:
        out = await self._run(f"readlink -- {_q(path)}")
        target = out.decode().rstrip("\n")

        if not target.startswith("/"):
            target = posixpath.join(posixpath.dirname(path), target)

        return target


class SshCommandBackend(Backend):
    """Backend that runs every file operation as a separate ssh invocation."""

    def __init__(
        self,
        settings: Settings,
        prompt: UsernamePrompt,
        ssh_command: str = "ssh",
        middleware: Optional[Middleware] = None,
    ):
        """Instantiate the backend with the ssh client binary to use."""
        self._settings = settings
        self._prompt = prompt
        self._ssh_command = shlex.split(ssh_command)
        self._middleware = middleware

        self._operations: Dict[str, FileOperations] = {}

    async def get_file_operations(self, host: str) -> FileOperations:
        if host not in self._operations:

            async def run(
                command: str,
                data: Optional[bytes] = None,
                source_path: Optional[str] = None,
            ) -> bytes:
                return await self.run(host, command, data, source_path)

            ops: FileOperations = SshFileOperations(run)

            if self._middleware is not None:
                ops = self._middleware(ops)

            self._operations[host] = ops

        return self._operations[host]

    async def close_connection(self, host: str) -> None:
        self._operations.pop(host, None)

    async def close_all(self) -> None:
        self._operations.clear()

    async def run(
        self,
        host: str,
        command: str,
        data: Optional[bytes] = None,
        source_path: Optional[str] = None,
    ) -> bytes:
        """Run a command on a host, asking for another username if it is rejected."""
        return await with_username_retry(
            host,
            self._settings,
            self._prompt,
            lambda: self._execute(host, command, data, source_path),
        )

    def ssh_args(self, host: str, username: str, command: str) -> List[str]:
        """Return the ssh invocation that runs a command on a host."""
        timeout_s = math.ceil(self._settings.get_connection_timeout_ms() / 1000)

        return [
            *self._ssh_command,
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={timeout_s}",
            f"{username}@{host}",
            command,
        ]

    async def _execute(
        self,
        host: str,
        command: str,
        data: Optional[bytes],
        source_path: Optional[str],
    ) -> bytes:
        username = resolve_username(self._settings, host)

        # Open the local file first so that a missing source fails before connecting
        source = open(source_path, "rb") if source_path is not None else None

        try:
            log.debug(f"running on {username}@{host}: {summarize(command)}")

            proc = await asyncio.create_subprocess_exec(
                *self.ssh_args(host, username, command),
                stdin=asyncio.subprocess.PIPE
                if data is not None or source is not None
                else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )

            if proc.stdout is None or proc.stderr is None:
                raise RuntimeError("ssh process was started without output pipes")

            _, stdout, stderr = await asyncio.gather(
                self._feed(proc, data, source), proc.stdout.read(), proc.stderr.read()
            )
            returncode = await proc.wait()
        finally:
            if source is not None:
                source.close()

        if returncode == 0:
            return stdout

        message = stderr.decode(errors="replace").strip()

        if returncode == SSH_ERROR_CODE:
            self._raise_ssh_error(host, username, message)

        raise RemoteCommandError(
            message or f"command failed with exit code {returncode}", returncode
        )

    @staticmethod
    async def _feed(
        proc: asyncio.subprocess.Process,
        data: Optional[bytes],
        source: Optional[IO[bytes]],
    ) -> None:
        """Write standard input of the process, streaming a local file in chunks."""
        if proc.stdin is None:
            return

        try:
            if data is not None:
                proc.stdin.write(data)
                await proc.stdin.drain()

            if source is not None:
                while True:
                    chunk = source.read(UPLOAD_CHUNK_SIZE)

                    if not chunk:
                        break

                    proc.stdin.write(chunk)
                    await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The process exited early. Its exit status and stderr tell why.
            log.debug("remote command stopped reading input")
        finally:
            proc.stdin.close()

    @staticmethod
    def _raise_ssh_error(host: str, username: str, message: str) -> None:
        """Raise the error for a failure of the ssh client itself."""
        lowered = message.lower()

        if "permission denied" in lowered:
            if f"failed to look up {username.lower()}" in lowered:
                level = AuthenticationError.WRONG_USER
            else:
                level = AuthenticationError.CLIENT_AUTHENTICATION

            raise AuthenticationError(host, username, level)
        elif "timed out" in lowered:
            raise ConnectionTimeoutError(f"connection to {username}@{host} timed out")
        else:
            raise Unavailable(
                f"unable to establish connection to {username}@{host}: {message}"
            )
