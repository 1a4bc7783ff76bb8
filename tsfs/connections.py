"""
Module that manages the pool of authenticated SSH connections to remote hosts.

Connecting to a host is expensive: it takes a TCP handshake, key exchange and an
authentication round trip that may even require the user to log in through a browser.
All file operations against a host are therefore multiplexed over one pooled connection
per (username, host) pair.

The pool guarantees that there is never more than one connection or connection attempt
per key. Concurrent callers that ask for a host that is still being dialed wait for the
same attempt rather than starting their own. Pooled connections are dropped as soon as
the transport reports that it has closed, so the next caller dials again.

Keys include the username because the username for a host can change during a session,
typically after a failed authentication made the user enter a different one. Reusing
the connection of the old username would silently keep using the wrong credentials.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import functools
import os
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import asyncssh

from tsfs.auth import with_username_retry
from tsfs.errors import AuthenticationError, ConnectionTimeoutError, Unavailable
from tsfs.filesystem.common import Backend, FileOperations, Middleware
from tsfs.filesystem.sftp import SftpFileOperations
from tsfs.logger import component_log, elapsed_ms
from tsfs.settings import resolve_username, Settings, UsernamePrompt

log = component_log("connections")


@dataclass
class DialEvents:
    """Signals reported by a transport during and after connecting."""

    on_close: Callable[[Optional[Exception]], None]

    # Pre-authentication banner sent by the server, if any
    banner: str = ""

    closed: bool = False


# Connects and authenticates to a host as the given user and returns the transport.
DialFunction = Callable[[str, str, DialEvents], Awaitable[Any]]


class _SSHClient(asyncssh.SSHClient):
    """asyncssh client callbacks that are forwarded to DialEvents."""

    def __init__(self, events: DialEvents):
        self._events = events

    def auth_banner_received(self, msg: str, lang: str) -> None:
        self._events.banner += msg

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._events.closed = True
        self._events.on_close(exc)


async def dial_ssh(
    host: str, username: str, events: DialEvents, known_hosts: Any = ()
) -> asyncssh.SSHClientConnection:
    """
    Connect to a host with asyncssh.

    known_hosts follows asyncssh's semantics: () for the default known hosts file, a
    path for a specific file, or None to skip host key verification.
    """
    conn, _ = await asyncssh.create_connection(
        functools.partial(_SSHClient, events),
        host,
        username=username,
        known_hosts=known_hosts,
    )

    return conn


def ssh_dialer(known_hosts: Optional[str]) -> DialFunction:
    """
    Return a dial function that verifies host keys against a known hosts file.

    Host keys are not verified at all if known_hosts is None. A file that does not
    exist falls back to asyncssh's default lookup.
    """
    if known_hosts is not None and not os.path.exists(known_hosts):
        log.debug(f"no known hosts file at {known_hosts}")
        return functools.partial(dial_ssh, known_hosts=())

    return functools.partial(dial_ssh, known_hosts=known_hosts)


class Connection:
    """A pooled, authenticated connection to a host."""

    def __init__(self, host: str, username: str, transport: Any):
        """Wrap an established transport."""
        self.host = host
        self.username = username
        self.transport = transport

        self.created_at = time.time()
        self.closed = False

        self.file_operations: Optional[FileOperations] = None
        self._sftp_task: Optional[asyncio.Future] = None

    @property
    def key(self) -> str:
        return format_key(self.host, self.username)

    async def sftp(self) -> Any:
        """
        Return the SFTP session of this connection, starting it on first use.

        Concurrent callers share the same session. A failed start is not cached.
        """
        if self._sftp_task is None:
            self._sftp_task = asyncio.ensure_future(self.transport.start_sftp_client())

        task = self._sftp_task

        try:
            return await asyncio.shield(task)
        except Exception:
            if self._sftp_task is task:
                self._sftp_task = None
            raise

    async def close(self) -> None:
        self.closed = True
        self.transport.close()
        await self.transport.wait_closed()

    def __repr__(self) -> str:
        return f"Connection({self.key}, created_at={self.created_at})"


def format_key(host: str, username: str) -> str:
    """Return the pool key for a host and username."""
    return f"{username}@{host}"


class ConnectionManager(Backend):
    """
    Pool of SSH connections that hands out SFTP-based file operations.

    The pool is meant to be instantiated once and passed to everything that needs
    remote file access.
    """

    def __init__(
        self,
        settings: Settings,
        prompt: UsernamePrompt,
        dial: DialFunction = dial_ssh,
        middleware: Optional[Middleware] = None,
    ):
        """Instantiate an empty pool."""
        self._settings = settings
        self._prompt = prompt
        self._dial = dial
        self._middleware = middleware

        self._connections: Dict[str, Connection] = {}
        self._dials: Dict[str, asyncio.Future] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def get_connection(self, host: str) -> Connection:
        """
        Return the pooled connection to a host, connecting if there is none.

        Raises ConnectionTimeoutError if connecting takes longer than the configured
        timeout, AuthenticationError if the host rejects the username and Unavailable
        for any other failure to connect.
        """
        username = resolve_username(self._settings, host)
        key = format_key(host, username)

        connection = self._connections.get(key)
        if connection is not None:
            return connection

        task = self._dials.get(key)

        if task is None:
            task = asyncio.ensure_future(self._connect(host, username))
            task.add_done_callback(functools.partial(self._dial_done, key))
            self._dials[key] = task

        # Shielded so that a caller losing interest does not abort the attempt for the
        # other callers waiting on it.
        return await asyncio.shield(task)

    async def get_file_operations(self, host: str) -> FileOperations:
        """Return file operations for a host, asking for a username if necessary."""
        connection = await with_username_retry(
            host,
            self._settings,
            self._prompt,
            functools.partial(self.get_connection, host),
        )

        if connection.file_operations is None:
            sftp = await connection.sftp()

            if connection.file_operations is None:
                ops: FileOperations = SftpFileOperations(sftp)

                if self._middleware is not None:
                    ops = self._middleware(ops)

                connection.file_operations = ops

        return connection.file_operations

    async def close_connection(self, host: str) -> None:
        """Close the connection to a host for the current username, if there is one."""
        key = format_key(host, resolve_username(self._settings, host))
        connection = self._connections.pop(key, None)

        if connection is not None:
            log.info(f"closing connection to {key}")
            await connection.close()

    async def close_all(self) -> None:
        """Abort pending connection attempts and close every pooled connection."""
        dials = list(self._dials.values())
        self._dials.clear()

        for task in dials:
            task.cancel()

        if dials:
            log.info(f"aborting {len(dials)} pending connection attempt(s)")
            await asyncio.gather(*dials, return_exceptions=True)

        connections = list(self._connections.values())
        self._connections.clear()

        for connection in connections:
            await connection.close()

    async def _connect(self, host: str, username: str) -> Connection:
        """Dial a host and add the connection to the pool."""
        key = format_key(host, username)
        connection: Optional[Connection] = None

        def on_close(exc: Optional[Exception]) -> None:
            if connection is not None:
                self._forget(connection, exc)

        events = DialEvents(on_close=on_close)
        timeout_ms = self._settings.get_connection_timeout_ms()

        log.info(f"connecting to {key}")
        t_start = time.monotonic()

        try:
            transport = await asyncio.wait_for(
                self._dial(host, username, events), timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            log.warning(f"connecting to {key} timed out after {timeout_ms} ms")
            raise ConnectionTimeoutError(
                f"connection to {key} timed out after {timeout_ms} ms"
            )
        except asyncssh.PermissionDenied as e:
            raise AuthenticationError(
                host, username, self._authentication_level(username, events, e)
            ) from e
        except (OSError, asyncssh.Error) as e:
            raise Unavailable(f"unable to establish connection to {key}: {e}") from e

        if events.closed:
            raise Unavailable(f"connection lost to {key} while connecting")

        connection = Connection(host, username, transport)
        self._connections[key] = connection

        log.info(f"connected to {key} in {elapsed_ms(t_start)} ms")

        return connection

    def _dial_done(self, key: str, task: asyncio.Future) -> None:
        if self._dials.get(key) is task:
            del self._dials[key]

        # Mark the exception as retrieved in case every waiting caller went away
        if not task.cancelled():
            task.exception()

    def _forget(self, connection: Connection, exc: Optional[Exception]) -> None:
        """Remove a closed connection from the pool, unless it was already replaced."""
        connection.closed = True

        if self._connections.get(connection.key) is connection:
            del self._connections[connection.key]

        if exc is not None:
            log.warning(f"connection to {connection.key} lost: {exc}")
        else:
            log.info(f"connection to {connection.key} closed")

    @staticmethod
    def _authentication_level(
        username: str, events: DialEvents, error: Exception
    ) -> str:
        """Tell a nonexistent user apart from other rejections using server messages."""
        diagnostics = f"{events.banner}\n{error}".lower()

        if f"failed to look up {username.lower()}" in diagnostics:
            return AuthenticationError.WRONG_USER
        else:
            return AuthenticationError.CLIENT_AUTHENTICATION
