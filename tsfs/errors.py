"""
Module with the error vocabulary of the virtual file system and its translation layer.

The transports underneath tsfs report failures in different ways: asyncssh raises SFTP
status exceptions, ssh subprocesses only leave a line on stderr and the local system
raises OSError. Callers should not have to care, so every error that leaves a
RemoteFileSystem call is first translated into one of a small, closed set of kinds.

Translation prefers structured information (exception types) and falls back to
sniffing the lowercased message. Anything that cannot be classified is logged and
re-raised unchanged.
"""

from enum import auto, Enum
import functools
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import asyncssh

from tsfs.logger import component_log

T = TypeVar("T")

log = component_log("errors")


class ErrorKind(Enum):
    """Kinds of errors reported by the virtual file system."""

    FILE_NOT_FOUND = auto()
    NO_PERMISSIONS = auto()
    FILE_EXISTS = auto()
    FILE_IS_A_DIRECTORY = auto()
    FILE_NOT_A_DIRECTORY = auto()
    DIRECTORY_NOT_EMPTY = auto()
    UNAVAILABLE = auto()
    CONNECTION_TIMEOUT = auto()
    USERNAME_REQUIRED = auto()
    CROSS_HOST = auto()
    UNSUPPORTED_SCHEME = auto()
    TOO_MANY_SYMLINKS = auto()
    UNKNOWN = auto()


class FileSystemError(Exception):
    """Base class of all translated file system errors."""

    kind = ErrorKind.UNKNOWN
    default_message = "unknown error"

    def __init__(self, message: Optional[str] = None) -> None:
        """Instantiate the error with an optional description."""
        super().__init__(message or self.default_message)

        self.message = message or self.default_message


class FileNotFound(FileSystemError):
    kind = ErrorKind.FILE_NOT_FOUND
    default_message = "file not found"


class NoPermissions(FileSystemError):
    kind = ErrorKind.NO_PERMISSIONS
    default_message = "permission denied"


class FileExists(FileSystemError):
    kind = ErrorKind.FILE_EXISTS
    default_message = "file already exists"


class FileIsADirectory(FileSystemError):
    kind = ErrorKind.FILE_IS_A_DIRECTORY
    default_message = "file is a directory"


class FileNotADirectory(FileSystemError):
    kind = ErrorKind.FILE_NOT_A_DIRECTORY
    default_message = "file is not a directory"


class DirectoryNotEmptyError(FileSystemError):
    kind = ErrorKind.DIRECTORY_NOT_EMPTY
    default_message = "directory not empty"


class Unavailable(FileSystemError):
    kind = ErrorKind.UNAVAILABLE
    default_message = "unable to establish connection"


class ConnectionTimeoutError(FileSystemError):
    kind = ErrorKind.CONNECTION_TIMEOUT
    default_message = "connection timed out"


class UsernameRequiredError(FileSystemError):
    kind = ErrorKind.USERNAME_REQUIRED
    default_message = "username is required to connect to remote host"


class CrossHostError(FileSystemError):
    kind = ErrorKind.CROSS_HOST
    default_message = "cannot rename files across different hosts"


class UnsupportedSchemeError(FileSystemError, ValueError):
    kind = ErrorKind.UNSUPPORTED_SCHEME
    default_message = "unsupported scheme"


class TooManySymlinksError(FileSystemError):
    kind = ErrorKind.TOO_MANY_SYMLINKS
    default_message = "too many levels of symbolic links"


class AuthenticationError(NoPermissions):
    """
    Exception raised when a host rejects the credentials of a connection attempt.

    The level is "wrong-user" if the host reported that the user does not exist and
    "client-authentication" for any other rejection.
    """

    WRONG_USER = "wrong-user"
    CLIENT_AUTHENTICATION = "client-authentication"

    def __init__(self, host: str, username: str, level: str) -> None:
        """Instantiate the error for a rejected username on a host."""
        if level == self.WRONG_USER:
            message = f"the username '{username}' is not valid on host {host}"
        else:
            message = f"permission denied for {username}@{host}"

        super().__init__(message)

        self.host = host
        self.username = username
        self.level = level


# Structured mapping for the status exceptions of asyncssh's SFTP client
_SFTP_ERRORS: Tuple[Tuple[Type[Exception], Type[FileSystemError]], ...] = (
    (asyncssh.SFTPNoSuchFile, FileNotFound),
    (asyncssh.SFTPNoSuchPath, FileNotFound),
    (asyncssh.SFTPPermissionDenied, NoPermissions),
    (asyncssh.SFTPFileAlreadyExists, FileExists),
    (asyncssh.SFTPFileIsADirectory, FileIsADirectory),
    (asyncssh.SFTPNotADirectory, FileNotADirectory),
    (asyncssh.SFTPDirNotEmpty, DirectoryNotEmptyError),
    (asyncssh.SFTPLinkLoop, TooManySymlinksError),
    (asyncssh.SFTPNoConnection, Unavailable),
    (asyncssh.SFTPConnectionLost, Unavailable),
)

# Best-effort classification of messages for errors without structure. Checked in
# order against the lowercased message.
_MESSAGE_PATTERNS: Tuple[Tuple[Tuple[str, ...], Type[FileSystemError]], ...] = (
    (("no such file or directory",), FileNotFound),
    (("permission denied",), NoPermissions),
    (("file already exists",), FileExists),
    (("eisdir",), FileIsADirectory),
    (("enotdir",), FileNotADirectory),
    (("directory not empty",), DirectoryNotEmptyError),
    (("too many levels of symbolic links",), TooManySymlinksError),
    (
        ("no connection", "connection lost", "unable to establish connection"),
        Unavailable,
    ),
)


def classify(error: BaseException) -> Optional[Type[FileSystemError]]:
    """Return the error class that an error translates to, if it is recognized."""
    if isinstance(error, FileSystemError):
        return type(error)

    for sftp_type, translated_type in _SFTP_ERRORS:
        if isinstance(error, sftp_type):
            return translated_type

    message = str(error).lower()

    for patterns, translated_type in _MESSAGE_PATTERNS:
        if any(pattern in message for pattern in patterns):
            return translated_type

    return None


def translate(error: BaseException) -> BaseException:
    """
    Translate an error raised by a transport into a FileSystemError.

    Errors that are already translated are returned as-is. Unrecognized errors are
    logged and returned unchanged so that they can be re-raised.
    """
    if isinstance(error, FileSystemError):
        return error

    translated_type = classify(error)

    if translated_type is None:
        log.error(f"unrecognized error: {error!r}")
        return error

    translated = translated_type(str(error) or None)
    translated.__cause__ = error

    return translated


def error_kind(error: BaseException) -> ErrorKind:
    """Return the kind of an error, UNKNOWN for untranslated errors."""
    if isinstance(error, FileSystemError):
        return error.kind
    else:
        return ErrorKind.UNKNOWN


def describe(error: BaseException) -> Optional[str]:
    """
    Return the message to show a user for an error.

    Returns None for errors that should not be reported, like a username prompt that
    was cancelled by the user.
    """
    kind = error_kind(error)

    if kind == ErrorKind.USERNAME_REQUIRED:
        return None
    elif kind in (ErrorKind.UNAVAILABLE, ErrorKind.CONNECTION_TIMEOUT):
        return f"{error}. Check that you are connected to your tailnet."
    elif kind == ErrorKind.UNKNOWN:
        return f"unexpected error: {error}"
    else:
        return str(error)


def translated(
    action: str,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorate a coroutine method so that its errors are translated.

    The first positional argument after self is logged as the subject of the action.
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(self: Any, subject: Any, *args: Any, **kwargs: Any) -> T:
            log.info(f"{action}: {subject}")

            try:
                return await fn(self, subject, *args, **kwargs)
            except Exception as e:
                translated_error = translate(e)

                if translated_error is e:
                    raise

                log.info(f"{action}: {subject} failed: {translated_error!r}")
                raise translated_error from e

        return wrapper

    return decorator
