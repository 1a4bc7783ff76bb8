"""
Module for the addressing scheme of the virtual file system.

Remote files are addressed as ts://{tailnet}/{host}/{path}, for example:

    ts://tails-scales/foo/home/amalie
    |> tailnet: tails-scales
    |> host: foo
    |> resource path: /home/amalie

A first path segment of ~ refers to the home directory of the remote user. Since the
home directory is only known after connecting, it is normalized to the relative path
"." which transports resolve against the home directory, and can be expanded to an
absolute path later with expand_home().
"""

from __future__ import annotations

import posixpath
import re
from typing import NamedTuple
from urllib.parse import quote, unquote, urlsplit

from tsfs.constants import HOME_MARKER, HOME_RELATIVE, SCHEME
from tsfs.errors import UnsupportedSchemeError

_ESCAPED_SPACE = re.compile(r"\\(\s)")
_SPACE = re.compile(r"(\s)")


class TsUri(NamedTuple):
    """Address of a file on a host in a tailnet."""

    tailnet: str
    host: str
    resource_path: str

    def __str__(self) -> str:
        return build(self)


def escape(path: str) -> str:
    """Escape whitespace in a path with backslashes."""
    return _SPACE.sub(r"\\\1", path)


def unescape(path: str) -> str:
    """Undo escape() to obtain the plain path that transports operate on."""
    return _ESCAPED_SPACE.sub(r"\1", path)


def parse(uri: str) -> TsUri:
    """Split a ts:// URI into its tailnet, host and resource path."""
    parts = urlsplit(uri)

    if parts.scheme != SCHEME:
        raise UnsupportedSchemeError(f"Unsupported scheme: {parts.scheme}")

    host_path = parts.path

    if host_path.startswith("/"):
        host_path = host_path[1:]

    host, *segments = host_path.split("/")

    if segments and segments[0] == HOME_MARKER:
        segments[0] = HOME_RELATIVE
        resource_path = "/".join(unquote(segment) for segment in segments)
    else:
        resource_path = "/" + escape("/".join(unquote(segment) for segment in segments))

    return TsUri(tailnet=parts.netloc, host=unquote(host), resource_path=resource_path)


def build(uri: TsUri) -> str:
    """Assemble a ts:// URI, the inverse of parse()."""
    resource_path = unescape(uri.resource_path)

    if resource_path == HOME_MARKER or resource_path.startswith(HOME_MARKER + "/"):
        segments = resource_path.split("/")
    elif is_home_relative(resource_path):
        segments = [HOME_MARKER] + resource_path.split("/")[1:]
    elif resource_path == "/":
        segments = []
    else:
        segments = resource_path[1:].split("/")

    path = "/".join([quote(uri.host, safe="")] + [quote(s, safe="") for s in segments])

    return f"{SCHEME}://{uri.tailnet}/{path}"


def home(tailnet: str, host: str) -> str:
    """Return the URI of the home directory of the remote user on a host."""
    return build(TsUri(tailnet, host, HOME_MARKER))


def join(uri: str, *names: str) -> str:
    """Return the URI of an entry below the given URI."""
    parsed = parse(uri)
    path = unescape(parsed.resource_path)

    for name in names:
        path = path.rstrip("/") + "/" + name

    return build(parsed._replace(resource_path=escape(path)))


def is_home_relative(path: str) -> bool:
    """Check if a resource path is relative to the home directory of the remote user."""
    return path == HOME_RELATIVE or path.startswith(HOME_RELATIVE + "/")


def expand_home(path: str, home_directory: str) -> str:
    """Replace the home-relative prefix of a path with the actual home directory."""
    if not is_home_relative(path):
        return path

    rest = path[len(HOME_RELATIVE) :].lstrip("/")

    return posixpath.join(home_directory, rest) if rest else home_directory
