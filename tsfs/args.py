"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
from typing import List, Optional

from tsfs.config import BACKENDS
from tsfs.constants import VERSION


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    command: str
    uris: List[str]

    config: str
    backend: Optional[str]
    timeout: Optional[int]
    debug: bool

    local_path: str
    recursive: bool
    force: bool

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Access files on machines in a tailnet through ts:// URIs.",
            usage="tsfs [option...] command uri...",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION}",
            help="show the program version",
        )

        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help="path to config file (default is ~/.tsfs/config)",
            default="~/.tsfs/config",
        )

        # Override the backend from the config file
        parser.add_argument(
            "--backend",
            choices=BACKENDS,
            help="transport to access remote hosts with",
        )

        # Override the connection timeout from the config file
        parser.add_argument(
            "--timeout",
            type=cls._parse_timeout,
            help="timeout for connecting to a host in milliseconds",
        )

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )

        subparsers = parser.add_subparsers(dest="command", metavar="command")
        subparsers.required = True

        cmd = subparsers.add_parser("stat", help="show metadata of a file")
        cmd.add_argument("uris", nargs=1, metavar="uri")

        cmd = subparsers.add_parser("ls", help="list the entries of a directory")
        cmd.add_argument("uris", nargs=1, metavar="uri")

        cmd = subparsers.add_parser("cat", help="write a file to standard output")
        cmd.add_argument("uris", nargs=1, metavar="uri")

        cmd = subparsers.add_parser("put", help="upload a local file")
        cmd.add_argument("local_path", type=str, help="local file to upload")
        cmd.add_argument("uris", nargs=1, metavar="uri")

        cmd = subparsers.add_parser("mkdir", help="create a directory and its parents")
        cmd.add_argument("uris", nargs=1, metavar="uri")

        cmd = subparsers.add_parser("rm", help="delete a file or directory")
        cmd.add_argument(
            "-r",
            "--recursive",
            action="store_true",
            help="delete directories along with their contents",
        )
        cmd.add_argument("uris", nargs=1, metavar="uri")

        cmd = subparsers.add_parser("mv", help="move a file within a host")
        cmd.add_argument(
            "-f", "--force", action="store_true", help="replace an existing target"
        )
        cmd.add_argument("uris", nargs=2, metavar="uri")

        cmd = subparsers.add_parser("home", help="show the home directory on a host")
        cmd.add_argument("uris", nargs=1, metavar="uri")

        parser.set_defaults(recursive=False, force=False, local_path="")

        return parser

    @staticmethod
    def _parse_timeout(arg: str) -> int:
        try:
            val = int(arg)
        except ValueError:
            raise argparse.ArgumentTypeError("expected number > 0")

        if val <= 0:
            raise argparse.ArgumentTypeError("expected number > 0")

        return val
