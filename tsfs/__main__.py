"""
Module implementing the command-line interface of tsfs.

The command-line interface is a thin developer tool on top of RemoteFileSystem. Every
invocation performs a single operation against a ts:// URI, for example:

    tsfs ls ts://tails-scales/foo/~
    tsfs put notes.txt ts://tails-scales/foo/~/notes.txt

Failures are reported with the same user-facing messages that an application embedding
tsfs would show, and cause a non-zero exit code.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import List, NoReturn, Optional

import tsfs.constants as constants
from tsfs.config import Config
from tsfs.errors import describe
from tsfs.filesystem.common import FileStat, FileType
from tsfs.logger import log
from tsfs.remote import RemoteFileSystem
from tsfs.settings import ConsolePrompt
import tsfs.uri as uri
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Run a single file system command with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure debug logging.
    if args.debug:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.ERROR)

    # Load config file and apply overrides from the command-line.
    config = Config.load(os.path.expanduser(args.config))

    if args.backend is not None:
        config.ssh.backend = args.backend

    if args.timeout is not None:
        config.ssh.connection_timeout_ms = args.timeout

    try:
        exit_code = asyncio.run(_run(config, args))
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT

    sys.exit(exit_code)


async def _run(config: Config, args: Arguments) -> int:
    fs = RemoteFileSystem.from_config(config, ConsolePrompt())

    try:
        await _execute(fs, args)
    except Exception as e:
        log.debug(f"{args.command} failed", exc_info=True)

        message = describe(e)

        # A cancelled username prompt was the user's own choice
        if message is not None:
            sys.stderr.write(f"tsfs: {message}\n")

        return constants.TSFS_ERROR_CODE
    finally:
        await fs.close()

    return 0


async def _execute(fs: RemoteFileSystem, args: Arguments) -> None:
    target = args.uris[0]

    if args.command == "stat":
        print(format_stat(await fs.stat(target)))
    elif args.command == "ls":
        for name, kind in await fs.read_directory(target):
            print(name + "/" if kind & FileType.DIRECTORY else name)
    elif args.command == "cat":
        sys.stdout.buffer.write(await fs.read_file(target))
        sys.stdout.flush()
    elif args.command == "put":
        await fs.upload(args.local_path, target)
    elif args.command == "mkdir":
        await fs.create_directory(target)
    elif args.command == "rm":
        await fs.delete(target, recursive=args.recursive)
    elif args.command == "mv":
        await fs.rename(target, args.uris[1], overwrite=args.force)
    elif args.command == "home":
        print(await fs.get_home_directory(uri.parse(target).host))
    else:
        raise ValueError(f"unknown command {args.command}")


def format_kind(kind: FileType) -> str:
    """Describe the kind of an entry like stat(1) does, e.g. "symbolic link to file"."""
    if kind & FileType.DIRECTORY:
        target = "directory"
    elif kind & FileType.FILE:
        target = "regular file"
    else:
        target = "unknown"

    if not kind & FileType.SYMBOLIC_LINK:
        return target
    elif kind == FileType.SYMBOLIC_LINK:
        return "symbolic link"
    else:
        return f"symbolic link to {target}"


def format_stat(st: FileStat) -> str:
    """Format file metadata as one field per line."""
    return "\n".join(
        [
            f"type: {format_kind(st.kind)}",
            f"size: {st.size}",
            f"ctime: {st.ctime}",
            f"mtime: {st.mtime}",
        ]
    )


if __name__ == "__main__":
    main()
