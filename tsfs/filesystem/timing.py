"""Module with a FileOperations middleware that logs how long every call takes."""

import logging
import time
from typing import Any, Callable, Coroutine

from tsfs.filesystem.common import FileOperations
from tsfs.logger import component_log, elapsed_ms, summarize

log = component_log("timing")


def _timed(name: str) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Create a method that forwards a call to the wrapped operations and times it."""

    async def method(self: "TimedFileOperations", *args: Any, **kwargs: Any) -> Any:
        t_call = time.monotonic()

        try:
            return await getattr(self.inner, name)(*args, **kwargs)
        finally:
            # Explicit check before logging because summarize is relatively slow
            if log.isEnabledFor(logging.INFO):
                arg_summary = tuple(summarize(arg, 64) for arg in args)
                log.info(f"{name}{arg_summary} - {elapsed_ms(t_call)} ms")

    method.__name__ = name

    return method


class TimedFileOperations(FileOperations):
    """Wrapper around FileOperations that logs the elapsed time of every call."""

    def __init__(self, inner: FileOperations):
        """Wrap the given file operations."""
        self.inner = inner

    stat = _timed("stat")
    read_directory = _timed("read_directory")
    read_file = _timed("read_file")
    write_file = _timed("write_file")
    create_directory = _timed("create_directory")
    delete = _timed("delete")
    rename = _timed("rename")
    get_home_directory = _timed("get_home_directory")
    read_symbolic_link = _timed("read_symbolic_link")
    upload = _timed("upload")


def with_timing(ops: FileOperations) -> FileOperations:
    """Apply timing instrumentation to file operations."""
    return TimedFileOperations(ops)
