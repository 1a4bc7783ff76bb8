"""Module containing utilities for logging, along with a standard logger."""

import logging
import time
from typing import Any, MutableMapping, Optional, Tuple


def _get_logger(name: Optional[str] = "tsfs") -> logging.Logger:
    stderrOutput = logging.StreamHandler()

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    stderrOutput.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.addHandler(stderrOutput)

    return logger


class ComponentAdapter(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with the name of a component."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['component']}] {msg}", kwargs


def component_log(component: str) -> ComponentAdapter:
    """Return a view of the standard logger that tags messages with a component."""
    return ComponentAdapter(log, {"component": component})


def summarize(obj: Any, max_length: int = 255) -> str:
    """Return a stringified representation of the object up to the given length."""
    stringified_obj = str(obj)

    if len(stringified_obj) <= max_length:
        return stringified_obj
    else:
        return stringified_obj[: max_length - 3] + "..."


def elapsed_ms(t_start: float) -> int:
    """Return the number of milliseconds since a time.monotonic() timestamp."""
    return round((time.monotonic() - t_start) * 1000)


# Default logger
log = _get_logger()
