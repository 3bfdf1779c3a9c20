"""Error types raised while creating, flushing, or guarding a call graph."""

from __future__ import annotations

import logging
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class CallGraphError(Exception):
    """Base class for every error raised by this package."""

    def report(self) -> None:
        """Log the error and its cause chain instead of raising it."""

        message = str(self)
        cause = self.__cause__
        while cause is not None:
            message = f"{message}\n  caused by: {cause}"
            cause = cause.__cause__
        LOGGER.error("Error: %s", message)


class CreateFileError(CallGraphError):
    """The destination file for the dot output could not be created."""

    def __init__(self, path: Path, source: OSError) -> None:
        super().__init__(f"cannot create call graph file {path}: {source}")
        self.path = Path(path)
        self.source = source
        self.__cause__ = source


class FlushFileError(CallGraphError):
    """Writing or flushing the serialized graph failed."""

    def __init__(self, source: Exception) -> None:
        super().__init__(f"cannot flush call graph to writer: {source}")
        self.source = source
        self.__cause__ = source


class PoisonedGraphError(CallGraphError):
    """The shared graph was left in an unknown state by a failed mutation."""


class GuardReleasedError(CallGraphError):
    """A flush guard was used after it had been released."""


__all__ = [
    "CallGraphError",
    "CreateFileError",
    "FlushFileError",
    "GuardReleasedError",
    "PoisonedGraphError",
]
