"""Frame sources and project-code detection.

A report's frames come from one of two places:

* the exception's own ``__traceback__`` (the *native trace*), or
* a call stack captured separately and handed to the parser.

Both are normalized to :class:`RawFrame` records ordered innermost first.
"""

from __future__ import annotations

import functools
import inspect
import os
import sys
import traceback
import types
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from snagtrace.models import MethodMetadata
from snagtrace.signature import metadata_from_frame

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RawFrame:
    """A frame before signature rendering and classification."""

    filename: str | None
    line_number: int | None
    metadata: MethodMetadata | None

    @property
    def namespace(self) -> str | None:
        return self.metadata.declaring_type if self.metadata is not None else None


def _clean_filename(filename: Any) -> str | None:
    return filename if isinstance(filename, str) and filename else None


def _clean_line_number(lineno: Any) -> int | None:
    if isinstance(lineno, int) and not isinstance(lineno, bool) and lineno >= 0:
        return lineno
    return None


def _from_frame(frame: types.FrameType, lineno: Any) -> RawFrame:
    return RawFrame(
        filename=_clean_filename(frame.f_code.co_filename),
        line_number=_clean_line_number(lineno),
        metadata=metadata_from_frame(frame),
    )


def to_raw_frame(entry: Any) -> RawFrame:
    """Normalize one call-stack entry.

    Entries without code (``traceback.FrameSummary``) keep their file and
    line but carry no method metadata.
    """
    if isinstance(entry, types.FrameType):
        return _from_frame(entry, entry.f_lineno)
    if isinstance(entry, types.TracebackType):
        return _from_frame(entry.tb_frame, entry.tb_lineno)
    if isinstance(entry, inspect.FrameInfo):
        return _from_frame(entry.frame, entry.lineno)

    logger.debug("frame without code object", entry_type=type(entry).__name__)
    return RawFrame(
        filename=_clean_filename(getattr(entry, "filename", None)),
        line_number=_clean_line_number(getattr(entry, "lineno", None)),
        metadata=None,
    )


def _walk_traceback(tb: types.TracebackType | None) -> list[types.TracebackType]:
    entries = []
    while tb is not None:
        entries.append(tb)
        tb = tb.tb_next
    entries.reverse()
    return entries


def native_frames(exception: BaseException) -> list[RawFrame]:
    """Frames from the exception's own traceback, innermost first."""
    tb = getattr(exception, "__traceback__", None)
    if not isinstance(tb, types.TracebackType):
        return []
    return [to_raw_frame(entry) for entry in _walk_traceback(tb)]


def _call_stack_entries(call_stack: Any) -> Iterable[Any]:
    if isinstance(call_stack, types.FrameType):
        frame: types.FrameType | None = call_stack
        entries = []
        while frame is not None:
            entries.append(frame)
            frame = frame.f_back
        return entries
    if isinstance(call_stack, types.TracebackType):
        return _walk_traceback(call_stack)
    if isinstance(call_stack, traceback.StackSummary):
        # extract_stack() lists the outermost frame first
        return list(reversed(call_stack))
    if isinstance(call_stack, Iterable) and not isinstance(call_stack, (str, bytes)):
        return list(call_stack)
    logger.debug("unsupported call stack", call_stack_type=type(call_stack).__name__)
    return []


def call_stack_frames(call_stack: Any) -> list[RawFrame]:
    """Frames from a separately captured call stack, innermost first.

    Accepts a frame (walked through ``f_back``), a sequence of frames or
    :class:`inspect.FrameInfo` as returned by :func:`inspect.stack`, or a
    :class:`traceback.StackSummary`.
    """
    if call_stack is None:
        return []
    return [to_raw_frame(entry) for entry in _call_stack_entries(call_stack)]


# -- project detection -------------------------------------------------------


def _as_prefix(path: str) -> str | None:
    try:
        resolved = Path(path).resolve().as_posix()
    except (OSError, RuntimeError):
        resolved = path.replace("\\", "/")
    if not resolved.endswith("/"):
        resolved += "/"
    if resolved == "/":
        return None
    return os.path.normcase(resolved).replace("\\", "/")


@functools.cache
def _library_prefixes() -> frozenset[str]:
    """Directories whose files are never project code."""
    prefixes = set()
    for attr in ("prefix", "base_prefix", "exec_prefix", "base_exec_prefix"):
        value = getattr(sys, attr, None)
        if value:
            prefix = _as_prefix(value)
            if prefix:
                prefixes.add(prefix)
    own_package = _as_prefix(str(Path(__file__).parent))
    if own_package:
        prefixes.add(own_package)
    return frozenset(prefixes)


def is_project_path(filename: str | None) -> bool:
    """Return ``True`` when *filename* looks like the application's own code.

    Library code is anything frozen or synthetic (``<frozen ...>``,
    ``<string>``), installed into ``site-packages`` / ``dist-packages``,
    living under the interpreter's prefixes, or part of this package.
    """
    if not filename or filename.startswith("<"):
        return False

    try:
        norm = Path(filename).resolve().as_posix()
    except (OSError, RuntimeError):
        norm = filename.replace("\\", "/")
    norm = os.path.normcase(norm).replace("\\", "/")

    if "/site-packages/" in norm or "/dist-packages/" in norm:
        return False
    return not any(norm.startswith(prefix) for prefix in _library_prefixes())
