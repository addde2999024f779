"""Exception parsing.

Builds :class:`~snagtrace.models.ExceptionInfo` reports from an exception and,
when the exception was never raised, a separately captured call stack::

    from snagtrace import NotifierConfiguration, generate_exception_info

    config = NotifierConfiguration(project_namespaces=["myapp"])
    try:
        do_work()
    except Exception as exc:
        info = generate_exception_info(exc, None, config)

Nothing here raises for missing data: an unusable input yields ``None`` and
partial frame data yields ``None`` fields on the affected frame.
"""

from __future__ import annotations

from typing import Any

import structlog

from snagtrace.config import Configuration
from snagtrace.frames import RawFrame, call_stack_frames, is_project_path, native_frames
from snagtrace.models import ExceptionInfo, StackFrameInfo
from snagtrace.signature import generate_method_signature

logger = structlog.get_logger(__name__)

CALL_STACK_MARKER = "[CALL STACK]"


def _describe(exception: BaseException) -> str:
    try:
        return str(exception)
    except Exception:
        return f"<unprintable {type(exception).__name__} object>"


def _in_project(frame: RawFrame, config: Configuration) -> bool:
    namespace = frame.namespace
    if namespace is not None and config.is_in_project_namespace(namespace):
        return True
    return bool(config.auto_detect_in_project) and is_project_path(frame.filename)


def _build_frame(frame: RawFrame, config: Configuration) -> StackFrameInfo:
    filename = frame.filename
    return StackFrameInfo(
        file=config.remove_file_name_prefix(filename) if filename is not None else None,
        method=generate_method_signature(frame.metadata),
        line_number=frame.line_number,
        in_project=_in_project(frame, config),
    )


def generate_exception_info(
    exception: BaseException | None,
    call_stack: Any,
    config: Configuration,
) -> ExceptionInfo | None:
    """Describe *exception* as an :class:`ExceptionInfo`.

    Frames come from the exception's own traceback when it has one.  Only
    when it does not is *call_stack* used, and the description is then
    suffixed with ``[CALL STACK]``.  Returns ``None`` when *exception* is
    ``None`` or neither source has any frames.
    """
    if exception is None:
        return None

    exception_class = type(exception).__name__
    description = _describe(exception)
    frames = native_frames(exception)
    if not frames:
        frames = call_stack_frames(call_stack)
        if not frames:
            logger.debug("no stack frames available", exception_class=exception_class)
            return None
        description = f"{description} {CALL_STACK_MARKER}" if description else CALL_STACK_MARKER

    return ExceptionInfo(
        exception_class=exception_class,
        description=description,
        stack_trace=tuple(_build_frame(frame, config) for frame in frames),
    )


def _next_in_chain(exception: BaseException) -> BaseException | None:
    cause = exception.__cause__
    if cause is None and not exception.__suppress_context__:
        cause = exception.__context__
    return cause


def generate_exception_info_chain(
    exception: BaseException | None,
    call_stack: Any,
    config: Configuration,
) -> list[ExceptionInfo]:
    """Describe *exception* and the exceptions it was chained from.

    The outermost exception comes first, followed by its ``__cause__`` (or
    unsuppressed ``__context__``) and so on.  *call_stack* only applies to
    the outermost exception.  Links without frames are skipped.
    """
    infos: list[ExceptionInfo] = []
    seen: set[int] = set()
    current = exception
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        info = generate_exception_info(current, call_stack, config)
        if info is not None:
            infos.append(info)
        call_stack = None
        current = _next_in_chain(current)
    return infos
