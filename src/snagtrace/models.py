"""Value types produced by the exception parser.

All types are frozen dataclasses: once a report is built it is owned by the
caller and shares no mutable state with the parser.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import orjson


@dataclass(frozen=True)
class ParameterDescriptor:
    """A single parameter of a callable.

    ``type_name`` is the display name of the parameter's (element) type.
    For variadic parameters the ``[]`` suffix is added at render time.
    """

    type_name: str
    name: str
    is_variadic: bool = False


@dataclass(frozen=True)
class MethodMetadata:
    """What the signature generator needs to know about a callable."""

    declaring_type: str | None
    name: str
    parameters: tuple[ParameterDescriptor, ...] = ()

    @classmethod
    def from_callable(cls, func: Any) -> MethodMetadata | None:
        from snagtrace.signature import metadata_from_callable

        return metadata_from_callable(func)

    @classmethod
    def from_frame(cls, frame: Any) -> MethodMetadata | None:
        from snagtrace.signature import metadata_from_frame

        return metadata_from_frame(frame)


@dataclass(frozen=True)
class StackFrameInfo:
    """One frame of a report, innermost first."""

    file: str | None
    method: str | None
    line_number: int | None
    in_project: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "lineNumber": self.line_number,
            "method": self.method,
            "inProject": self.in_project,
        }


@dataclass(frozen=True)
class ExceptionInfo:
    """Normalized description of a failure.

    Parameters
    ----------
    exception_class:
        Simple (unqualified) name of the exception's runtime type.
    description:
        The exception message, with ``[CALL STACK]`` appended when the frames
        came from a separately captured call stack.
    stack_trace:
        Frames ordered innermost first.  Never empty.
    """

    exception_class: str
    description: str
    stack_trace: tuple[StackFrameInfo, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Render the error-report payload for this exception."""
        return {
            "errorClass": self.exception_class,
            "message": self.description,
            "stacktrace": [frame.to_dict() for frame in self.stack_trace],
        }

    def to_json(self) -> str:
        return orjson.dumps(self.to_dict()).decode()
