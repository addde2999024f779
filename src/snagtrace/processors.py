"""Structlog processor that attaches error reports to log events."""

from __future__ import annotations

import sys
from typing import Any

from snagtrace.config import Configuration
from snagtrace.parser import generate_exception_info, generate_exception_info_chain


def _exception_from_exc_info(exc_info: Any) -> BaseException | None:
    if isinstance(exc_info, BaseException):
        return exc_info
    if exc_info is True:
        return sys.exc_info()[1]
    if isinstance(exc_info, tuple) and len(exc_info) == 3 and isinstance(exc_info[1], BaseException):
        return exc_info[1]
    return None


class ExceptionInfoProcessor:
    """Replace ``exc_info`` with an error report under ``exception``.

    Parameters
    ----------
    config:
        Project classification settings passed to the parser.
    include_chain:
        If ``True``, ``exception`` is a list with one report per chained
        exception (outermost first) instead of a single report.
    """

    def __init__(self, config: Configuration, *, include_chain: bool = False) -> None:
        self._config = config
        self._include_chain = include_chain

    def __call__(
        self,
        _logger: Any,
        _method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        exc_info = event_dict.get("exc_info")
        if not exc_info:
            return event_dict

        exception = _exception_from_exc_info(exc_info)
        if exception is None:
            return event_dict

        if self._include_chain:
            infos = generate_exception_info_chain(exception, None, self._config)
            if not infos:
                return event_dict
            event_dict["exception"] = [info.to_dict() for info in infos]
        else:
            info = generate_exception_info(exception, None, self._config)
            if info is None:
                return event_dict
            event_dict["exception"] = info.to_dict()

        event_dict.pop("exc_info", None)
        return event_dict
