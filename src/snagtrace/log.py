"""Structlog setup for applications that report exceptions.

Routes structlog events and stdlib records through one
:class:`structlog.stdlib.ProcessorFormatter`.  When a configuration is
given and JSON output is selected,
:class:`~snagtrace.processors.ExceptionInfoProcessor` runs in the formatter's
final chain, so an ``exc_info`` from either source is rendered as an error
report under ``exception`` instead of a formatted traceback.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson
import structlog
from structlog.contextvars import merge_contextvars

from snagtrace.config import Configuration, NotifierConfiguration
from snagtrace.processors import ExceptionInfoProcessor


def _orjson_serializer(obj: object, **_kw: object) -> str:
    return orjson.dumps(obj, default=repr).decode()


def _level_number(level: str | int) -> int:
    if isinstance(level, int):
        return level
    levels = logging.getLevelNamesMapping()
    return levels.get(level.upper(), logging.INFO)


def _report_processors(
    config: Configuration | None, include_chain: bool
) -> list[structlog.types.Processor]:
    if config is None:
        return []
    return [ExceptionInfoProcessor(config, include_chain=include_chain)]


def configure_logging(
    *,
    service: str = "snagtrace",
    level: str | int = "INFO",
    json_logs: bool = True,
    stream: Any = None,
    config: Configuration | None = None,
    include_chain: bool = False,
) -> None:
    """Configure structlog and the root logger.

    Parameters
    ----------
    service:
        Name added to every record as ``service``.
    level:
        Minimum level, as a name (``"DEBUG"``) or a :mod:`logging` constant.
    json_logs:
        ``True`` for JSON output, ``False`` for console output.
    stream:
        Output stream.  Defaults to ``sys.stdout``.
    config:
        Project classification settings.  When given, exceptions logged as
        JSON become error reports (see :class:`ExceptionInfoProcessor`).
        Console output keeps the plain traceback.
    include_chain:
        Report every chained exception instead of the outermost one.
    """
    if stream is None:
        stream = sys.stdout
    threshold = _level_number(level)

    def add_service(
        _logger: Any, _method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.setdefault("service", service)
        return event_dict

    shared: list[structlog.types.Processor] = [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        add_service,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.EventRenamer("message"),
    ]
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        cache_logger_on_first_use=True,
    )

    # runs for structlog events and stdlib records alike
    final: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_logs:
        final.extend(_report_processors(config, include_chain))
        final.append(structlog.processors.format_exc_info)
        final.append(structlog.processors.JSONRenderer(serializer=_orjson_serializer))
    else:
        colors = hasattr(stream, "isatty") and stream.isatty()
        final.append(structlog.dev.ConsoleRenderer(colors=colors, event_key="message"))

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processors=final, foreign_pre_chain=shared)
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(threshold)
    root.addHandler(handler)


def setup_logging(*, service: str = "snagtrace") -> None:
    """Configure logging from the environment.

    Reads ``LOG_LEVEL``, ``JSON_LOGS`` (``"0"`` selects console output) and
    the ``SNAGTRACE_*`` variables of :meth:`NotifierConfiguration.from_env`.
    """
    configure_logging(
        service=service,
        level=os.environ.get("LOG_LEVEL", "INFO"),
        json_logs=os.environ.get("JSON_LOGS", "1") != "0",
        config=NotifierConfiguration.from_env(),
    )
