"""Configuration consumed by the exception parser.

The parser only depends on the :class:`Configuration` protocol.
:class:`NotifierConfiguration` is the stock implementation; it can be built
directly or from environment variables:

- ``SNAGTRACE_PROJECT_NAMESPACES``: comma-separated module prefixes that
  count as project code.
- ``SNAGTRACE_FILE_PREFIXES``: comma-separated path prefixes stripped from
  reported file names.
- ``SNAGTRACE_AUTO_DETECT_IN_PROJECT``: ``"0"`` disables path-based project
  detection (default: enabled).
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from typing import Protocol


class Configuration(Protocol):
    """What the parser reads while building a report."""

    auto_detect_in_project: bool

    def is_in_project_namespace(self, namespace: str) -> bool: ...

    def remove_file_name_prefix(self, path: str) -> str: ...


def _as_str_tuple(name: str, values: Sequence[str]) -> tuple[str, ...]:
    if isinstance(values, (str, bytes)):
        msg = f"{name} must be a sequence of strings, not {type(values).__name__}"
        raise ValueError(msg)
    result = tuple(values)
    for value in result:
        if not isinstance(value, str):
            msg = f"{name} entries must be strings, got {value!r}"
            raise ValueError(msg)
    return result


def _split_env(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


class NotifierConfiguration:
    """Project classification and file-name cleanup settings.

    Parameters
    ----------
    project_namespaces:
        Dotted module prefixes whose code belongs to the application.  A
        namespace matches when it equals a prefix or continues it with ``.``.
    file_prefixes:
        Path prefixes removed from file names in reports (e.g. the checkout
        directory).  The longest matching prefix wins.
    auto_detect_in_project:
        Also treat frames from files outside the interpreter and installed
        packages as project code.
    """

    def __init__(
        self,
        *,
        project_namespaces: Sequence[str] = (),
        file_prefixes: Sequence[str] = (),
        auto_detect_in_project: bool = True,
    ) -> None:
        self._project_namespaces = tuple(
            ns.strip(".") for ns in _as_str_tuple("project_namespaces", project_namespaces) if ns.strip(".")
        )
        prefixes = {
            p.replace("\\", "/") for p in _as_str_tuple("file_prefixes", file_prefixes) if p
        }
        self._file_prefixes = tuple(sorted(prefixes, key=len, reverse=True))
        self.auto_detect_in_project = auto_detect_in_project

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> NotifierConfiguration:
        """Build a configuration from ``SNAGTRACE_*`` environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            project_namespaces=_split_env(env.get("SNAGTRACE_PROJECT_NAMESPACES")),
            file_prefixes=_split_env(env.get("SNAGTRACE_FILE_PREFIXES")),
            auto_detect_in_project=env.get("SNAGTRACE_AUTO_DETECT_IN_PROJECT", "1") != "0",
        )

    @property
    def project_namespaces(self) -> tuple[str, ...]:
        return self._project_namespaces

    @property
    def file_prefixes(self) -> tuple[str, ...]:
        return self._file_prefixes

    def is_in_project_namespace(self, namespace: str | None) -> bool:
        if not namespace:
            return False
        return any(
            namespace == prefix or namespace.startswith(prefix + ".")
            for prefix in self._project_namespaces
        )

    def remove_file_name_prefix(self, path: str) -> str:
        normalized = path.replace("\\", "/")
        for prefix in self._file_prefixes:
            if normalized.startswith(prefix):
                return normalized[len(prefix) :].lstrip("/")
        return path

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(project_namespaces={self._project_namespaces!r}, "
            f"file_prefixes={self._file_prefixes!r}, "
            f"auto_detect_in_project={self.auto_detect_in_project!r})"
        )
