"""Shared fixtures for snagtrace tests."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

import pytest
import structlog


class StubConfiguration:
    """Configuration with a fixed namespace set and identity file names."""

    def __init__(
        self,
        *,
        auto_detect_in_project: bool = False,
        project_namespaces: Iterable[str] = (),
    ) -> None:
        self.auto_detect_in_project = auto_detect_in_project
        self._namespaces = frozenset(project_namespaces)
        self.queried: list[str] = []

    def is_in_project_namespace(self, namespace: str) -> bool:
        self.queried.append(namespace)
        return namespace in self._namespaces

    def remove_file_name_prefix(self, path: str) -> str:
        return path


@pytest.fixture
def make_config() -> Callable[..., StubConfiguration]:
    return StubConfiguration


@pytest.fixture(autouse=True)
def _reset_logging() -> None:  # type: ignore[misc]
    """Reset root logger handlers and level after each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level

    yield  # type: ignore[misc]

    root.handlers[:] = original_handlers
    root.setLevel(original_level)


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:  # type: ignore[misc]
    """Reset structlog configuration after each test."""
    yield  # type: ignore[misc]
    structlog.reset_defaults()
