"""Tests for snagtrace.parser."""

from __future__ import annotations

import inspect
import sys
import threading
import traceback
import types
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from snagtrace import frames
from snagtrace.config import NotifierConfiguration
from snagtrace.parser import (
    CALL_STACK_MARKER,
    generate_exception_info,
    generate_exception_info_chain,
)


class RankError(Exception):
    pass


class Unprintable(Exception):
    def __str__(self) -> str:
        raise RuntimeError("no message for you")


NAMESPACE = f"{__name__}.TestGenerateExceptionInfo"


def _raised(exc: BaseException) -> BaseException:
    try:
        raise exc
    except BaseException as caught:
        return caught


HANDLERS: dict[str, type] = {}


def _fail_with_handler(handler: HANDLERS["rank"]) -> None:  # type: ignore[valid-type]
    raise RankError("no handler")


class TestGenerateExceptionInfo:
    def _create_trace(self) -> list[inspect.FrameInfo]:
        return inspect.stack()

    def _innermost(self) -> types.FrameType:
        return sys._getframe()

    def _caller(self) -> types.FrameType:
        return self._innermost()

    def _raise_inner(self) -> None:
        raise RankError("deep")

    def _raise_outer(self) -> None:
        self._raise_inner()

    def test_none_exception(self, make_config) -> None:
        config = make_config()
        assert generate_exception_info(None, inspect.stack(), config) is None
        assert generate_exception_info(None, None, config) is None

    def test_no_traceback_and_no_call_stack(self, make_config) -> None:
        assert generate_exception_info(RankError("System error"), None, make_config()) is None

    def test_no_traceback_and_empty_call_stack(self, make_config) -> None:
        assert generate_exception_info(RankError("System error"), [], make_config()) is None

    def test_logs_when_no_frames(self, make_config) -> None:
        with capture_logs() as logs:
            generate_exception_info(RankError("System error"), None, make_config())
        assert logs[0]["event"] == "no stack frames available"
        assert logs[0]["exception_class"] == "RankError"

    @pytest.mark.parametrize(
        ("use_call_stack", "auto_detect", "in_namespace", "expected"),
        [
            (True, False, False, False),
            (True, True, False, True),
            (True, False, True, True),
            (True, True, True, True),
            (False, False, False, False),
            (False, True, False, True),
            (False, False, True, True),
            (False, True, True, True),
        ],
    )
    def test_uses_exception_traceback(
        self,
        make_config,
        use_call_stack: bool,
        auto_detect: bool,
        in_namespace: bool,
        expected: bool,
    ) -> None:
        config = make_config(
            auto_detect_in_project=auto_detect,
            project_namespaces=[NAMESPACE] if in_namespace else [],
        )
        try:
            raise RankError("Test rank error")
        except RankError as exc:
            caught = exc

        call_stack = self._create_trace() if use_call_stack else None
        info = generate_exception_info(caught, call_stack, config)

        assert info is not None
        assert info.exception_class == "RankError"
        assert info.description == "Test rank error"
        assert CALL_STACK_MARKER not in info.description
        assert len(info.stack_trace) == 1
        frame = info.stack_trace[0]
        assert frame.file.endswith("test_parser.py")
        assert "test_uses_exception_traceback" in frame.method
        assert frame.method.startswith(NAMESPACE + ".")
        assert isinstance(frame.line_number, int)
        assert frame.in_project is expected

    @pytest.mark.parametrize(
        ("auto_detect", "in_namespace", "expected"),
        [
            (False, False, False),
            (True, False, True),
            (False, True, True),
            (True, True, True),
        ],
    )
    def test_falls_back_to_call_stack(
        self,
        make_config,
        auto_detect: bool,
        in_namespace: bool,
        expected: bool,
    ) -> None:
        config = make_config(
            auto_detect_in_project=auto_detect,
            project_namespaces=[NAMESPACE] if in_namespace else [],
        )
        exc = RankError("Test rank error")

        info = generate_exception_info(exc, self._create_trace(), config)

        assert info is not None
        assert info.exception_class == "RankError"
        assert "Test rank error" in info.description
        assert CALL_STACK_MARKER in info.description
        assert info.stack_trace[0].file.endswith("test_parser.py")
        assert "_create_trace" in info.stack_trace[0].method
        assert info.stack_trace[0].in_project is expected
        assert info.stack_trace[1].file.endswith("test_parser.py")
        assert "test_falls_back_to_call_stack" in info.stack_trace[1].method
        assert info.stack_trace[1].in_project is expected

    def test_call_stack_of_two_frames(self, make_config) -> None:
        config = make_config(auto_detect_in_project=False, project_namespaces=[NAMESPACE])
        innermost = self._caller()

        info = generate_exception_info(
            RankError("Test rank error"), [innermost, innermost.f_back], config
        )

        assert info is not None
        assert len(info.stack_trace) == 2
        assert "_innermost" in info.stack_trace[0].method
        assert "_caller" in info.stack_trace[1].method
        assert all(frame.in_project for frame in info.stack_trace)
        assert info.description == f"Test rank error {CALL_STACK_MARKER}"

    def test_frame_object_is_walked(self, make_config) -> None:
        info = generate_exception_info(RankError("x"), self._caller(), make_config())
        assert info is not None
        methods = [frame.method for frame in info.stack_trace[:3]]
        assert "_innermost" in methods[0]
        assert "_caller" in methods[1]
        assert "test_frame_object_is_walked" in methods[2]

    def test_empty_message_with_call_stack(self, make_config) -> None:
        info = generate_exception_info(RankError(), self._create_trace(), make_config())
        assert info is not None
        assert info.description == CALL_STACK_MARKER

    def test_frames_are_innermost_first(self, make_config) -> None:
        try:
            self._raise_outer()
        except RankError as exc:
            caught = exc

        info = generate_exception_info(caught, None, make_config())

        assert info is not None
        methods = [frame.method for frame in info.stack_trace]
        assert len(methods) == 3
        assert "_raise_inner" in methods[0]
        assert "_raise_outer" in methods[1]
        assert "test_frames_are_innermost_first" in methods[2]

    def test_exception_class_is_simple_name(self, make_config) -> None:
        info = generate_exception_info(_raised(KeyError("k")), None, make_config())
        assert info is not None
        assert info.exception_class == "KeyError"
        assert info.description == "'k'"

    def test_unprintable_exception(self, make_config) -> None:
        info = generate_exception_info(_raised(Unprintable()), None, make_config())
        assert info is not None
        assert info.description == "<unprintable Unprintable object>"

    def test_file_prefix_removed(self) -> None:
        config = NotifierConfiguration(
            file_prefixes=[str(Path(__file__).parent)],
            auto_detect_in_project=False,
        )
        info = generate_exception_info(_raised(RankError("x")), None, config)
        assert info is not None
        assert all(frame.file == "test_parser.py" for frame in info.stack_trace)

    def test_namespace_predicate_receives_declaring_type(self, make_config) -> None:
        config = make_config()
        generate_exception_info(_raised(RankError("x")), None, config)
        assert config.queried == [__name__]

    def test_stack_summary_frames_have_no_method(self, make_config) -> None:
        summary = traceback.extract_stack()
        config = make_config(auto_detect_in_project=False, project_namespaces=[NAMESPACE])

        info = generate_exception_info(RankError("x"), summary, config)

        assert info is not None
        frame = info.stack_trace[0]
        assert frame.file.endswith("test_parser.py")
        assert frame.method is None
        assert isinstance(frame.line_number, int)
        assert frame.in_project is False
        assert config.queried == []

    def test_stack_summary_auto_detect(self, make_config) -> None:
        config = make_config(auto_detect_in_project=True)
        info = generate_exception_info(RankError("x"), traceback.extract_stack(), config)
        assert info is not None
        assert info.stack_trace[0].in_project is True

    def test_malformed_entries_degrade(self, make_config) -> None:
        info = generate_exception_info(RankError("x"), [object()], make_config(auto_detect_in_project=True))
        assert info is not None
        frame = info.stack_trace[0]
        assert frame.file is None
        assert frame.method is None
        assert frame.line_number is None
        assert frame.in_project is False

    def test_result_is_immutable(self, make_config) -> None:
        info = generate_exception_info(_raised(RankError("x")), None, make_config())
        assert isinstance(info.stack_trace, tuple)
        with pytest.raises(AttributeError):
            info.description = "changed"  # type: ignore[misc]

    def test_unevaluable_annotation_in_trace(self) -> None:
        try:
            _fail_with_handler(None)
        except RankError as exc:
            caught = exc

        info = generate_exception_info(
            caught, None, NotifierConfiguration(auto_detect_in_project=False)
        )

        assert info is not None
        assert info.description == "no handler"
        assert info.stack_trace[0].method == (
            f"{__name__}._fail_with_handler(HANDLERS['rank'] handler)"
        )
        assert "test_unevaluable_annotation_in_trace" in info.stack_trace[1].method


class TestConcurrentUse:
    def test_shared_configuration_across_threads(self) -> None:
        frames._library_prefixes.cache_clear()
        config = NotifierConfiguration(project_namespaces=[__name__], auto_detect_in_project=True)
        caught = _raised(RankError("shared"))
        barrier = threading.Barrier(8)

        def report(_: int):
            barrier.wait(timeout=10)
            return generate_exception_info(caught, None, config)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(report, range(16)))

        assert all(info is not None for info in results)
        assert all(info == results[0] for info in results)
        assert results[0].stack_trace[0].in_project is True


class TestGenerateExceptionInfoChain:
    def test_explicit_cause(self, make_config) -> None:
        try:
            try:
                raise KeyError("original")
            except KeyError as cause:
                raise RankError("wrapper") from cause
        except RankError as exc:
            caught = exc

        infos = generate_exception_info_chain(caught, None, make_config())

        assert [info.exception_class for info in infos] == ["RankError", "KeyError"]
        assert infos[1].description == "'original'"

    def test_implicit_context(self, make_config) -> None:
        try:
            try:
                raise KeyError("original")
            except KeyError:
                raise RankError("wrapper")  # noqa: B904
        except RankError as exc:
            caught = exc

        infos = generate_exception_info_chain(caught, None, make_config())
        assert [info.exception_class for info in infos] == ["RankError", "KeyError"]

    def test_suppressed_context(self, make_config) -> None:
        try:
            try:
                raise KeyError("original")
            except KeyError:
                raise RankError("wrapper") from None
        except RankError as exc:
            caught = exc

        infos = generate_exception_info_chain(caught, None, make_config())
        assert [info.exception_class for info in infos] == ["RankError"]

    def test_call_stack_only_for_outermost(self, make_config) -> None:
        wrapper = RankError("wrapper")
        wrapper.__cause__ = _raised(KeyError("original"))

        infos = generate_exception_info_chain(wrapper, inspect.stack(), make_config())

        assert len(infos) == 2
        assert CALL_STACK_MARKER in infos[0].description
        assert CALL_STACK_MARKER not in infos[1].description

    def test_cycle_terminates(self, make_config) -> None:
        first = RankError("first")
        second = RankError("second")
        first.__context__ = second
        second.__context__ = first

        infos = generate_exception_info_chain(first, inspect.stack(), make_config())
        assert [info.description for info in infos] == [f"first {CALL_STACK_MARKER}"]

    def test_none(self, make_config) -> None:
        assert generate_exception_info_chain(None, inspect.stack(), make_config()) == []
