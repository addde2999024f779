"""snagtrace — exception introspection for error reports."""

from snagtrace.config import Configuration, NotifierConfiguration
from snagtrace.log import configure_logging, setup_logging
from snagtrace.models import ExceptionInfo, MethodMetadata, ParameterDescriptor, StackFrameInfo
from snagtrace.parser import (
    CALL_STACK_MARKER,
    generate_exception_info,
    generate_exception_info_chain,
)
from snagtrace.processors import ExceptionInfoProcessor
from snagtrace.signature import generate_method_signature

__version__ = "0.1.0"

__all__ = [
    "CALL_STACK_MARKER",
    "Configuration",
    "ExceptionInfo",
    "ExceptionInfoProcessor",
    "MethodMetadata",
    "NotifierConfiguration",
    "ParameterDescriptor",
    "StackFrameInfo",
    "configure_logging",
    "generate_exception_info",
    "generate_exception_info_chain",
    "generate_method_signature",
    "setup_logging",
]
