"""Test session control and result persistence."""

from .controller import SessionState, TestSession
from .results import (
    InMemoryResultSink,
    JSONLinesResultSink,
    ResultSink,
    build_result_record,
    ensure_json_serializable,
    sanitize_record,
)

__all__ = [
    "InMemoryResultSink",
    "JSONLinesResultSink",
    "ResultSink",
    "SessionState",
    "TestSession",
    "build_result_record",
    "ensure_json_serializable",
    "sanitize_record",
]
