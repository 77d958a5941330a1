"""Optional persistence of session results."""

from trivia_bots.persistence.sink import HttpResultSink, ResultSink, build_result_sink

__all__ = ["HttpResultSink", "ResultSink", "build_result_sink"]
