"""Document sink SPI and implementations."""

from .base import DocumentSink
from .jsonl_sink import JsonlSink
from .log_sink import LogSink
from .sqlite_sink import SQLiteSink

__all__ = ["DocumentSink", "JsonlSink", "LogSink", "SQLiteSink"]
