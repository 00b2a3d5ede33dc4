"""Infra layer utilities (storage, remote sources, tracing)."""

from .sources import LocalDirectorySource, RemoteFileSource, SFTPFileSource
from .storage import SQLiteManager
from .tracing import LoggingSpan, NoopTracer, StructlogTracer, TraceSpan, Tracer

__all__ = [
    "LocalDirectorySource",
    "LoggingSpan",
    "NoopTracer",
    "RemoteFileSource",
    "SFTPFileSource",
    "SQLiteManager",
    "StructlogTracer",
    "TraceSpan",
    "Tracer",
]
