"""Engine components: claim → list → fetch → parse → deliver."""

from .claims import ClaimStore, InMemoryClaimStore, RedisClaimStore, SQLiteClaimStore
from .listing import FilenameMatcher, ListingFilter
from .pipeline import DEFAULT_PARSE_TIMEOUT, FetchParsePipeline, StreamHandle
from .resolver import DEFAULT_RULES, DispatchRule, DocumentTypeResolver, parse_xml
from .thread_pool import WORKER_POOL, ThreadPoolManager

__all__ = [
    "ClaimStore",
    "DEFAULT_PARSE_TIMEOUT",
    "DEFAULT_RULES",
    "DispatchRule",
    "DocumentTypeResolver",
    "FetchParsePipeline",
    "FilenameMatcher",
    "InMemoryClaimStore",
    "ListingFilter",
    "RedisClaimStore",
    "SQLiteClaimStore",
    "StreamHandle",
    "ThreadPoolManager",
    "WORKER_POOL",
    "parse_xml",
]
