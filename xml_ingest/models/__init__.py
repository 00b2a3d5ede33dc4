"""Document schemas and pipeline value objects."""

from .documents import (
    Direction,
    Invoice,
    Invoices,
    Money,
    Transaction,
    Transactions,
    XmlDocument,
)
from .results import ClaimRecord, IngestResult, RemoteFileRef

__all__ = [
    "ClaimRecord",
    "Direction",
    "IngestResult",
    "Invoice",
    "Invoices",
    "Money",
    "RemoteFileRef",
    "Transaction",
    "Transactions",
    "XmlDocument",
]
