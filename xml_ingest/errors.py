"""Error taxonomy for the ingestion pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .models import RemoteFileRef

UNRESOLVED_XML_MESSAGE = "Unsupported XML for XmlDocument: cannot resolve subtype via namespace"
MAX_ERROR_LENGTH = 500


class IngestError(Exception):
    """Base class for every failure raised inside the ingestion core."""

    kind = "ingest_error"


class TransportError(IngestError):
    """Listing or fetching a remote file failed."""

    kind = "transport_error"


class MalformedXml(IngestError):
    """The payload is not well-formed XML."""

    kind = "malformed_xml"


class DocumentValidationError(MalformedXml):
    """The XML was classified but does not fit the resolved schema."""

    kind = "document_invalid"


class UnresolvedXmlType(IngestError):
    """No dispatch rule matched the root of the document."""

    kind = "unresolved_xml_type"

    def __init__(self, detail: str | None = None) -> None:
        message = UNRESOLVED_XML_MESSAGE
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class IngestTimeoutError(IngestError, TimeoutError):
    """Fetch and parse of a single file exceeded its budget."""

    kind = "timeout"


class ClaimStoreUnavailable(IngestError):
    """The claim store could not be reached; the poll cycle must stop."""

    kind = "claim_store_unavailable"

    def __init__(self, message: str, claimed: Sequence["RemoteFileRef"] = ()) -> None:
        super().__init__(message)
        self.claimed = list(claimed)


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, IngestError):
        return exc.kind
    return type(exc).__name__


def safe_message(exc: BaseException, limit: int = MAX_ERROR_LENGTH) -> str:
    """Return a bounded diagnostic string for ``exc``."""

    message = str(exc).strip()
    if not message:
        return type(exc).__name__
    if len(message) > limit:
        return message[:limit]
    return message


__all__ = [
    "ClaimStoreUnavailable",
    "DocumentValidationError",
    "IngestError",
    "IngestTimeoutError",
    "MalformedXml",
    "MAX_ERROR_LENGTH",
    "TransportError",
    "UNRESOLVED_XML_MESSAGE",
    "UnresolvedXmlType",
    "error_kind",
    "safe_message",
]
