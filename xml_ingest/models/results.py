"""Value objects flowing between listing, pipeline and sinks."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from .documents import XmlDocument


@dataclass(frozen=True, slots=True)
class RemoteFileRef:
    """Identity of a candidate file within one poll cycle."""

    path: str
    filename: str
    poll_batch_id: str

    @classmethod
    def in_directory(cls, directory: str, filename: str, poll_batch_id: str) -> "RemoteFileRef":
        path = posixpath.join(directory, filename) if directory else filename
        return cls(path=path, filename=filename, poll_batch_id=poll_batch_id)


@dataclass(frozen=True, slots=True)
class ClaimRecord:
    """Persistent marker that a remote path was taken for processing."""

    path: str
    claimed_at: datetime


class IngestResult(BaseModel):
    """Outcome of one fetch-parse attempt; exactly one of document/error is set."""

    model_config = ConfigDict(frozen=True)

    filename: str
    document: Optional[XmlDocument] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "IngestResult":
        if (self.document is None) == (self.error is None):
            raise ValueError("IngestResult requires exactly one of document or error")
        return self

    @classmethod
    def success(cls, filename: str, document: XmlDocument) -> "IngestResult":
        return cls(filename=filename, document=document)

    @classmethod
    def failure(cls, filename: str, error: str) -> "IngestResult":
        return cls(filename=filename, error=error)

    @property
    def ok(self) -> bool:
        return self.document is not None

    @property
    def document_kind(self) -> str | None:
        if self.document is None:
            return None
        return self.document.kind

    def to_record(self) -> dict[str, Any]:
        """Flatten into a JSON-safe mapping for sinks."""

        return {
            "filename": self.filename,
            "kind": self.document_kind,
            "document": self.document.model_dump(mode="json") if self.document else None,
            "error": self.error,
        }


__all__ = ["ClaimRecord", "IngestResult", "RemoteFileRef"]
