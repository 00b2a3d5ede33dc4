"""Select and claim the eligible files of one poll cycle."""

from __future__ import annotations

import fnmatch
import re
from typing import Iterable, Pattern

import structlog

from ..errors import ClaimStoreUnavailable
from ..models import RemoteFileRef
from .claims import ClaimStore


class FilenameMatcher:
    """Glob (case-sensitive) or full-match regular expression on a bare filename."""

    def __init__(self, pattern: str = "*.xml", regex: str | None = None) -> None:
        self.pattern = pattern
        self._regex: Pattern[str] | None = re.compile(regex) if regex else None

    def matches(self, filename: str) -> bool:
        if self._regex is not None:
            return self._regex.fullmatch(filename) is not None
        return fnmatch.fnmatchcase(filename, self.pattern)

    def __repr__(self) -> str:
        if self._regex is not None:
            return f"FilenameMatcher(regex={self._regex.pattern!r})"
        return f"FilenameMatcher(pattern={self.pattern!r})"


class ListingFilter:
    """Combine the filename rule with the claim store.

    Every returned ref has been claimed by this caller. Candidates whose claim
    is denied were taken by a concurrent cycle or a previous run and are
    dropped without error. No more than ``max_fetch_size`` files are claimed
    per call; further matches stay unclaimed for a later cycle.
    """

    def __init__(
        self,
        claim_store: ClaimStore,
        matcher: FilenameMatcher,
        remote_directory: str,
        max_fetch_size: int | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.claim_store = claim_store
        self.matcher = matcher
        self.remote_directory = remote_directory
        self.max_fetch_size = max_fetch_size
        self.logger = logger or structlog.get_logger("xml_ingest.listing")

    def candidates(self, filenames: Iterable[str]) -> list[str]:
        seen: set[str] = set()
        matched: list[str] = []
        for name in filenames:
            if name in seen or not self.matcher.matches(name):
                continue
            seen.add(name)
            matched.append(name)
        return matched

    def select(self, filenames: Iterable[str], poll_batch_id: str) -> list[RemoteFileRef]:
        matched = self.candidates(filenames)
        if not matched:
            return []
        # Fail before any claim is attempted when the store is down.
        self.claim_store.ping()

        claimed: list[RemoteFileRef] = []
        for name in matched:
            if self.max_fetch_size is not None and len(claimed) >= self.max_fetch_size:
                self.logger.debug(
                    "fetch_size_reached",
                    max_fetch_size=self.max_fetch_size,
                    deferred=len(matched) - matched.index(name),
                    batch=poll_batch_id,
                )
                break
            ref = RemoteFileRef.in_directory(self.remote_directory, name, poll_batch_id)
            try:
                won = self.claim_store.try_claim(ref.path)
            except ClaimStoreUnavailable as exc:
                raise ClaimStoreUnavailable(str(exc), claimed=claimed) from exc
            if won:
                self.logger.debug("claim_granted", path=ref.path, batch=poll_batch_id)
                claimed.append(ref)
            else:
                self.logger.debug("claim_denied", path=ref.path, batch=poll_batch_id)
        return claimed


__all__ = ["FilenameMatcher", "ListingFilter"]
