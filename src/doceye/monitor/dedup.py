"""Suppression of repeated failure notifications."""

import hashlib
from dataclasses import dataclass
from typing import Any, Optional

from ..scraper.types import ErrorKind
from ..storage.types import ErrorRecord, SiteState

FINGERPRINT_LENGTH = 16


@dataclass
class DedupDecision:
    is_duplicate: bool
    record: ErrorRecord


class ErrorDeduper:
    """Remembers each site's last failure so identical failures notify once."""

    @staticmethod
    def fingerprint(
        kind: ErrorKind, message: str, step: Optional[dict[str, Any]] = None
    ) -> str:
        step = step or {}
        parts = [
            ErrorKind(kind).value,
            message or "",
            str(step.get("action") or ""),
            str(step.get("selector") or ""),
        ]
        digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
        return digest[:FINGERPRINT_LENGTH]

    def record(
        self,
        site_state: SiteState,
        kind: ErrorKind,
        message: str,
        step: Optional[dict[str, Any]],
        now: str,
    ) -> DedupDecision:
        """Store the failure on the site and report whether it repeats the last one."""
        fingerprint = self.fingerprint(kind, message, step)
        previous = site_state.last_error
        is_duplicate = previous is not None and previous.fingerprint == fingerprint

        record = ErrorRecord(
            fingerprint=fingerprint,
            message=message,
            timestamp=now,
            step=step,
            consecutive_count=previous.consecutive_count + 1 if is_duplicate else 1,
        )
        site_state.last_error = record
        return DedupDecision(is_duplicate=is_duplicate, record=record)

    @staticmethod
    def clear(site_state: SiteState) -> None:
        site_state.last_error = None
