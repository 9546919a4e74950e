"""Type definitions for persisted monitor state."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..scraper.documents import Document

STATE_VERSION = 1


class StorageError(Exception):
    """Base exception for storage-related errors."""

    pass


class UpdateReason(str, Enum):
    """Why a known document is reported as updated."""

    HASH_CHANGED = "hash_changed"
    URL_CHANGED = "url_changed"


@dataclass
class ErrorRecord:
    """Last fatal failure of a site, used to suppress repeat notifications."""

    fingerprint: str
    message: str
    timestamp: str
    step: Optional[dict[str, Any]] = None
    consecutive_count: int = 1

    def to_dict(self) -> dict[str, Any]:
        data = {
            "fingerprint": self.fingerprint,
            "message": self.message,
            "step": self.step,
            "timestamp": self.timestamp,
            "consecutiveCount": self.consecutive_count,
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ErrorRecord":
        return cls(
            fingerprint=data["fingerprint"],
            message=data.get("message", ""),
            timestamp=data.get("timestamp", ""),
            step=data.get("step"),
            consecutive_count=int(data.get("consecutiveCount") or 1),
        )


@dataclass
class SiteState:
    """Everything remembered about one site between runs."""

    last_check: Optional[str] = None
    documents: list[Document] = field(default_factory=list)
    last_error: Optional[ErrorRecord] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastCheck": self.last_check,
            "documents": [document.to_dict() for document in self.documents],
            "lastError": self.last_error.to_dict() if self.last_error else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteState":
        last_error = data.get("lastError")
        return cls(
            last_check=data.get("lastCheck"),
            documents=[
                Document.from_dict(item)
                for item in data.get("documents") or []
                if isinstance(item, dict) and item.get("url")
            ],
            last_error=ErrorRecord.from_dict(last_error) if last_error else None,
        )


@dataclass
class MonitorState:
    """The whole state file: one SiteState per configured site id."""

    version: int = STATE_VERSION
    last_updated: Optional[str] = None
    sites: dict[str, SiteState] = field(default_factory=dict)

    def site(self, site_id: str) -> SiteState:
        """Return the state of a site, creating it on first access."""
        if site_id not in self.sites:
            self.sites[site_id] = SiteState()
        return self.sites[site_id]

    @property
    def total_documents(self) -> int:
        return sum(len(site.documents) for site in self.sites.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "sites": {site_id: site.to_dict() for site_id, site in self.sites.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitorState":
        return cls(
            version=int(data.get("version") or STATE_VERSION),
            last_updated=data.get("lastUpdated"),
            sites={
                str(site_id): SiteState.from_dict(site)
                for site_id, site in (data.get("sites") or {}).items()
                if isinstance(site, dict)
            },
        )


@dataclass
class UpdatedDocument:
    doc: Document
    previous_doc: Document
    reason: UpdateReason


@dataclass
class DiffResult:
    """Classification of the current documents against the previous snapshot."""

    new: list[Document] = field(default_factory=list)
    updated: list[UpdatedDocument] = field(default_factory=list)
    unchanged: list[Document] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.updated)
