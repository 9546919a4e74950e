"""Persistent monitor state and change classification."""

from .differ import StateDiffer
from .store import StateStore, utc_now
from .types import (
    DiffResult,
    ErrorRecord,
    MonitorState,
    SiteState,
    StorageError,
    UpdatedDocument,
    UpdateReason,
)

__all__ = [
    "StateStore",
    "StateDiffer",
    "utc_now",
    "DiffResult",
    "ErrorRecord",
    "MonitorState",
    "SiteState",
    "StorageError",
    "UpdatedDocument",
    "UpdateReason",
]
