"""Site orchestration, error deduplication and the run loop."""

from .dedup import DedupDecision, ErrorDeduper
from .orchestrator import MonitorRunner, SiteOrchestrator, select_sites
from .types import RunOptions, RunSummary, SiteResult

__all__ = [
    "DedupDecision",
    "ErrorDeduper",
    "MonitorRunner",
    "SiteOrchestrator",
    "select_sites",
    "RunOptions",
    "RunSummary",
    "SiteResult",
]
