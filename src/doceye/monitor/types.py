"""Type definitions for the monitor module."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class RunOptions:
    """Flags that shape a single monitoring run."""

    dry_run: bool = False
    notify: bool = False
    site_id: Optional[str] = None

    @property
    def should_notify(self) -> bool:
        # Dry runs stay silent unless notifications are requested explicitly
        return not self.dry_run or self.notify


@dataclass
class SiteResult:
    """Outcome of processing one site."""

    site_id: str
    name: str
    success: bool
    documents: int = 0
    new: int = 0
    updated: int = 0
    processed: int = 0
    error: Optional[str] = None
    duplicate_error: bool = False

    @property
    def details(self) -> str:
        if not self.success:
            return self.error or "failed"
        return f"{self.documents} docs, {self.new} new, {self.updated} updated"


@dataclass
class RunSummary:
    results: list[SiteResult] = field(default_factory=list)

    @property
    def successful(self) -> list[SiteResult]:
        return [result for result in self.results if result.success]

    @property
    def failed(self) -> list[SiteResult]:
        return [result for result in self.results if not result.success]

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and not self.successful

    @property
    def exit_code(self) -> int:
        return 1 if self.all_failed else 0
