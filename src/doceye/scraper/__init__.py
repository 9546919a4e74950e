"""Browser-driven document discovery for DocEye.

This module provides:
- Playwright browser lifecycle with isolated per-site sessions
- Declarative navigation step execution
- Document list extraction and deep-link resolution
- File download with content-signature validation
"""

from .browser import MonitorBrowser
from .documents import Document, make_document_id, normalize_url
from .downloader import DownloadValidator, detect_file_type, validate_content
from .extractor import DeepLinkResolver, FieldExtractor, ListExtractor, apply_filters
from .steps import StepExecutor, resolve_env_reference
from .types import (
    DownloadArtifact,
    DownloadError,
    DownloadReason,
    ErrorKind,
    ExtractionError,
    MonitorError,
    NavigationError,
    StepConfigurationError,
)

__all__ = [
    # Types
    "Document",
    "DownloadArtifact",
    "DownloadError",
    "DownloadReason",
    "ErrorKind",
    "ExtractionError",
    "MonitorError",
    "NavigationError",
    "StepConfigurationError",
    # Browser automation
    "MonitorBrowser",
    "StepExecutor",
    "resolve_env_reference",
    # Extraction
    "FieldExtractor",
    "ListExtractor",
    "DeepLinkResolver",
    "apply_filters",
    "make_document_id",
    "normalize_url",
    # Downloads
    "DownloadValidator",
    "detect_file_type",
    "validate_content",
]
