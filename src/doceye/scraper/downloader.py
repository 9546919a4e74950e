"""File download with content-signature validation."""

import hashlib
import re
import time
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlsplit

import httpx
from playwright.async_api import Page

from ..config.settings import DEFAULT_USER_AGENT
from ..utils.logging import get_structured_logger
from .types import DownloadArtifact, DownloadError, DownloadReason, invalid_magic_number

logger = get_structured_logger(__name__)

# Leading bytes of the formats government portals publish
MAGIC_NUMBERS: dict[str, bytes] = {
    "pdf": b"\x25\x50\x44\x46",
    "zip": b"\x50\x4b\x03\x04",
    "docx": b"\x50\x4b\x03\x04",
    "xlsx": b"\x50\x4b\x03\x04",
    "doc": b"\xd0\xcf\x11\xe0",
    "xls": b"\xd0\xcf\x11\xe0",
    "png": b"\x89\x50\x4e\x47",
    "jpg": b"\xff\xd8\xff",
    "jpeg": b"\xff\xd8\xff",
    "gif": b"\x47\x49\x46\x38",
}

# Markers of an HTML/XML page served in place of a file (expired session, 404...)
HTML_SIGNATURES = (b"<!doctype", b"<html", b"<?xml")
HTML_SNIFF_LENGTH = 100

DEFAULT_FILE_TYPE = "pdf"

TRIGGER_DOWNLOAD_SCRIPT = """
(url) => {
    const a = document.createElement('a');
    a.href = url;
    a.download = '';
    document.body.appendChild(a);
    a.click();
    document.body.removeChild(a);
}
"""

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


def expected_type_for(url: str) -> str:
    """File type implied by the URL path extension, defaulting to pdf."""
    suffix = PurePosixPath(urlsplit(url).path).suffix.lower().lstrip(".")
    return suffix or DEFAULT_FILE_TYPE


def detect_file_type(content: bytes) -> Optional[str]:
    for file_type, signature in MAGIC_NUMBERS.items():
        if content.startswith(signature):
            return file_type
    return None


def looks_like_html(content: bytes) -> bool:
    header = content[:HTML_SNIFF_LENGTH].lower()
    return any(signature in header for signature in HTML_SIGNATURES)


def validate_content(content: bytes, expected_type: str, url: str = "") -> tuple[str, Optional[str]]:
    """Validate downloaded bytes and return ``(sha256, detected_type)``.

    Raises DownloadError with a reason code when the content is empty, is an
    HTML/XML page, or carries no known signature when one was expected.
    """
    if not content:
        raise DownloadError("Downloaded file is empty", url, DownloadReason.EMPTY_FILE)

    if looks_like_html(content):
        raise DownloadError(
            "Downloaded content is an HTML page, not a document",
            url,
            DownloadReason.HTML_ERROR_PAGE,
        )

    detected = detect_file_type(content)
    signature = MAGIC_NUMBERS.get(expected_type)
    if signature and not content.startswith(signature):
        if detected is None:
            raise DownloadError(
                f"Content does not look like a {expected_type} file",
                url,
                invalid_magic_number(expected_type),
            )
        logger.info("File type mismatch", url=url, expected=expected_type, detected=detected)

    return hashlib.sha256(content).hexdigest(), detected


def safe_filename(name: str, fallback: str) -> str:
    cleaned = _UNSAFE_FILENAME.sub("_", PurePosixPath(unquote(name or "")).name).strip("._")
    return cleaned or fallback


class DownloadValidator:
    """Retrieves document files and rejects anything that is not the real file."""

    def __init__(
        self,
        download_dir: Path,
        timeout: int = 30000,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.download_dir = Path(download_dir)
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport

    async def download(
        self, page: Page, url: str, expected_type: Optional[str] = None
    ) -> DownloadArtifact:
        """Download through the browser session, falling back to a direct fetch."""
        expected_type = (expected_type or expected_type_for(url)).lower()
        logger.info("Downloading", url=url, expected_type=expected_type)

        try:
            content, filename = await self._download_via_browser(page, url)
            return self._store(content, filename, expected_type, url)
        except DownloadError as e:
            if e.is_validation_failure:
                raise
            logger.info("Browser download failed, fetching directly", url=url, error=e.message)
        except Exception as e:
            logger.info("Browser download failed, fetching directly", url=url, error=str(e))

        return await self.download_direct(url, expected_type)

    async def download_direct(self, url: str, expected_type: str) -> DownloadArtifact:
        """Fetch the file over plain HTTP."""
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.timeout / 1000,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise DownloadError(
                f"Direct download failed: {str(e)}", url, DownloadReason.FETCH_FAILED
            ) from e

        if not response.is_success:
            raise DownloadError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                url,
                DownloadReason.HTTP_ERROR,
            )

        if "text/html" in response.headers.get("content-type", "").lower():
            raise DownloadError(
                "Server returned HTML instead of a document",
                url,
                DownloadReason.HTML_RESPONSE,
            )

        filename = PurePosixPath(urlsplit(url).path).name
        return self._store(response.content, filename, expected_type, url)

    async def _download_via_browser(self, page: Page, url: str) -> tuple[bytes, str]:
        async with page.expect_download(timeout=self.timeout) as download_info:
            await page.evaluate(TRIGGER_DOWNLOAD_SCRIPT, url)
        download = await download_info.value

        failure = await download.failure()
        if failure:
            raise RuntimeError(f"Browser download failed: {failure}")

        temp_path = await download.path()
        return Path(temp_path).read_bytes(), download.suggested_filename

    def _store(
        self, content: bytes, filename: str, expected_type: str, url: str
    ) -> DownloadArtifact:
        """Validate content and write it to the download directory."""
        digest, detected = validate_content(content, expected_type, url)

        self.download_dir.mkdir(parents=True, exist_ok=True)
        name = safe_filename(filename, f"download.{detected or expected_type}")
        path = self.download_dir / f"{int(time.time() * 1000)}_{name}"
        path.write_bytes(content)

        return DownloadArtifact(
            path=str(path),
            hash=digest,
            size=len(content),
            filename=name,
            detected_type=detected,
        )

    @staticmethod
    def release(artifact: Optional[DownloadArtifact]) -> None:
        """Delete a downloaded file, ignoring files that are already gone."""
        if artifact is None:
            return
        try:
            Path(artifact.path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove download", path=artifact.path, error=str(e))

    def sweep(self, max_age_seconds: int = 3600) -> int:
        """Remove leftover downloads older than ``max_age_seconds``."""
        if not self.download_dir.is_dir():
            return 0

        removed = 0
        cutoff = time.time() - max_age_seconds
        for path in self.download_dir.iterdir():
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.warning("Failed to sweep download", path=str(path), error=str(e))

        if removed:
            logger.info("Swept old downloads", removed=removed)
        return removed
