"""Document records and the normalization rules that give them stable identity."""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Optional
from urllib.parse import unquote_plus, urlsplit, urlunsplit

# Cache-busting query parameters that must not make a document look new
CACHE_PARAMS = frozenset({"_", "v", "cache", "timestamp", "t", "rand"})

MAX_ID_LENGTH = 200

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_SCHEME = re.compile(r"^https?://")
_WHITESPACE = re.compile(r"\s+")


def normalize_url(url: str) -> str:
    """Strip cache-busting query parameters from an absolute URL.

    Other parameters keep their order. Anything that does not parse as an
    absolute URL is returned unchanged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    if not parts.scheme or not parts.netloc:
        return url

    # Filter raw segments so the remaining parameters keep their exact encoding
    query = "&".join(
        segment
        for segment in parts.query.split("&")
        if segment and unquote_plus(segment.split("=", 1)[0]) not in CACHE_PARAMS
    )
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", query, parts.fragment))


def normalize_title(title: Optional[str]) -> Optional[str]:
    if title is None:
        return None
    collapsed = _WHITESPACE.sub(" ", title).strip()
    return collapsed or None


def make_document_id(title: Optional[str], url: str) -> str:
    """Derive the convenience key ``normalized(title)::normalized(url)``."""
    title_part = _NON_ALNUM.sub("", (title or "").lower())
    url_part = _NON_ALNUM.sub("", _SCHEME.sub("", url.lower()))
    return f"{title_part}::{url_part}"[:MAX_ID_LENGTH]


@dataclass
class Document:
    """One logical document discovered on a site."""

    url: str
    title: Optional[str] = None
    date: Optional[str] = None
    hash: Optional[str] = None
    intermediate_url: Optional[str] = None
    first_seen: Optional[str] = None
    id: str = field(default="")

    def __post_init__(self):
        if not self.id:
            self.id = make_document_id(self.title, self.url)

    @classmethod
    def from_fields(cls, values: dict[str, str]) -> Optional["Document"]:
        """Build a normalized document from raw extracted field values.

        Returns None when the values do not name a URL.
        """
        url = values.get("url")
        if not url:
            return None

        date = values.get("date")
        return cls(
            url=normalize_url(url),
            title=normalize_title(values.get("title")),
            date=date.strip() if date else None,
        )

    def with_url(self, url: str, intermediate_url: Optional[str] = None) -> "Document":
        """Copy of this document pointing at a different URL, with a fresh id."""
        return replace(
            self,
            url=normalize_url(url),
            intermediate_url=intermediate_url,
            id=make_document_id(self.title, normalize_url(url)),
        )

    @property
    def label(self) -> str:
        return self.title or self.url

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the state file (camelCase keys, no empty values)."""
        data = {
            "title": self.title,
            "url": self.url,
            "date": self.date,
            "hash": self.hash,
            "intermediateUrl": self.intermediate_url,
            "firstSeen": self.first_seen,
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        return cls(
            url=data["url"],
            title=data.get("title"),
            date=data.get("date"),
            hash=data.get("hash"),
            intermediate_url=data.get("intermediateUrl"),
            first_seen=data.get("firstSeen"),
        )
