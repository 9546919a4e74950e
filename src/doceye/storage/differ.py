"""Change classification between runs.

A current document is matched against the previous snapshot by URL first and
by case-insensitive title second:

* same URL, both hashes known and different -> updated (hash_changed)
* same URL otherwise                         -> unchanged
* same title, different URL                  -> updated (url_changed)
* anything else                              -> new

A missing hash never produces an update on its own.
"""

from dataclasses import replace
from typing import Optional

from ..scraper.documents import Document
from .types import DiffResult, SiteState, UpdatedDocument, UpdateReason


class StateDiffer:
    """Classifies documents and builds the next persisted snapshot."""

    @staticmethod
    def diff(previous: list[Document], current: list[Document]) -> DiffResult:
        by_url: dict[str, Document] = {}
        by_title: dict[str, Document] = {}
        for document in previous:
            by_url[document.url] = document
            if document.title:
                by_title[document.title.lower()] = document

        result = DiffResult()
        for document in current:
            previous_doc = by_url.get(document.url)
            if previous_doc is not None:
                if document.hash and previous_doc.hash and document.hash != previous_doc.hash:
                    result.updated.append(
                        UpdatedDocument(document, previous_doc, UpdateReason.HASH_CHANGED)
                    )
                else:
                    result.unchanged.append(document)
                continue

            previous_doc = by_title.get(document.title.lower()) if document.title else None
            if previous_doc is not None and previous_doc.url != document.url:
                result.updated.append(
                    UpdatedDocument(document, previous_doc, UpdateReason.URL_CHANGED)
                )
            else:
                result.new.append(document)

        return result

    @staticmethod
    def apply(site_state: SiteState, diff: DiffResult, now: str) -> SiteState:
        """Replace the site's snapshot with this run's documents.

        Unchanged documents inherit ``first_seen`` and ``hash`` from the record
        they matched, so skipping their download never loses what was known.
        """
        previous_by_url = {document.url: document for document in site_state.documents}

        snapshot = [_stamp(document, None, now) for document in diff.new]
        snapshot.extend(_stamp(update.doc, None, now) for update in diff.updated)
        snapshot.extend(
            _stamp(document, previous_by_url.get(document.url), now)
            for document in diff.unchanged
        )

        site_state.documents = snapshot
        site_state.last_check = now
        return site_state


def _stamp(document: Document, previous: Optional[Document], now: str) -> Document:
    return replace(
        document,
        first_seen=document.first_seen or (previous.first_seen if previous else None) or now,
        hash=document.hash or (previous.hash if previous else None),
    )
