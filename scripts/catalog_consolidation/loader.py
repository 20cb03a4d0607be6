"""
Catalog Snapshot Loader

Pages through every product in the store and returns one in-memory snapshot.
A failed page fails the whole load; callers never see a partial snapshot.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .client import MAX_PAGE_SIZE
from .models import CatalogEntry

log = logging.getLogger(__name__)


class LoadError(RuntimeError):
    """The snapshot could not be fetched completely."""


class SnapshotLoader:
    def __init__(self, client, page_size: int = 50, max_pages: Optional[int] = None):
        self.client = client
        self.page_size = max(1, min(MAX_PAGE_SIZE, page_size))
        self.max_pages = max_pages

    def load_all(self) -> List[CatalogEntry]:
        entries: List[CatalogEntry] = []
        seen_cursors = set()
        cursor: Optional[str] = None
        page = 0

        while True:
            page += 1
            result = self.client.list_entries(self.page_size, cursor)
            if not result.ok:
                raise LoadError(f"page {page} failed: {result.describe()}")

            batch, next_cursor = result.value
            entries.extend(batch)
            log.debug("Page %d: %d entries (running total %d)", page, len(batch), len(entries))

            if not next_cursor:
                break
            if next_cursor in seen_cursors:
                raise LoadError(f"page {page} repeated cursor {next_cursor!r}")
            if self.max_pages is not None and page >= self.max_pages:
                raise LoadError(f"gave up after {page} pages with more remaining")
            seen_cursors.add(next_cursor)
            cursor = next_cursor

        log.info("Loaded %d catalog entries in %d page(s)", len(entries), page)
        return entries
