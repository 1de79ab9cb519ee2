"""Paginated, decrypted view of a table."""

import asyncio
import logging
from dataclasses import dataclass

from pii_decryptor.codec import resolve

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 32


@dataclass(frozen=True)
class ProjectedPage:
    page: int
    rows: list
    generation: int


def page_slice(table, page, rows_per_page):
    """Raw rows shown on ``page``. Pages past the end give an empty slice."""
    if page < 1:
        raise ValueError(f"Page numbers start at 1, got {page}")
    start = (page - 1) * rows_per_page
    return table.rows[start : start + rows_per_page]


async def project_page(
    table, encryption, key, page, rows_per_page, max_concurrent=DEFAULT_MAX_CONCURRENT
):
    """
    Resolve every visible cell of ``page`` and return the rendered rows.

    Cells are resolved concurrently, bounded by ``max_concurrent``. The result
    keeps the original row and column order and is only returned once every
    cell of the page is done, so no row is ever partially rendered.
    """
    visible = page_slice(table, page, rows_per_page)
    if not visible:
        return []

    semaphore = asyncio.Semaphore(max_concurrent)
    width = table.column_count

    async def _resolve_cell(row, col_idx):
        value = row[col_idx] if col_idx < len(row) else None
        async with semaphore:
            return await resolve(value, encryption.is_encrypted(col_idx), key)

    tasks = [_resolve_cell(row, col_idx) for row in visible for col_idx in range(width)]
    cells = await asyncio.gather(*tasks)

    return [list(cells[i : i + width]) for i in range(0, len(cells), width)]


class PageRenderer:
    """
    Issues projections and drops results that a newer request superseded.

    Every call to :meth:`render` starts a new generation; when a projection
    finishes after a later one was requested its result is discarded.
    """

    def __init__(self, max_concurrent=DEFAULT_MAX_CONCURRENT):
        self.max_concurrent = max_concurrent
        self._generation = 0

    @property
    def generation(self):
        return self._generation

    def invalidate(self):
        """Mark every in-flight projection as stale."""
        self._generation += 1

    async def render(self, table, encryption, key, page, rows_per_page):
        self._generation += 1
        generation = self._generation

        rows = await project_page(
            table, encryption, key, page, rows_per_page, max_concurrent=self.max_concurrent
        )

        if generation != self._generation:
            logger.debug("Dropping stale projection of page %d (gen %d)", page, generation)
            return None
        return ProjectedPage(page=page, rows=rows, generation=generation)
