"""Application controller: owns the session state and is its only mutator."""

import logging
import os
from dataclasses import dataclass, field

from pii_decryptor.config import Config
from pii_decryptor.exporter import Exporter
from pii_decryptor.projection import PageRenderer
from pii_decryptor.reader import read_table, read_table_file
from pii_decryptor.state import ColumnEncryptionState, EncryptionKey, PaginationState

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    pagination: PaginationState
    table: object = None
    encryption: ColumnEncryptionState = field(default_factory=ColumnEncryptionState)
    key: EncryptionKey = field(default_factory=EncryptionKey)


class AppController:
    """Entry point for every state change made by the view."""

    def __init__(self, config=None):
        self.config = config or Config()
        self.state = AppState(
            pagination=PaginationState(
                rows_per_page=self.config.rows_per_page, page_window=self.config.page_window
            )
        )
        self.renderer = PageRenderer(max_concurrent=self.config.max_concurrent_decrypts)
        self.exporter = Exporter(
            basename=self.config.export_basename, sheet_name=self.config.export_sheet_name
        )

    # ── Loading ───────────────────────────────────────────────────

    @property
    def table(self):
        return self.state.table

    def load_bytes(self, data, filename=None, fmt=None):
        """
        Parse and install a new table.

        ParseError propagates and leaves the current table, column flags and
        page untouched.
        """
        table = read_table(data, filename=filename, fmt=fmt, delimiter=self.config.csv_delimiter)
        self._install(table)
        return table

    def load_file(self, filepath, fmt=None):
        table = read_table_file(filepath, fmt=fmt, delimiter=self.config.csv_delimiter)
        self._install(table)
        return table

    def _install(self, table):
        self.state.table = table
        self.state.encryption = ColumnEncryptionState.for_headers(table.headers)
        self.state.pagination.reset()
        self.renderer.invalidate()

    def _require_table(self):
        if self.state.table is None:
            raise RuntimeError("No table loaded")
        return self.state.table

    # ── Columns and key ───────────────────────────────────────────

    def toggle_encryption(self, header):
        self._require_table()
        flag = self.state.encryption.toggle(header)
        logger.debug("Column %r encrypted=%s", header, flag)
        return flag

    def set_key_text(self, text):
        self.state.key.text = text

    def set_key(self, text=None):
        if text is not None:
            self.state.key.text = text
        self.state.key.set()

    def unset_key(self):
        self.state.key.unset()

    def toggle_key(self):
        return self.state.key.toggle()

    # ── Pagination ────────────────────────────────────────────────

    def _row_count(self):
        return self.state.table.row_count if self.state.table is not None else 0

    @property
    def current_page(self):
        return self.state.pagination.current_page

    def total_pages(self):
        return self.state.pagination.total_pages(self._row_count())

    def go_to_page(self, page):
        return self.state.pagination.go_to(page, self._row_count())

    def next_page(self):
        return self.state.pagination.next(self._row_count())

    def previous_page(self):
        return self.state.pagination.previous(self._row_count())

    def page_numbers(self):
        return self.state.pagination.visible_page_numbers(self._row_count())

    def entry_range(self):
        return self.state.pagination.entry_range(self._row_count())

    # ── Rendering and export ──────────────────────────────────────

    async def render_page(self, page=None):
        """Project the current (or given) page; None if a newer render superseded it."""
        table = self._require_table()
        return await self.renderer.render(
            table,
            self.state.encryption.snapshot(),
            self.state.key.effective,
            page or self.state.pagination.current_page,
            self.state.pagination.rows_per_page,
        )

    def is_exporting(self, fmt):
        return self.exporter.is_exporting(fmt)

    async def export(self, fmt):
        table = self._require_table()
        return await self.exporter.export(
            table, self.state.encryption.snapshot(), self.state.key.effective, fmt
        )

    async def export_to(self, fmt, directory=None):
        """Export and write the archive; returns the written path."""
        artifact = await self.export(fmt)
        return artifact.save(os.path.expanduser(directory or self.config.export_directory))
