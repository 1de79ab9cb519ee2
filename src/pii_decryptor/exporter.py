"""Export the decrypted-per-current-state table as XLSX or CSV inside a ZIP archive."""

import asyncio
import csv
import enum
import io
import logging
import os
import zipfile
from dataclasses import dataclass

import openpyxl

from pii_decryptor.codec import resolve_value, stringify

logger = logging.getLogger(__name__)

DEFAULT_BASENAME = "exported-data"
DEFAULT_SHEET_NAME = "Sheet1"


class ExportFormat(enum.StrEnum):
    XLSX = "xlsx"
    CSV = "csv"


class ExportState(enum.Enum):
    IDLE = "idle"
    EXPORTING = "exporting"


class ExportError(RuntimeError):
    """Serializing or archiving the table failed; nothing was produced."""


class ExportBusyError(ExportError):
    """An export of the same format is already running."""


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    member: str
    data: bytes

    def save(self, directory):
        """Write the archive into ``directory`` and return its path."""
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, self.filename)
        with open(path, "wb") as f:
            f.write(self.data)
        return path


def build_export_grid(table, encryption, key):
    """Header row followed by every data row resolved through the cell codec."""
    grid = [[stringify(h) for h in table.headers]]
    for row in table.rows:
        grid.append(
            [
                resolve_value(cell, encryption.is_encrypted(col_idx), key)
                for col_idx, cell in enumerate(row)
            ]
        )
    return grid


def serialize_grid(grid, fmt, sheet_name=DEFAULT_SHEET_NAME):
    """Render the grid to file bytes. Raises ExportError on any failure."""
    fmt = ExportFormat(fmt)
    try:
        if fmt is ExportFormat.XLSX:
            return _to_xlsx(grid, sheet_name)
        return _to_csv(grid)
    except ExportError:
        raise
    except Exception as e:
        raise ExportError(f"Failed to write {fmt.value.upper()}: {e}") from e


def _to_xlsx(grid, sheet_name):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_name
    for row_idx, row in enumerate(grid, 1):
        for col_idx, value in enumerate(row, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            # Text starting with "=" stays text, never a formula.
            if isinstance(value, str):
                cell.data_type = "s"

    buf = io.BytesIO()
    wb.save(buf)
    wb.close()
    return buf.getvalue()


def _to_csv(grid):
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerows(grid)
    return buf.getvalue().encode("utf-8")


def package_archive(member, payload, archive_name):
    """Wrap a single file in a fresh ZIP archive."""
    buf = io.BytesIO()
    try:
        with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(member, payload)
    except (zipfile.BadZipFile, OSError, ValueError) as e:
        raise ExportError(f"Failed to build archive: {e}") from e
    return ExportArtifact(filename=archive_name, member=member, data=buf.getvalue())


def export_table_sync(
    table, encryption, key, fmt, basename=DEFAULT_BASENAME, sheet_name=DEFAULT_SHEET_NAME
):
    fmt = ExportFormat(fmt)
    grid = build_export_grid(table, encryption, key)
    payload = serialize_grid(grid, fmt, sheet_name=sheet_name)
    artifact = package_archive(f"{basename}.{fmt.value}", payload, f"{basename}.zip")
    logger.info(
        "Exported %d row(s) as %s (%d bytes)", table.row_count, artifact.member, len(artifact.data)
    )
    return artifact


async def export_table(
    table, encryption, key, fmt, basename=DEFAULT_BASENAME, sheet_name=DEFAULT_SHEET_NAME
):
    """
    Materialize the full table into a downloadable archive.

    Every export builds its grid, file and archive from scratch; nothing is
    shared between two exports. The work runs in a worker thread.
    """
    return await asyncio.to_thread(
        export_table_sync, table, encryption, key, fmt, basename, sheet_name
    )


class Exporter:
    """
    One Idle/Exporting state machine per export format.

    Starting an export of a format that is already exporting raises
    ExportBusyError. The state returns to Idle whether the export succeeds
    or fails.
    """

    def __init__(self, basename=DEFAULT_BASENAME, sheet_name=DEFAULT_SHEET_NAME):
        self.basename = basename
        self.sheet_name = sheet_name
        self._states = {fmt: ExportState.IDLE for fmt in ExportFormat}

    def state(self, fmt):
        return self._states[ExportFormat(fmt)]

    def is_exporting(self, fmt):
        return self.state(fmt) is ExportState.EXPORTING

    async def export(self, table, encryption, key, fmt):
        fmt = ExportFormat(fmt)
        if self._states[fmt] is ExportState.EXPORTING:
            logger.warning("%s export already in progress", fmt.value.upper())
            raise ExportBusyError(f"A {fmt.value.upper()} export is already in progress")

        self._states[fmt] = ExportState.EXPORTING
        try:
            return await export_table(
                table, encryption, key, fmt, basename=self.basename, sheet_name=self.sheet_name
            )
        finally:
            self._states[fmt] = ExportState.IDLE
