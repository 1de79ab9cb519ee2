"""Tabular file reading (CSV, XLSX via openpyxl, legacy XLS via xlrd), first sheet only."""

import csv
import io
import logging
import os
from dataclasses import dataclass

import openpyxl
import xlrd

from pii_decryptor.codec import stringify

logger = logging.getLogger(__name__)

FORMATS = ("csv", "xlsx", "xls")

_XLSX_MAGIC = b"PK\x03\x04"
_XLS_MAGIC = b"\xd0\xcf\x11\xe0"
_CSV_DELIMITERS = ",;\t|"


class ParseError(ValueError):
    """The uploaded file could not be read as a table."""


@dataclass(frozen=True)
class TableModel:
    """Header row plus data rows of one loaded file. Never mutated after load."""

    headers: tuple
    rows: tuple

    @property
    def row_count(self):
        return len(self.rows)

    @property
    def column_count(self):
        return len(self.headers)


def detect_format(data, filename=None):
    """Pick a reader from the file extension, falling back to magic bytes."""
    if filename:
        ext = os.path.splitext(filename)[1].lower().lstrip(".")
        if ext in FORMATS:
            return ext
    if data.startswith(_XLSX_MAGIC):
        return "xlsx"
    if data.startswith(_XLS_MAGIC):
        return "xls"
    return "csv"


def read_table(data, filename=None, fmt=None, delimiter=","):
    """
    Parse raw file bytes into a TableModel.

    The first row becomes the headers, every following row a data row.
    Raises ParseError for corrupt, unsupported or empty input.
    """
    fmt = (fmt or detect_format(data, filename)).lower()
    if fmt not in FORMATS:
        raise ParseError(f"Unsupported format: {fmt}")

    if fmt == "xlsx":
        raw_rows = _read_xlsx_rows(data)
    elif fmt == "xls":
        raw_rows = _read_xls_rows(data)
    else:
        raw_rows = _read_csv_rows(data, delimiter)

    rows = _trim_blank_edges([tuple(r) for r in raw_rows])
    if not rows:
        raise ParseError("File contains no header row")

    headers = tuple(_header_name(h, i) for i, h in enumerate(rows[0]))
    table = TableModel(headers=headers, rows=tuple(rows[1:]))
    logger.info(
        "Loaded %s table: %d column(s), %d row(s)", fmt, table.column_count, table.row_count
    )
    return table


def read_table_file(filepath, fmt=None, delimiter=","):
    """Read a table from disk; the format comes from the extension unless given."""
    try:
        with open(filepath, "rb") as f:
            data = f.read()
    except OSError as e:
        raise ParseError(f"Cannot open {filepath}: {e}") from e
    return read_table(data, filename=os.path.basename(filepath), fmt=fmt, delimiter=delimiter)


def _read_xlsx_rows(data):
    try:
        wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise ParseError(f"Not a readable XLSX workbook: {e}") from e

    try:
        if not wb.sheetnames:
            return []
        ws = wb[wb.sheetnames[0]]
        return list(ws.iter_rows(values_only=True))
    except Exception as e:
        raise ParseError(f"Failed to read first sheet: {e}") from e
    finally:
        wb.close()


def _read_xls_rows(data):
    try:
        book = xlrd.open_workbook(file_contents=data)
        sheet = book.sheet_by_index(0)
    except Exception as e:
        raise ParseError(f"Not a readable XLS workbook: {e}") from e

    rows = []
    for r in range(sheet.nrows):
        rows.append([_xls_cell_value(cell, book.datemode) for cell in sheet.row(r)])
    return rows


def _xls_cell_value(cell, datemode):
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    return cell.value


def _read_csv_rows(data, delimiter):
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"CSV file is not valid UTF-8: {e}") from e
    if "\x00" in text:
        raise ParseError("CSV file contains binary data")

    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=_CSV_DELIMITERS)
        sep = dialect.delimiter
    except csv.Error:
        sep = delimiter

    try:
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=sep)
        return [[cell if cell != "" else None for cell in row] for row in reader]
    except csv.Error as e:
        raise ParseError(f"Malformed CSV: {e}") from e


def _is_blank(row):
    return all(v is None or (isinstance(v, str) and v.strip() == "") for v in row)


def _trim_blank_edges(rows):
    """Drop blank rows before the header and after the last data row; keep the rest."""
    start = 0
    while start < len(rows) and _is_blank(rows[start]):
        start += 1
    end = len(rows)
    while end > start and _is_blank(rows[end - 1]):
        end -= 1
    return rows[start:end]


def _header_name(value, index):
    if value is None or (isinstance(value, str) and value == ""):
        return f"Column_{index + 1}"
    return stringify(value)
