"""Tests for the export pipeline: grid, serialization, archive and busy state."""

import asyncio
import io
import zipfile

import openpyxl
import pytest

from pii_decryptor.cipher import encrypt_value
from pii_decryptor.codec import stringify
from pii_decryptor.exporter import (
    ExportBusyError,
    ExportError,
    Exporter,
    ExportFormat,
    ExportState,
    build_export_grid,
    export_table,
    package_archive,
    serialize_grid,
)
from pii_decryptor.reader import TableModel, read_table
from pii_decryptor.state import ColumnEncryptionState

KEY = "0123456789abcdef0123456789abcdef"
WRONG_KEY = "fedcba9876543210fedcba9876543210"


@pytest.fixture
def plain_table():
    return TableModel(
        headers=("employee_id", "first_name", "email", "salary"),
        rows=(
            (1001, "Alice", "alice@example.com", 95000.5),
            (1002, "Bob", "bob@example.com", 82000),
            (1003, "Carol, Jr.", 'carol "cj"@example.com', 91000),
        ),
    )


@pytest.fixture
def ssn_table():
    return TableModel(
        headers=("id", "ssn"),
        rows=(
            ("1", encrypt_value(KEY, "111-22-3333")),
            ("2", encrypt_value(KEY, "444-55-6666")),
        ),
    )


def _flags(table, *names):
    encryption = ColumnEncryptionState.for_headers(table.headers)
    for name in names:
        encryption.toggle(name)
    return encryption


def _unzip(artifact):
    with zipfile.ZipFile(io.BytesIO(artifact.data)) as zf:
        names = zf.namelist()
        return names, zf.read(names[0])


class TestBuildExportGrid:
    def test_header_then_rows(self, plain_table):
        grid = build_export_grid(plain_table, _flags(plain_table), None)
        assert grid[0] == ["employee_id", "first_name", "email", "salary"]
        assert grid[1] == ["1001", "Alice", "alice@example.com", "95000.5"]
        assert len(grid) == 4

    def test_decrypts_flagged_column(self, ssn_table):
        grid = build_export_grid(ssn_table, _flags(ssn_table, "ssn"), KEY)
        assert [r[1] for r in grid[1:]] == ["111-22-3333", "444-55-6666"]

    def test_wrong_key_keeps_ciphertext(self, ssn_table):
        grid = build_export_grid(ssn_table, _flags(ssn_table, "ssn"), WRONG_KEY)
        assert [r[1] for r in grid[1:]] == [r[1] for r in ssn_table.rows]

    def test_none_cells_empty(self):
        table = TableModel(headers=("a", "b"), rows=((None, "x"),))
        grid = build_export_grid(table, _flags(table, "a"), KEY)
        assert grid[1] == ["", "x"]


class TestSerialize:
    def test_csv_bytes(self):
        data = serialize_grid([["a", "b"], ["1", "x,y"]], "csv")
        assert data == b'a,b\n1,"x,y"\n'

    def test_xlsx_bytes(self):
        data = serialize_grid([["a", "b"], ["1", "2"]], ExportFormat.XLSX)
        wb = openpyxl.load_workbook(io.BytesIO(data))
        ws = wb.active
        assert ws.title == "Sheet1"
        assert [c.value for c in ws[2]] == ["1", "2"]
        wb.close()

    def test_formula_like_text_stays_text(self):
        data = serialize_grid([["note"], ["=1+1"], ['=HYPERLINK("x")']], "xlsx")
        wb = openpyxl.load_workbook(io.BytesIO(data))
        ws = wb.active
        assert [ws.cell(row=r, column=1).data_type for r in (2, 3)] == ["s", "s"]
        assert ws["A2"].value == "=1+1"
        wb.close()

    def test_illegal_xlsx_characters(self):
        with pytest.raises(ExportError):
            serialize_grid([["a"], ["bell\x07char"]], "xlsx")

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            serialize_grid([["a"]], "ods")


class TestArchive:
    def test_single_member(self):
        artifact = package_archive("exported-data.csv", b"a\n", "exported-data.zip")
        names, payload = _unzip(artifact)
        assert names == ["exported-data.csv"]
        assert payload == b"a\n"
        assert artifact.filename == "exported-data.zip"

    def test_save(self, tmp_path):
        artifact = package_archive("exported-data.csv", b"a\n", "exported-data.zip")
        path = artifact.save(str(tmp_path / "out"))
        assert path == str(tmp_path / "out" / "exported-data.zip")
        with open(path, "rb") as f:
            assert f.read() == artifact.data


class TestExportTable:
    @pytest.mark.parametrize("fmt", ["csv", "xlsx"])
    def test_round_trip_without_encryption(self, plain_table, fmt):
        artifact = asyncio.run(export_table(plain_table, _flags(plain_table), None, fmt))
        names, payload = _unzip(artifact)
        assert names == [f"exported-data.{fmt}"]
        assert artifact.filename == "exported-data.zip"

        reparsed = read_table(payload, filename=names[0])
        assert reparsed.headers == plain_table.headers
        assert len(reparsed.rows) == len(plain_table.rows)
        for original, exported in zip(plain_table.rows, reparsed.rows, strict=True):
            assert [stringify(v) for v in exported] == [stringify(v) for v in original]

    @pytest.mark.parametrize("fmt", ["csv", "xlsx"])
    def test_export_reflects_decryption(self, ssn_table, fmt):
        artifact = asyncio.run(export_table(ssn_table, _flags(ssn_table, "ssn"), KEY, fmt))
        names, payload = _unzip(artifact)
        reparsed = read_table(payload, filename=names[0])
        assert [r[1] for r in reparsed.rows] == ["111-22-3333", "444-55-6666"]

    def test_formula_like_text_round_trips_as_xlsx(self):
        table = TableModel(
            headers=("id", "note", "secret"),
            rows=(("1", "=2*3", encrypt_value(KEY, "=2*3")),),
        )
        artifact = asyncio.run(export_table(table, _flags(table, "secret"), KEY, "xlsx"))
        names, payload = _unzip(artifact)
        reparsed = read_table(payload, filename=names[0])
        assert reparsed.rows == (("1", "=2*3", "=2*3"),)

    def test_custom_basename(self, plain_table):
        artifact = asyncio.run(
            export_table(plain_table, _flags(plain_table), None, "csv", basename="report")
        )
        assert artifact.filename == "report.zip"
        assert artifact.member == "report.csv"

    def test_failure_raises_export_error(self):
        table = TableModel(headers=("note",), rows=(("bad\x01value",),))
        with pytest.raises(ExportError):
            asyncio.run(export_table(table, _flags(table), None, "xlsx"))

    def test_exports_are_independent(self, plain_table):
        """Two exports never share an archive."""
        csv_artifact = asyncio.run(export_table(plain_table, _flags(plain_table), None, "csv"))
        xlsx_artifact = asyncio.run(export_table(plain_table, _flags(plain_table), None, "xlsx"))
        assert _unzip(csv_artifact)[0] == ["exported-data.csv"]
        assert _unzip(xlsx_artifact)[0] == ["exported-data.xlsx"]


class TestExporterStateMachine:
    def test_starts_idle(self):
        exporter = Exporter()
        assert exporter.state("csv") is ExportState.IDLE
        assert exporter.state(ExportFormat.XLSX) is ExportState.IDLE

    def test_idle_after_success(self, plain_table):
        exporter = Exporter()
        asyncio.run(exporter.export(plain_table, _flags(plain_table), None, "csv"))
        assert not exporter.is_exporting("csv")

    def test_idle_after_failure(self):
        exporter = Exporter()
        table = TableModel(headers=("note",), rows=(("bad\x01value",),))
        with pytest.raises(ExportError):
            asyncio.run(exporter.export(table, _flags(table), None, "xlsx"))
        assert exporter.state("xlsx") is ExportState.IDLE

    def test_same_format_reentry_rejected(self, plain_table):
        exporter = Exporter()
        flags = _flags(plain_table)

        async def _run():
            return await asyncio.gather(
                exporter.export(plain_table, flags, None, "xlsx"),
                exporter.export(plain_table, flags, None, "xlsx"),
                return_exceptions=True,
            )

        first, second = asyncio.run(_run())
        assert first.member == "exported-data.xlsx"
        assert isinstance(second, ExportBusyError)
        assert exporter.state("xlsx") is ExportState.IDLE

    def test_different_formats_run_together(self, plain_table):
        exporter = Exporter()
        flags = _flags(plain_table)

        async def _run():
            return await asyncio.gather(
                exporter.export(plain_table, flags, None, "xlsx"),
                exporter.export(plain_table, flags, None, "csv"),
            )

        xlsx_artifact, csv_artifact = asyncio.run(_run())
        assert xlsx_artifact.member == "exported-data.xlsx"
        assert csv_artifact.member == "exported-data.csv"
