"""
Unit tests for dashboard_service.parser.

Tests the xlsx, then xls, then delimited decoder order and rejection of
unusable content.
"""

import io

import openpyxl
import pytest
import xlwt

from core.errors import ParseError
from dashboard_service.parser import (
    DecodeFailure,
    decode_delimited,
    decode_legacy_spreadsheet,
    decode_spreadsheet,
    parse_bytes,
    parse_file,
)


def _xlsx_bytes(*sheets) -> bytes:
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for index, rows in enumerate(sheets):
        sheet = workbook.create_sheet(f"Sheet{index + 1}")
        for row in rows:
            sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _xls_bytes(*sheets) -> bytes:
    workbook = xlwt.Workbook()
    for index, rows in enumerate(sheets):
        sheet = workbook.add_sheet(f"Sheet{index + 1}")
        for row_index, row in enumerate(rows):
            for col_index, value in enumerate(row):
                if value is not None:
                    sheet.write(row_index, col_index, value)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestDelimitedDecoding:

    def test_basic_csv(self):
        grid = parse_bytes(b"Month,Sales\nJan,100\nFeb,200\n")

        assert grid.source_format == "delimited"
        assert grid.rows == (("Month", "Sales"), ("Jan", "100"), ("Feb", "200"))

    def test_blank_lines_dropped_and_cells_trimmed(self):
        grid = parse_bytes(b"\n Month , Sales \r\n\r\n  Jan ,  100\r\n   \n")

        assert grid.rows == (("Month", "Sales"), ("Jan", "100"))

    def test_utf8_bom_stripped(self):
        grid = parse_bytes("\ufeffMonth,Sales\nJan,1\n".encode("utf-8"))

        assert grid.header == ("Month", "Sales")

    def test_comma_only_lines_dropped(self):
        grid = parse_bytes(b"Month,Sales,\n,,\nJan,100,\n , \n")

        assert grid.rows == (("Month", "Sales"), ("Jan", "100"))

    def test_same_shape_as_spreadsheet(self):
        text = parse_bytes(b"Month,Sales,\n,,\nJan,5,\n")
        sheet = parse_bytes(_xlsx_bytes([["Month", "Sales", None], [None, None, None], ["Jan", "5", None]]))

        assert text.rows == sheet.rows

    def test_ragged_rows_kept(self):
        grid = parse_bytes(b"Month,Sales,Profit\nJan,100\n")

        assert grid.data_rows == (("Jan", "100"),)

    def test_binary_rejected(self):
        result = decode_delimited(b"PK\x03\x04\x00\x00garbage")

        assert isinstance(result, DecodeFailure)
        assert result.reason == "binary content"

    def test_invalid_utf8_rejected(self):
        result = decode_delimited(b"Month,Sales\nJ\xe9n,100\n")

        assert isinstance(result, DecodeFailure)


class TestSpreadsheetDecoding:

    def test_xlsx_first_sheet_only(self):
        data = _xlsx_bytes(
            [["Month", "Sales"], ["Jan", 100], ["Feb", 250.5]],
            [["Other", "Sheet"], ["x", 1]],
        )

        grid = parse_bytes(data)

        assert grid.source_format == "spreadsheet"
        assert grid.rows == (("Month", "Sales"), ("Jan", 100), ("Feb", 250.5))

    def test_empty_rows_dropped(self):
        data = _xlsx_bytes([["Month", "Sales"], [None, None], ["Jan", 5]])

        grid = parse_bytes(data)

        assert len(grid) == 2

    def test_text_is_not_a_workbook(self):
        assert isinstance(decode_spreadsheet(b"Month,Sales\nJan,1\n"), DecodeFailure)

    def test_xls_is_not_ooxml(self):
        data = _xls_bytes([["Month", "Sales"], ["Jan", 1]])

        assert isinstance(decode_spreadsheet(data), DecodeFailure)


class TestLegacySpreadsheetDecoding:

    def test_xls_first_sheet_only(self):
        data = _xls_bytes(
            [["Month", "Sales", "Profit"], ["Jan", 100, 10], ["Feb", 200, -5], ["Mar", 300, 30]],
            [["Other", "Sheet"], ["x", 1]],
        )

        grid = parse_bytes(data)

        assert grid.source_format == "legacy_spreadsheet"
        assert grid.header == ("Month", "Sales", "Profit")
        assert grid.data_rows == (("Jan", 100.0, 10.0), ("Feb", 200.0, -5.0), ("Mar", 300.0, 30.0))

    def test_empty_rows_dropped(self):
        data = _xls_bytes([["Month", "Sales"], [], ["Jan", 5]])

        assert parse_bytes(data).rows == (("Month", "Sales"), ("Jan", 5.0))

    def test_xls_file_on_disk(self, tmp_path):
        path = tmp_path / "data.xls"
        path.write_bytes(_xls_bytes([["Month", "Sales"], ["Jan", 42]]))

        assert parse_file(path).data_rows == (("Jan", 42.0),)

    @pytest.mark.parametrize("data", [
        b"Month,Sales\nJan,1\n",
        b"",
    ])
    def test_non_workbook_rejected(self, data):
        assert isinstance(decode_legacy_spreadsheet(data), DecodeFailure)


class TestParseFailures:

    def test_header_only(self):
        with pytest.raises(ParseError) as exc_info:
            parse_bytes(b"Month,Sales\n")
        assert exc_info.value.reason == "unparseable"

    def test_blank_content(self):
        with pytest.raises(ParseError):
            parse_bytes(b"\n\n   \n")

    def test_empty_header_row(self):
        data = _xlsx_bytes([[None, None, "  "], ["Jan", 1]])
        # Fully blank rows are dropped, so the data row becomes the header
        with pytest.raises(ParseError):
            parse_bytes(data)

    def test_binary_garbage_reports_every_decoder(self):
        with pytest.raises(ParseError) as exc_info:
            parse_bytes(b"\x00\x01\x02\xff" * 64)

        message = str(exc_info.value)
        assert "spreadsheet:" in message
        assert "legacy_spreadsheet:" in message
        assert "delimited:" in message

    def test_parse_file(self, tmp_path):
        path = tmp_path / "report.csv"
        path.write_bytes(b"Month,Sales\nJan,100\n")

        assert len(parse_file(path)) == 2
