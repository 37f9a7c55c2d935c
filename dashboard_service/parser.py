"""
Format-tolerant parser for downloaded sheets.

The producer does not guarantee a format, so decoders are tried in a fixed
order: OOXML workbook (openpyxl), legacy BIFF workbook (xlrd), then
delimited text. Workbooks contribute their first sheet only. Each
decoder returns either a RowGrid or a DecodeFailure; ParseError is raised
only when every decoder failed.
"""
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Sequence, Tuple, Union

import openpyxl
import xlrd

from core.errors import ParseError
from core.state import RowGrid

logger = logging.getLogger(__name__)

MIN_ROWS = 2


@dataclass(frozen=True)
class DecodeFailure:
    decoder: str
    reason: str


DecodeResult = Union[RowGrid, DecodeFailure]


def _is_blank(cell: Any) -> bool:
    return cell is None or (isinstance(cell, str) and not cell.strip())


def _trim_trailing(row: Sequence[Any]) -> Tuple[Any, ...]:
    end = len(row)
    while end > 0 and _is_blank(row[end - 1]):
        end -= 1
    return tuple(row[:end])


def _keep_rows(rows: Iterable[Sequence[Any]]) -> List[Tuple[Any, ...]]:
    """Trailing blank cells trimmed, fully-empty rows dropped."""
    kept = []
    for row in rows:
        trimmed = _trim_trailing(row)
        if trimmed:
            kept.append(trimmed)
    return kept


def _check_shape(decoder: str, rows: List[Tuple[Any, ...]]) -> DecodeResult:
    if not rows:
        return DecodeFailure(decoder, "no rows")
    if not any(not _is_blank(cell) for cell in rows[0]):
        return DecodeFailure(decoder, "empty header row")
    if len(rows) < MIN_ROWS:
        return DecodeFailure(decoder, f"only {len(rows)} row(s), need a header and at least one data row")
    return RowGrid(rows=tuple(rows), source_format=decoder)


def decode_spreadsheet(data: bytes) -> DecodeResult:
    """First worksheet of an xlsx workbook, fully-empty rows dropped."""
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        return DecodeFailure("spreadsheet", f"{type(e).__name__}: {e}")

    try:
        if not workbook.worksheets:
            return DecodeFailure("spreadsheet", "workbook has no sheets")
        rows = _keep_rows(workbook.worksheets[0].iter_rows(values_only=True))
    finally:
        workbook.close()

    return _check_shape("spreadsheet", rows)


def decode_legacy_spreadsheet(data: bytes) -> DecodeResult:
    """First sheet of a BIFF (.xls) workbook."""
    try:
        book = xlrd.open_workbook(file_contents=data, on_demand=True)
    except Exception as e:
        return DecodeFailure("legacy_spreadsheet", f"{type(e).__name__}: {e}")

    try:
        if book.nsheets == 0:
            return DecodeFailure("legacy_spreadsheet", "workbook has no sheets")
        sheet = book.sheet_by_index(0)
        rows = _keep_rows(sheet.row_values(index) for index in range(sheet.nrows))
    finally:
        book.release_resources()

    return _check_shape("legacy_spreadsheet", rows)


def decode_delimited(data: bytes) -> DecodeResult:
    """Comma-separated text: split on newline then comma, empty rows dropped."""
    if b"\x00" in data:
        return DecodeFailure("delimited", "binary content")
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        return DecodeFailure("delimited", f"not UTF-8 text: {e.reason}")

    rows = _keep_rows(
        tuple(cell.strip() for cell in line.split(","))
        for line in text.split("\n")
    )

    return _check_shape("delimited", rows)


DECODERS: Tuple[Tuple[str, Callable[[bytes], DecodeResult]], ...] = (
    ("spreadsheet", decode_spreadsheet),
    ("legacy_spreadsheet", decode_legacy_spreadsheet),
    ("delimited", decode_delimited),
)


def parse_bytes(data: bytes) -> RowGrid:
    """
    Decode raw file content into a RowGrid.

    Raises:
        ParseError: every decoder failed
    """
    failures: List[DecodeFailure] = []
    for name, decoder in DECODERS:
        result = decoder(data)
        if isinstance(result, RowGrid):
            logger.info(
                f"Parsed {len(result)} rows with {name} decoder "
                f"({len(result.header)} header columns)"
            )
            return result
        logger.debug(f"{name} decoder failed: {result.reason}")
        failures.append(result)

    detail = "; ".join(f"{f.decoder}: {f.reason}" for f in failures)
    raise ParseError(detail)


def parse_file(path: Union[str, Path]) -> RowGrid:
    with open(path, "rb") as f:
        data = f.read()
    logger.debug(f"Parsing {path} ({len(data)} bytes)")
    return parse_bytes(data)
