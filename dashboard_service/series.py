"""
Series builder: RowGrid -> render-ready SeriesModel.

Pure and deterministic; no I/O. Malformed cells never raise, they coerce
to 0 and all-zero columns are then dropped.
"""
import math
from decimal import Decimal
from typing import Any, List, Optional

from core.errors import SeriesError
from core.state import Dataset, ProportionalEntry, RowGrid, SeriesModel

MAX_LABEL_LENGTH = 10
ELLIPSIS = "..."
MAX_DATASETS = 4


def make_label(cell: Any, index: int) -> str:
    """Display label for data row `index` (0-based)."""
    text = "" if cell is None else str(cell).strip()
    if not text:
        return f"Row {index + 1}"
    if len(text) > MAX_LABEL_LENGTH:
        return text[:MAX_LABEL_LENGTH] + ELLIPSIS
    return text


def coerce_number(cell: Any) -> float:
    """
    Best-effort numeric value of a cell.

    Non-numeric text, booleans, NaN and infinities all become 0. Strings
    are trimmed and thousands separators dropped before parsing.
    """
    if isinstance(cell, bool) or cell is None:
        return 0.0
    if isinstance(cell, (int, float, Decimal)):
        value = float(cell)
    elif isinstance(cell, str):
        text = cell.strip().replace(",", "")
        if not text:
            return 0.0
        try:
            value = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0
    return value if math.isfinite(value) else 0.0


def _cell(row: tuple, index: int) -> Optional[Any]:
    return row[index] if index < len(row) else None


def _column_name(header: tuple, index: int) -> str:
    name = _cell(header, index)
    text = "" if name is None else str(name).strip()
    return text or f"Column {index + 1}"


def build_series(grid: RowGrid) -> SeriesModel:
    """
    Derive labels, up to four datasets and a proportional breakdown.

    Raises:
        SeriesError: no candidate column holds a non-zero value
    """
    header = grid.header
    data_rows = grid.data_rows

    labels = tuple(make_label(_cell(row, 0), i) for i, row in enumerate(data_rows))

    column_count = min(len(header) - 1, MAX_DATASETS)
    datasets: List[Dataset] = []
    for column in range(1, column_count + 1):
        values = tuple(coerce_number(_cell(row, column)) for row in data_rows)
        if any(v != 0 for v in values):
            datasets.append(Dataset(values=values, column=_column_name(header, column)))

    if not datasets:
        if column_count <= 0:
            raise SeriesError("header has no data columns")
        raise SeriesError(f"all {column_count} candidate column(s) are empty or non-numeric")

    first = datasets[0]
    proportional = tuple(
        ProportionalEntry(label=label, value=max(abs(value), 1.0))
        for label, value in zip(labels, first.values)
    )

    return SeriesModel(labels=labels, datasets=tuple(datasets), proportional=proportional)
