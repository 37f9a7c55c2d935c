"""
Synthetic Sheet Generator - degraded-mode placeholder data

Fabricates a monthly business-metrics table with the same header+rows shape
as a real export so the parse and series stages stay exercisable when the
remote server is unreachable. Output is always written as CSV and every
caller flags it as synthetic.
"""
import logging
import random
import time
from pathlib import Path
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

HEADER = ["Month", "Sales", "Profit", "Expenses", "Growth %", "Customers", "Orders"]


class SyntheticSheetGenerator:
    """
    Generates plausible placeholder rows.

    Args:
        seed: Fixed seed for reproducible output (tests); None draws fresh data
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def generate_rows(self) -> List[List[Any]]:
        """Header plus one row per month."""
        rows: List[List[Any]] = [list(HEADER)]
        for index, month in enumerate(MONTHS):
            base_sales = 15000 + index * 1000 + self._rng.random() * 5000
            expenses = base_sales * (0.7 + self._rng.random() * 0.2)
            profit = base_sales - expenses
            growth = round((self._rng.random() - 0.5) * 30, 1)
            customers = int(base_sales / 50 + self._rng.random() * 100)
            orders = int(customers * (1.2 + self._rng.random() * 0.8))
            rows.append([
                month,
                int(base_sales),
                int(profit),
                int(expenses),
                growth,
                customers,
                orders,
            ])
        return rows

    def to_csv(self) -> bytes:
        rows = self.generate_rows()
        return "\n".join(",".join(str(cell) for cell in row) for row in rows).encode("utf-8")

    def write(self, directory: Union[str, Path]) -> Path:
        """Write a fresh synthetic CSV into directory and return its path."""
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        millis = int(time.time() * 1000)
        path = target_dir / f"synthetic_{millis}.csv"
        while path.exists():
            millis += 1
            path = target_dir / f"synthetic_{millis}.csv"
        path.write_bytes(self.to_csv())
        logger.debug(f"Synthetic sheet written to {path}")
        return path
