"""
report.py – Excel inventory of vault entries.

write_inventory() builds a workbook listing every entry name with its lock
flag.  Secret values never reach the report, so the file can be shared or
archived without encryption.
"""

import logging
import os
from typing import Iterable, Optional, Tuple

from openpyxl import Workbook

from config import APP_NAME, DEFAULT_CONFIG
from errors import StorageError

logger = logging.getLogger(APP_NAME)

HEADER = ["Name", "Locked"]


def write_inventory(
    rows: Iterable[Tuple[str, bool]],
    path,
    column_widths: Optional[dict] = None,
) -> None:
    """
    Write (name, locked) *rows* to an .xlsx file at *path*.

    The sheet is titled "Entries"; the header row is always present, then one
    row per entry with "yes"/"no" in the Locked column.  Column widths come
    from *column_widths* (e.g. {"A": 40, "B": 12}) or the configured default.

    Raises StorageError if the workbook cannot be saved.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Entries"
    ws.append(HEADER)
    count = 0
    for name, locked in rows:
        ws.append([name, "yes" if locked else "no"])
        count += 1

    widths = column_widths or DEFAULT_CONFIG["excel_column_widths"]
    for col, width in widths.items():
        if col in ("A", "B"):
            ws.column_dimensions[col].width = int(width)

    try:
        wb.save(os.fspath(path))
    except OSError as exc:
        logger.exception("Failed to write inventory report %s", path)
        raise StorageError(f"Failed to write report: {exc}") from exc
    logger.info("Inventory report written: %s (%d entries)", path, count)
