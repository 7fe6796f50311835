"""Tests for the Excel inventory report."""

import pytest
from openpyxl import load_workbook

from errors import StorageError
from report import write_inventory


class TestWriteInventory:
    def test_rows_and_header(self, tmp_path):
        path = tmp_path / "inventory.xlsx"
        write_inventory([("aws", True), ("github", False)], path)

        ws = load_workbook(path).active
        assert ws.title == "Entries"
        rows = [tuple(row) for row in ws.iter_rows(values_only=True)]
        assert rows == [("Name", "Locked"), ("aws", "yes"), ("github", "no")]

    def test_empty_listing_keeps_header(self, tmp_path):
        path = tmp_path / "inventory.xlsx"
        write_inventory([], path)
        rows = list(load_workbook(path).active.iter_rows(values_only=True))
        assert rows == [("Name", "Locked")]

    def test_column_widths(self, tmp_path):
        path = tmp_path / "inventory.xlsx"
        write_inventory([("a", False)], path, column_widths={"A": 25, "B": 9})
        ws = load_workbook(path).active
        assert ws.column_dimensions["A"].width == 25
        assert ws.column_dimensions["B"].width == 9

    def test_unwritable_path(self, tmp_path):
        with pytest.raises(StorageError):
            write_inventory([("a", False)], tmp_path / "missing-dir" / "inventory.xlsx")


class TestVaultInventory:
    def test_values_never_written(self, make_vault, tmp_path):
        vault = make_vault(entries=[("github", "super-secret", False), ("aws", "x", True)])
        path = tmp_path / "inventory.xlsx"
        count = vault.write_inventory(path, lock_filter=True)

        assert count == 1
        values = [
            cell
            for row in load_workbook(path).active.iter_rows(values_only=True)
            for cell in row
        ]
        assert values == ["Name", "Locked", "aws", "yes"]
        assert "super-secret" not in values
