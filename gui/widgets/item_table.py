"""Read-only table of marketplace items."""

from __future__ import annotations

from typing import Sequence

from PySide6.QtWidgets import QAbstractItemView, QHeaderView, QTableWidget, QTableWidgetItem

from market_engine.data_models import Item
from market_engine.units import format_price, truncate_address

COLUMNS = ("ID", "Name", "Price", "Status", "Owner")


class ItemTable(QTableWidget):
    """Single-selection table that keeps the selected item id across reloads."""

    def __init__(self) -> None:
        super().__init__(0, len(COLUMNS))
        self.setHorizontalHeaderLabels(list(COLUMNS))
        self.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.verticalHeader().setVisible(False)
        self.horizontalHeader().setSectionResizeMode(1, QHeaderView.ResizeMode.Stretch)
        self._items: tuple[Item, ...] = ()

    def set_items(self, items: Sequence[Item], *, account: str | None) -> None:
        """
        Replace the rows with `items`, keeping the selected item selected.

        Parameters
        ----------
        items:
            Items in display order.
        account:
            Active account; its items are marked as yours.
        """
        selected = self.selected_item()
        self._items = tuple(items)

        self.blockSignals(True)
        try:
            self.setRowCount(len(self._items))
            for row, item in enumerate(self._items):
                owner = truncate_address(item.owner)
                if account is not None and item.is_owned_by(account):
                    owner += " (you)"
                values = (
                    str(item.id),
                    item.name,
                    format_price(item.price),
                    "Sold" if item.is_sold else "Available",
                    owner,
                )
                for col, text in enumerate(values):
                    self.setItem(row, col, QTableWidgetItem(text))
        finally:
            self.blockSignals(False)

        if selected is not None:
            for row, item in enumerate(self._items):
                if item.id == selected.id:
                    self.selectRow(row)
                    break

    def selected_item(self) -> Item | None:
        """Return the item on the selected row, or None."""
        rows = self.selectionModel().selectedRows() if self.selectionModel() else []
        if not rows:
            return None
        row = rows[0].row()
        if 0 <= row < len(self._items):
            return self._items[row]
        return None
