"""
Marketplace tab.

Purpose
-------
- Show every item in the marketplace.
- Let the operator buy an available item they do not own.

Notes
-----
The purchase attaches the price shown in the table. The engine re-reads the
price right before submitting and refuses if it changed.
"""

from __future__ import annotations

from PySide6.QtWidgets import QGroupBox, QHBoxLayout, QLabel, QPushButton, QVBoxLayout, QWidget

from gui.adapters.engine_adapter import EngineAdapter
from gui.widgets.item_table import ItemTable
from market_engine.data_models import EngineState, PendingOperation
from market_engine.units import format_price


class MarketplaceTab(QWidget):
    """All items, with a Buy action for the selected one."""

    def __init__(self, adapter: EngineAdapter) -> None:
        super().__init__()
        self._adapter = adapter
        self._state: EngineState | None = None

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)

        box = QGroupBox("Available Items")
        box_layout = QVBoxLayout(box)

        self.table = ItemTable()
        self.table.itemSelectionChanged.connect(self._update_actions)
        box_layout.addWidget(self.table, 1)

        self.empty_label = QLabel("No items listed in the marketplace yet.")
        self.empty_label.setStyleSheet("color: #666; padding: 6px;")
        box_layout.addWidget(self.empty_label)

        actions = QHBoxLayout()
        self.selection_label = QLabel("")
        self.btn_refresh = QPushButton("Refresh")
        self.btn_refresh.clicked.connect(self._adapter.request_refresh.emit)
        self.btn_buy = QPushButton("Buy")
        self.btn_buy.setEnabled(False)
        self.btn_buy.clicked.connect(self._buy_selected)
        actions.addWidget(self.selection_label, 1)
        actions.addWidget(self.btn_refresh)
        actions.addWidget(self.btn_buy)
        box_layout.addLayout(actions)

        layout.addWidget(box, 1)

    def apply_state(self, state: EngineState) -> None:
        """Show the marketplace view and gate the buy button on the busy flag."""
        self._state = state
        self.table.set_items(state.all_items.items, account=state.account)
        self.empty_label.setVisible(len(state.all_items) == 0)
        self.btn_refresh.setEnabled(not state.busy)
        self._update_actions()

    def _update_actions(self) -> None:
        state = self._state
        item = self.table.selected_item()
        if state is None or item is None:
            self.selection_label.setText("")
            self.btn_buy.setEnabled(False)
            return

        if item.is_sold:
            self.selection_label.setText("Item no longer available")
            self.btn_buy.setEnabled(False)
        elif state.account is not None and item.is_owned_by(state.account):
            self.selection_label.setText("You own this item")
            self.btn_buy.setEnabled(False)
        else:
            self.selection_label.setText(f"Buy {item.name} for {format_price(item.price)}")
            self.btn_buy.setEnabled(not state.busy and state.session is not None)

    def _buy_selected(self) -> None:
        item = self.table.selected_item()
        if item is None:
            return
        self._adapter.request_execute.emit(PendingOperation.buy(item.id, item.price))
