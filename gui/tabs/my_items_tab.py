"""
My Items tab.

Purpose
-------
- Show the items held by the active account.
- Transfer the selected item to another address without payment.
"""

from __future__ import annotations

from PySide6.QtWidgets import (
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from gui.adapters.engine_adapter import EngineAdapter
from gui.widgets.item_table import ItemTable
from market_engine.data_models import EngineState, OperationKind, OperationOutcome, PendingOperation


class MyItemsTab(QWidget):
    """Owned items, with a Transfer action for the selected one."""

    def __init__(self, adapter: EngineAdapter) -> None:
        super().__init__()
        self._adapter = adapter
        self._state: EngineState | None = None

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)

        box = QGroupBox("Your Collection")
        box_layout = QVBoxLayout(box)

        self.table = ItemTable()
        self.table.itemSelectionChanged.connect(self._update_actions)
        box_layout.addWidget(self.table, 1)

        self.empty_label = QLabel("You don't own any items yet.")
        self.empty_label.setStyleSheet("color: #666; padding: 6px;")
        box_layout.addWidget(self.empty_label)

        transfer_row = QHBoxLayout()
        self.recipient_edit = QLineEdit()
        self.recipient_edit.setPlaceholderText("Recipient address (0x...)")
        self.recipient_edit.textChanged.connect(self._update_actions)
        self.btn_transfer = QPushButton("Transfer Ownership")
        self.btn_transfer.setEnabled(False)
        self.btn_transfer.clicked.connect(self._transfer_selected)
        transfer_row.addWidget(QLabel("Send to:"))
        transfer_row.addWidget(self.recipient_edit, 1)
        transfer_row.addWidget(self.btn_transfer)
        box_layout.addLayout(transfer_row)

        layout.addWidget(box, 1)

    def apply_state(self, state: EngineState) -> None:
        """Show the owned view and gate the transfer controls on the busy flag."""
        self._state = state
        self.table.set_items(state.owned_items.items, account=state.account)
        self.empty_label.setVisible(len(state.owned_items) == 0)
        self.recipient_edit.setEnabled(not state.busy)
        self._update_actions()

    def apply_outcome(self, outcome: OperationOutcome) -> None:
        """Clear the recipient after a successful transfer."""
        if outcome.intent.kind is OperationKind.TRANSFER and outcome.succeeded:
            self.recipient_edit.clear()

    def _update_actions(self) -> None:
        state = self._state
        item = self.table.selected_item()
        enabled = (
            state is not None
            and not state.busy
            and item is not None
            and not item.is_sold
            and bool(self.recipient_edit.text().strip())
        )
        self.btn_transfer.setEnabled(enabled)

    def _transfer_selected(self) -> None:
        item = self.table.selected_item()
        if item is None:
            return
        intent = PendingOperation.transfer(item.id, self.recipient_edit.text().strip())
        self._adapter.request_execute.emit(intent)
