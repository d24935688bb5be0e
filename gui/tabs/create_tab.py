"""
Create Listing tab.

Collects a name and a price in ETH and submits a listing. Input is validated
by the engine; a malformed price is reported without any ledger call.
"""

from __future__ import annotations

from PySide6.QtWidgets import (
    QFormLayout,
    QGroupBox,
    QLineEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from gui.adapters.engine_adapter import EngineAdapter
from market_engine.data_models import EngineState, OperationKind, OperationOutcome, PendingOperation


class CreateListingTab(QWidget):
    """
    Create Listing tab.

    Collects a name and an ether price and emits a LIST intent. The form is
    disabled while an intent is in flight or no session is bound, and cleared
    after a listing settles.
    """

    def __init__(self, adapter: EngineAdapter) -> None:
        super().__init__()
        self._adapter = adapter

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)

        box = QGroupBox("Create a New Listing")
        form = QFormLayout(box)

        self.name_edit = QLineEdit()
        self.name_edit.setPlaceholderText("Enter item name")
        self.price_edit = QLineEdit()
        self.price_edit.setPlaceholderText("0.01")

        form.addRow("Item name:", self.name_edit)
        form.addRow("Price (ETH):", self.price_edit)

        self.btn_list = QPushButton("List Item")
        self.btn_list.clicked.connect(self._list_item)
        form.addRow(self.btn_list)

        layout.addWidget(box)
        layout.addStretch(1)

    def apply_state(self, state: EngineState) -> None:
        """Enable the form only when a session is bound and the engine is idle."""
        enabled = not state.busy and state.session is not None
        self.name_edit.setEnabled(enabled)
        self.price_edit.setEnabled(enabled)
        self.btn_list.setEnabled(enabled)

    def apply_outcome(self, outcome: OperationOutcome) -> None:
        """Clear the form after a successful listing."""
        if outcome.intent.kind is OperationKind.LIST and outcome.succeeded:
            self.name_edit.clear()
            self.price_edit.clear()

    def _list_item(self) -> None:
        intent = PendingOperation.list_item(self.name_edit.text(), self.price_edit.text().strip())
        self._adapter.request_execute.emit(intent)
