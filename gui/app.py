"""
marketsync GUI app.

Tabbed GUI backed by the marketsync engine. The window renders the published
EngineState and turns operator actions into PendingOperations; it holds no
marketplace state of its own.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from PySide6.QtCore import QTimer
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QMessageBox,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from gui.adapters.engine_adapter import EngineAdapter
from gui.tabs.connection_tab import ConnectionTab
from gui.tabs.create_tab import CreateListingTab
from gui.tabs.marketplace_tab import MarketplaceTab
from gui.tabs.my_items_tab import MyItemsTab
from market_engine.data_models import EngineState, OperationKind, OperationOutcome
from market_engine.errors import FetchError, ReconciliationWarning
from market_engine.logger import setup_logging
from market_engine.runtime import Engine, build_engine
from market_engine.settings import default_data_root, load_settings
from market_engine.units import truncate_address

ACCOUNT_POLL_MS = 5000

_SUCCESS_MESSAGES = {
    OperationKind.LIST: "Item listed successfully!",
    OperationKind.BUY: "Item purchased successfully!",
    OperationKind.TRANSFER: "Ownership transferred successfully!",
}


class AppWindow(QWidget):
    """
    Main window for the marketsync GUI.

    Responsibilities
    ----------------
    - Host the tabbed interface (Marketplace, My Items, Create Listing, Connection)
    - Reflect the busy flag by disabling input
    - Report operation outcomes and read failures
    - Coordinate clean shutdown of the engine worker thread
    """

    def __init__(self, engine: Engine, *, data_root: Path | None) -> None:
        super().__init__()
        self.setWindowTitle("marketsync")
        self.resize(1100, 680)

        self._adapter = EngineAdapter(engine)
        self._adapter.state_changed.connect(self._on_state_changed)
        self._adapter.outcome_ready.connect(self._on_outcome)
        self._adapter.session_failed.connect(self._on_session_failed)
        self._adapter.error.connect(self._on_engine_error)

        root = QVBoxLayout(self)
        root.setContentsMargins(8, 8, 8, 8)

        header = QWidget()
        header_layout = QHBoxLayout(header)
        header_layout.setContentsMargins(8, 8, 8, 8)

        title = QLabel("NFT Marketplace")
        f = title.font()
        f.setPointSize(16)
        f.setBold(True)
        title.setFont(f)

        subtitle = QLabel("Buy, sell, and transfer digital assets")
        subtitle.setStyleSheet("color: #666;")

        self.account_label = QLabel("Not Connected")
        self.account_label.setStyleSheet("padding: 6px;")

        header_layout.addWidget(title)
        header_layout.addSpacing(10)
        header_layout.addWidget(subtitle)
        header_layout.addStretch(1)
        header_layout.addWidget(self.account_label)

        root.addWidget(header)

        tabs = QTabWidget()

        self.marketplace_tab = MarketplaceTab(self._adapter)
        tabs.addTab(self.marketplace_tab, "Marketplace")

        self.my_items_tab = MyItemsTab(self._adapter)
        tabs.addTab(self.my_items_tab, "My Items")

        self.create_tab = CreateListingTab(self._adapter)
        tabs.addTab(self.create_tab, "Create Listing")

        self.connection_tab = ConnectionTab(data_root)
        tabs.addTab(self.connection_tab, "Connection")

        root.addWidget(tabs, 1)

        self.status_label = QLabel("Connecting…")
        self.status_label.setStyleSheet("padding: 6px; color: #444;")
        root.addWidget(self.status_label)

        self._account_timer = QTimer(self)
        self._account_timer.setInterval(ACCOUNT_POLL_MS)
        self._account_timer.timeout.connect(self._adapter.request_check_account.emit)

        self._on_state_changed(self._adapter.state)

        self._adapter.request_initialize.emit()

    def _on_state_changed(self, state_obj: object) -> None:
        state: EngineState = state_obj  # engine type

        if state.account is not None:
            self.account_label.setText(f"Connected: {truncate_address(state.account)}")
            if not self._account_timer.isActive():
                self._account_timer.start()
        else:
            self.account_label.setText("Not Connected")

        self.marketplace_tab.apply_state(state)
        self.my_items_tab.apply_state(state)
        self.create_tab.apply_state(state)

        if state.busy:
            self.status_label.setText("Processing transaction…")
        elif isinstance(state.last_error, (FetchError, ReconciliationWarning)):
            self.status_label.setText(f"Warning: {state.last_error}")
        elif state.account is not None:
            self.status_label.setText(
                f"Ready. {len(state.all_items)} items, {len(state.owned_items)} yours."
            )

    def _on_outcome(self, outcome_obj: object) -> None:
        outcome: OperationOutcome = outcome_obj  # engine type
        self.my_items_tab.apply_outcome(outcome)
        self.create_tab.apply_outcome(outcome)

        if outcome.error is not None:
            QMessageBox.critical(self, "Operation failed", str(outcome.error))
            return

        message = _SUCCESS_MESSAGES[outcome.intent.kind]
        if outcome.warning is not None:
            message += f"\n\n{outcome.warning}"
        QMessageBox.information(self, "Success", message)

    def _on_session_failed(self, message: str) -> None:
        self.status_label.setText("Not connected")
        QMessageBox.critical(self, "Wallet", message)

    def _on_engine_error(self, message: str) -> None:
        self.status_label.setText("Error")
        QMessageBox.critical(self, "Engine error", message)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        """
        Handle window close by shutting down the engine worker.

        Parameters
        ----------
        event:
            Qt close event.
        """
        try:
            self._account_timer.stop()
            self._adapter.shutdown()
        finally:
            super().closeEvent(event)


def main(argv: list[str] | None = None) -> int:
    """
    Run the marketsync GUI application.

    Returns
    -------
    int
        Qt application exit code.
    """
    parser = argparse.ArgumentParser(prog="marketsync-gui", description="Ledger marketplace GUI")
    parser.add_argument("--data-root", type=Path, default=None, help="Override the data root.")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Run against an in-memory demo ledger instead of a node.",
    )
    args = parser.parse_args(argv)

    data_root = args.data_root or default_data_root()
    setup_logging(log_file=data_root / "logs" / "marketsync-gui.log")
    settings = load_settings(data_root=args.data_root)
    engine = build_engine(settings, simulate=args.simulate)

    app = QApplication(sys.argv[:1])
    w = AppWindow(engine, data_root=args.data_root)
    w.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
