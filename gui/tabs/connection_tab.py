from __future__ import annotations

from pathlib import Path

from PySide6.QtWidgets import (
    QCheckBox,
    QDoubleSpinBox,
    QFileDialog,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from market_engine.errors import SettingsError
from market_engine.settings import EngineSettings, load_settings, save_settings


class ConnectionTab(QWidget):
    """
    Connection settings tab.

    Responsibilities
    ----------------
    - Edit the node endpoint, contract address, ABI file and account.
    - Persist settings to ``settings.json`` under the data root.

    Notes
    -----
    Saved settings take effect the next time the application starts.
    """

    def __init__(self, data_root: Path | None) -> None:
        super().__init__()
        self._data_root = data_root
        self._settings = load_settings(data_root=data_root)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)

        box = QGroupBox("Ledger connection")
        box_layout = QVBoxLayout(box)

        self.rpc_edit = QLineEdit()
        self.contract_edit = QLineEdit()
        self.account_edit = QLineEdit()
        self.account_edit.setPlaceholderText("First node account (blank = default)")
        self.abi_edit = QLineEdit()
        self.abi_edit.setPlaceholderText("Bundled marketplace ABI (blank = default)")

        btn_abi = QPushButton("Browse…")
        btn_abi.clicked.connect(self._browse_abi)

        self.timeout_spin = QDoubleSpinBox()
        self.timeout_spin.setRange(1.0, 3600.0)
        self.timeout_spin.setSuffix(" s")

        self.verify_price_check = QCheckBox("Re-check item price before buying")

        for label, widget, extra in (
            ("RPC URL:", self.rpc_edit, None),
            ("Contract:", self.contract_edit, None),
            ("Account:", self.account_edit, None),
            ("ABI file:", self.abi_edit, btn_abi),
            ("Settlement timeout:", self.timeout_spin, None),
        ):
            row = QHBoxLayout()
            row.addWidget(QLabel(label))
            row.addWidget(widget, 1)
            if extra is not None:
                row.addWidget(extra)
            box_layout.addLayout(row)
        box_layout.addWidget(self.verify_price_check)

        btn_save = QPushButton("Save Settings")
        btn_save.clicked.connect(self._save)
        box_layout.addWidget(btn_save)

        layout.addWidget(box)
        layout.addStretch(1)

        self._load_into_widgets()

    def _load_into_widgets(self) -> None:
        s = self._settings
        self.rpc_edit.setText(s.rpc_url)
        self.contract_edit.setText(s.contract_address)
        self.account_edit.setText(s.account or "")
        self.abi_edit.setText("" if s.abi_path is None else str(s.abi_path))
        self.timeout_spin.setValue(s.settlement_timeout_s)
        self.verify_price_check.setChecked(s.verify_price_before_buy)

    def _browse_abi(self) -> None:
        start_dir = self.abi_edit.text().strip() or str(Path.home())
        path, _ = QFileDialog.getOpenFileName(self, "Select contract ABI", start_dir, "JSON (*.json)")
        if path:
            self.abi_edit.setText(path)

    def _save(self) -> None:
        abi_text = self.abi_edit.text().strip()
        settings = EngineSettings(
            rpc_url=self.rpc_edit.text().strip() or self._settings.rpc_url,
            contract_address=self.contract_edit.text().strip() or self._settings.contract_address,
            abi_path=Path(abi_text) if abi_text else None,
            account=self.account_edit.text().strip() or None,
            settlement_timeout_s=float(self.timeout_spin.value()),
            poll_latency_s=self._settings.poll_latency_s,
            verify_price_before_buy=self.verify_price_check.isChecked(),
        )

        try:
            save_settings(data_root=self._data_root, settings=settings)
        except SettingsError as exc:
            QMessageBox.critical(self, "Settings", str(exc))
            return

        self._settings = settings
        QMessageBox.information(self, "Settings", "Saved. Restart to reconnect.")
