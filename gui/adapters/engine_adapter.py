"""Qt adapter for the marketsync engine.

Threading model
--------------
- A single worker QObject lives on a dedicated QThread and owns the Engine.
- Every ledger call (session start, read passes, submissions and settlement
  waits) runs on that thread.
- The coordinator publishes EngineState from the worker thread; the worker
  re-emits it as a Qt signal, which Qt queues onto the GUI thread.
"""

from __future__ import annotations

from PySide6.QtCore import QObject, Qt, QThread, Signal, Slot

from market_engine.data_models import EngineState, PendingOperation
from market_engine.errors import SessionError
from market_engine.runtime import Engine


class EngineWorker(QObject):
    """Worker that owns the engine and runs in a background thread."""

    state_changed = Signal(object)  # EngineState
    outcome_ready = Signal(object)  # OperationOutcome
    session_failed = Signal(str)  # message
    error = Signal(str)  # message

    def __init__(self, engine: Engine) -> None:
        super().__init__()
        self._engine = engine
        self._unsubscribe = engine.coordinator.subscribe(self._on_state)

    def _on_state(self, state: EngineState) -> None:
        self.state_changed.emit(state)

    @Slot()
    def initialize(self) -> None:
        """Start the session and run the initial read pass."""
        try:
            self._engine.binder.initialize()
        except SessionError as e:
            self.session_failed.emit(str(e))
        except Exception as e:
            self.error.emit(str(e))

    @Slot()
    def check_account(self) -> None:
        """Restart the session if the wallet switched accounts."""
        try:
            self._engine.binder.ensure_current_account()
        except SessionError as e:
            self.session_failed.emit(str(e))
        except Exception as e:
            self.error.emit(str(e))

    @Slot()
    def refresh(self) -> None:
        """Re-read both marketplace views."""
        try:
            self._engine.coordinator.refresh()
        except Exception as e:
            self.error.emit(str(e))

    @Slot(object)
    def execute(self, intent: object) -> None:
        """Run one intent through the coordinator and emit its outcome."""
        try:
            assert isinstance(intent, PendingOperation)
            outcome = self._engine.coordinator.execute(intent)
        except Exception as e:
            self.error.emit(str(e))
            return
        self.outcome_ready.emit(outcome)

    def detach(self) -> None:
        """Stop forwarding coordinator state changes."""
        self._unsubscribe()


class EngineAdapter(QObject):
    """Qt adapter that marshals engine calls onto a worker thread."""

    # Requests (GUI emits these; wired as queued connections to worker slots)
    request_initialize = Signal()
    request_check_account = Signal()
    request_refresh = Signal()
    request_execute = Signal(object)

    # Results (worker emits; adapter forwards)
    state_changed = Signal(object)  # EngineState
    outcome_ready = Signal(object)  # OperationOutcome
    session_failed = Signal(str)
    error = Signal(str)

    def __init__(self, engine: Engine) -> None:
        super().__init__()
        self._engine = engine

        self._thread = QThread()
        self._worker = EngineWorker(engine)
        self._worker.moveToThread(self._thread)

        # Queue requests onto worker thread.
        self.request_initialize.connect(
            self._worker.initialize, type=Qt.ConnectionType.QueuedConnection
        )
        self.request_check_account.connect(
            self._worker.check_account, type=Qt.ConnectionType.QueuedConnection
        )
        self.request_refresh.connect(self._worker.refresh, type=Qt.ConnectionType.QueuedConnection)
        self.request_execute.connect(self._worker.execute, type=Qt.ConnectionType.QueuedConnection)

        # Forward results to GUI.
        self._worker.state_changed.connect(self.state_changed)
        self._worker.outcome_ready.connect(self.outcome_ready)
        self._worker.session_failed.connect(self.session_failed)
        self._worker.error.connect(self.error)

        self._thread.start()

    @property
    def state(self) -> EngineState:
        """Latest published EngineState. Safe to read from the GUI thread."""
        return self._engine.coordinator.state

    def shutdown(self) -> None:
        """Stop the worker thread cleanly."""
        self._worker.detach()
        self._thread.quit()
        self._thread.wait()
