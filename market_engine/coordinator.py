"""
Reconciliation coordinator.

The coordinator owns the one process-wide EngineState and is the only code
that replaces it. Every mutating intent runs the same fixed cycle:

1. enter busy and publish,
2. submit through the OperationSubmitter,
3. on success, re-read both snapshots and publish them together,
4. on failure, publish the error and skip the re-read,
5. leave busy, whatever happened.

Threading model
---------------
- Calls may arrive from any thread (the GUI runs the engine on a QThread).
- The busy flag lives in EngineState and is tested-and-set under the state
  lock, so at most one intent is in flight end-to-end.
- Read-only passes may race each other and an in-flight intent. Every pass
  draws a number from one monotonic counter; a snapshot only replaces the
  published one of its kind when its number is higher.
- State changes are published under a re-entrant lock so subscribers observe
  them in order and may call back into the coordinator.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, replace
from typing import Callable

from market_engine.clock import Clock, utc_now
from market_engine.data_models import (
    EngineState,
    OperationOutcome,
    PendingOperation,
    Session,
    Snapshot,
    SnapshotKind,
)
from market_engine.errors import (
    BusyError,
    FetchError,
    MarketSyncError,
    OperationError,
    ReconciliationWarning,
    SessionError,
    SessionFailure,
    ValidationError,
)
from market_engine.fetcher import SnapshotFetcher
from market_engine.gateway import LedgerGateway
from market_engine.logger import get_logger
from market_engine.submitter import OperationSubmitter, validate_intent

logger = get_logger(__name__)

Subscriber = Callable[[EngineState], None]


@dataclass(frozen=True, slots=True)
class _Binding:
    """Gateway-dependent collaborators, swapped together."""

    fetcher: SnapshotFetcher
    submitter: OperationSubmitter


class ReconciliationCoordinator:
    """
    Serializes mutating intents and keeps the local view in step with the ledger.

    Parameters
    ----------
    gateway:
        Optional read-capable gateway used before a session is bound.
    clock:
        Zero-argument callable returning the time used to stamp snapshots.
    verify_price_before_buy:
        Forwarded to the OperationSubmitter.
    """

    def __init__(
        self,
        gateway: LedgerGateway | None = None,
        *,
        clock: Clock | None = None,
        verify_price_before_buy: bool = True,
    ) -> None:
        self._clock = clock or utc_now
        self._verify_price = verify_price_before_buy
        self._state_lock = threading.Lock()
        self._publish_lock = threading.RLock()
        self._sequence = itertools.count(1)
        self._state = EngineState.initial()
        self._subscribers: list[Subscriber] = []
        self._binding: _Binding | None = self._bind(gateway) if gateway is not None else None

    @property
    def state(self) -> EngineState:
        """The most recently published EngineState."""
        with self._state_lock:
            return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register `callback` for every future state change.

        Returns
        -------
        Callable[[], None]
            Call to unsubscribe.
        """
        with self._state_lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._state_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def bind_session(self, session: Session) -> EngineState:
        """
        Make `session` the active session and run the initial read pass.

        The owned view of any previous account is discarded immediately.

        Raises
        ------
        BusyError
            If an intent is in flight.
        """
        binding = self._bind(session.gateway)
        sequence = self._next_sequence()

        def _swap(state: EngineState) -> EngineState:
            if state.busy:
                raise BusyError("Cannot change session while an operation is in flight.")
            self._binding = binding
            return replace(
                state,
                session=session,
                owned_items=Snapshot(
                    kind=SnapshotKind.OWNED, sequence=sequence, account=session.account
                ),
                last_error=None,
            )

        self._transition(_swap)
        logger.info("Session bound for account %s", session.account)
        return self.refresh()

    def report_error(self, error: Exception) -> None:
        """Publish an error raised outside the coordinator (e.g. session start)."""
        self._transition(lambda state: replace(state, last_error=error))

    def refresh(self) -> EngineState:
        """Re-read both views. A failure is published as ``last_error`` and keeps prior snapshots."""
        try:
            binding, session = self._require_binding(FetchError)
            sequence = self._next_sequence()
            all_items = binding.fetcher.fetch_all(sequence=sequence)
            owned = (
                binding.fetcher.fetch_owned(session.account, sequence=sequence)
                if session is not None
                else None
            )
        except FetchError as exc:
            logger.warning("Refresh failed, keeping previous snapshots: %s", exc)
            return self._transition(lambda state: replace(state, last_error=exc))
        return self._publish_snapshots(all_items, owned)

    def refresh_all(self) -> EngineState:
        """Re-read the ALL view only."""
        try:
            binding, _ = self._require_binding(FetchError)
            snapshot = binding.fetcher.fetch_all(sequence=self._next_sequence())
        except FetchError as exc:
            logger.warning("Refresh of all items failed: %s", exc)
            return self._transition(lambda state: replace(state, last_error=exc))
        return self._publish_snapshots(snapshot, None)

    def refresh_owned(self) -> EngineState:
        """Re-read the OWNED view only. Without a session this is a no-op."""
        try:
            binding, session = self._require_binding(FetchError)
            if session is None:
                return self.state
            snapshot = binding.fetcher.fetch_owned(session.account, sequence=self._next_sequence())
        except FetchError as exc:
            logger.warning("Refresh of owned items failed: %s", exc)
            return self._transition(lambda state: replace(state, last_error=exc))
        return self._publish_snapshots(None, snapshot)

    def execute(self, intent: PendingOperation) -> OperationOutcome:
        """
        Run one intent through the full submit/await/reconcile cycle.

        Domain failures are returned in the outcome and published as
        ``last_error``; they are never raised.
        """
        try:
            self._require_binding(SessionError)
            validate_intent(intent)
        except (ValidationError, SessionError) as exc:
            logger.info("Refused %s: %s", intent.describe(), exc)
            self.report_error(exc)
            return OperationOutcome(intent=intent, error=exc)

        claimed = self._try_enter_busy()
        if claimed is None:
            busy = BusyError("Another operation is still in progress.")
            logger.info("Refused %s: busy", intent.describe())
            self.report_error(busy)
            return OperationOutcome(intent=intent, error=busy)
        binding, session = claimed

        logger.info("Accepted %s", intent.describe())
        try:
            try:
                receipt = binding.submitter.submit(intent)
            except (ValidationError, OperationError) as exc:
                self.report_error(exc)
                return OperationOutcome(intent=intent, error=exc)

            warning = self._reconcile(binding, session)
            return OperationOutcome(intent=intent, receipt=receipt, warning=warning)
        finally:
            self._transition(lambda state: replace(state, busy=False))

    def _reconcile(self, binding: _Binding, session: Session | None) -> ReconciliationWarning | None:
        sequence = self._next_sequence()
        try:
            all_items = binding.fetcher.fetch_all(sequence=sequence)
            owned = (
                binding.fetcher.fetch_owned(session.account, sequence=sequence)
                if session is not None
                else None
            )
        except FetchError as exc:
            warning = ReconciliationWarning(
                f"Operation succeeded but refreshing the marketplace failed: {exc}"
            )
            logger.warning("%s", warning)
            self.report_error(warning)
            return warning

        self._publish_snapshots(all_items, owned)
        return None

    def _publish_snapshots(self, all_items: Snapshot | None, owned: Snapshot | None) -> EngineState:
        def _apply(state: EngineState) -> EngineState | None:
            changes: dict[str, Snapshot] = {}
            if all_items is not None:
                if all_items.sequence > state.all_items.sequence:
                    changes["all_items"] = all_items
                else:
                    logger.debug(
                        "Discarding stale ALL snapshot %d (published %d)",
                        all_items.sequence,
                        state.all_items.sequence,
                    )
            if owned is not None:
                current_account = state.account
                if current_account is None or owned.account is None or (
                    owned.account.lower() != current_account.lower()
                ):
                    logger.debug("Discarding OWNED snapshot for inactive account %s", owned.account)
                elif owned.sequence > state.owned_items.sequence:
                    changes["owned_items"] = owned
                else:
                    logger.debug(
                        "Discarding stale OWNED snapshot %d (published %d)",
                        owned.sequence,
                        state.owned_items.sequence,
                    )
            if not changes:
                return None
            return replace(state, **changes)

        return self._transition(_apply)

    def _try_enter_busy(self) -> tuple[_Binding, Session | None] | None:
        """
        Take the busy flag and return the binding the intent must run against.

        Returns None when another intent holds the flag or no session is bound.
        The binding is captured under the same lock that sets busy, and
        ``bind_session`` refuses while busy, so the pair stays fixed until idle.
        """
        claimed: tuple[_Binding, Session | None] | None = None

        def _enter(state: EngineState) -> EngineState | None:
            nonlocal claimed
            if state.busy or self._binding is None:
                return None
            claimed = (self._binding, state.session)
            return replace(state, busy=True, last_error=None)

        self._transition(_enter)
        return claimed

    def _transition(self, mutate: Callable[[EngineState], EngineState | None]) -> EngineState:
        """Apply `mutate` atomically and notify subscribers if the state changed."""
        with self._publish_lock:
            with self._state_lock:
                new_state = mutate(self._state)
                if new_state is None:
                    return self._state
                self._state = new_state
                subscribers = list(self._subscribers)
            for callback in subscribers:
                try:
                    callback(new_state)
                except Exception:
                    logger.exception("State subscriber %r failed", callback)
            return new_state

    def _require_binding(
        self, error_type: type[MarketSyncError]
    ) -> tuple[_Binding, Session | None]:
        with self._state_lock:
            binding = self._binding
            session = self._state.session
        if binding is None:
            if error_type is SessionError:
                raise SessionError(SessionFailure.NOT_BOUND, "No ledger session is bound.")
            raise error_type("No ledger gateway is bound.")
        return binding, session

    def _bind(self, gateway: LedgerGateway) -> _Binding:
        return _Binding(
            fetcher=SnapshotFetcher(gateway, clock=self._clock),
            submitter=OperationSubmitter(gateway, verify_price_before_buy=self._verify_price),
        )

    def _next_sequence(self) -> int:
        with self._state_lock:
            return next(self._sequence)
