from __future__ import annotations

import threading

import pytest

import market_engine.coordinator as coordinator_module
from ledger_fakes import ALICE, BOB, CAROL, HoldingGateway, RecordingGateway, seeded_ledger
from market_engine.coordinator import ReconciliationCoordinator
from market_engine.data_models import EngineState, PendingOperation, Session
from market_engine.errors import (
    BusyError,
    FailureKind,
    OperationError,
    ReconciliationWarning,
    SessionError,
    ValidationError,
    ValidationReason,
)
from market_engine.memory_ledger import InMemoryLedger
from market_engine.submitter import validate_intent


def _bound(gateway: RecordingGateway, account: str) -> tuple[ReconciliationCoordinator, list[EngineState]]:
    coordinator = ReconciliationCoordinator()
    coordinator.bind_session(Session(account=account, gateway=gateway))
    published: list[EngineState] = []
    coordinator.subscribe(published.append)
    gateway.calls.clear()
    return coordinator, published


def test_successful_list_republishes_both_snapshots() -> None:
    ledger = InMemoryLedger()
    gateway = RecordingGateway(ledger, ALICE)
    coordinator, published = _bound(gateway, ALICE)

    outcome = coordinator.execute(PendingOperation.list_item("Sword", 1_000_000_000_000_000_000))

    assert outcome.succeeded
    assert outcome.warning is None
    state = coordinator.state
    assert not state.busy
    assert [(i.name, i.price, i.is_sold) for i in state.all_items.items] == [
        ("Sword", 10**18, False)
    ]
    assert [i.name for i in state.owned_items.items] == ["Sword"]
    assert state.all_items.sequence == state.owned_items.sequence
    assert published[0].busy is True
    assert published[-1].busy is False


def test_successful_buy_marks_item_sold_and_moves_ownership() -> None:
    ledger = seeded_ledger()
    gateway = RecordingGateway(ledger, BOB)
    coordinator, _ = _bound(gateway, BOB)

    outcome = coordinator.execute(PendingOperation.buy(1, 10**18))

    assert outcome.succeeded
    item = ledger.read(1)
    assert item.is_sold is True
    assert item.is_owned_by(BOB)
    assert 1 in [i.id for i in coordinator.state.owned_items.items]


def test_successful_transfer_changes_owner_and_keeps_sold_flag() -> None:
    ledger = seeded_ledger()
    gateway = RecordingGateway(ledger, BOB)
    coordinator, _ = _bound(gateway, BOB)
    before = ledger.read(3)

    outcome = coordinator.execute(PendingOperation.transfer(3, CAROL))

    assert outcome.succeeded
    after = ledger.read(3)
    assert after.is_owned_by(CAROL)
    assert after.is_sold == before.is_sold
    assert [i.id for i in coordinator.state.owned_items.items] == [4]


def test_buying_a_sold_item_surfaces_revert_and_keeps_snapshots() -> None:
    gateway = RecordingGateway(seeded_ledger(), ALICE)
    coordinator, _ = _bound(gateway, ALICE)
    before = coordinator.state

    outcome = coordinator.execute(PendingOperation.buy(3, 500))

    assert isinstance(outcome.error, OperationError)
    assert outcome.error.kind is FailureKind.REVERTED
    after = coordinator.state
    assert after.busy is False
    assert after.all_items is before.all_items
    assert after.owned_items is before.owned_items
    assert after.last_error is outcome.error
    # No refetch after a failed operation.
    assert ("get_item_count",) not in gateway.calls


def test_invalid_transfer_address_never_enters_busy() -> None:
    gateway = RecordingGateway(seeded_ledger(), ALICE)
    coordinator, published = _bound(gateway, ALICE)

    outcome = coordinator.execute(PendingOperation.transfer(5, "not-an-address"))

    assert isinstance(outcome.error, ValidationError)
    assert outcome.error.reason is ValidationReason.INVALID_ADDRESS
    assert gateway.calls == []
    assert not any(s.busy for s in published)
    assert coordinator.state.last_error is outcome.error


def test_stale_price_is_reported_as_validation_error_and_returns_to_idle() -> None:
    gateway = RecordingGateway(seeded_ledger(), BOB)
    coordinator, published = _bound(gateway, BOB)

    outcome = coordinator.execute(PendingOperation.buy(1, 1))

    assert isinstance(outcome.error, ValidationError)
    assert outcome.error.reason is ValidationReason.STALE_PRICE
    assert gateway.submit_calls() == []
    assert published[-1].busy is False


def test_second_intent_while_busy_is_rejected_without_gateway_call() -> None:
    gateway = HoldingGateway(seeded_ledger(), ALICE)
    coordinator, _ = _bound(gateway, ALICE)

    entered = threading.Event()
    coordinator.subscribe(lambda s: entered.set() if s.busy else None)

    results = []
    worker = threading.Thread(
        target=lambda: results.append(coordinator.execute(PendingOperation.list_item("Lamp", 10)))
    )
    worker.start()
    assert entered.wait(timeout=5)
    assert coordinator.state.busy is True

    calls_before = len(gateway.calls)
    rejected = coordinator.execute(PendingOperation.transfer(1, BOB))

    assert isinstance(rejected.error, BusyError)
    assert len(gateway.calls) == calls_before
    assert coordinator.state.busy is True

    gateway.release.set()
    worker.join(timeout=5)

    assert results and results[0].succeeded
    assert coordinator.state.busy is False


def test_refresh_failure_after_success_is_a_warning_and_publishes_neither_snapshot() -> None:
    ledger = seeded_ledger()
    gateway = RecordingGateway(ledger, ALICE)
    coordinator, _ = _bound(gateway, ALICE)
    before = coordinator.state

    gateway.fail_owned = True
    outcome = coordinator.execute(PendingOperation.list_item("Lamp", 10))

    assert outcome.succeeded
    assert isinstance(outcome.warning, ReconciliationWarning)
    after = coordinator.state
    assert after.all_items is before.all_items
    assert after.owned_items is before.owned_items
    assert after.last_error is outcome.warning
    assert after.busy is False
    assert ledger.count() == 6


def test_execute_without_session_reports_session_error() -> None:
    coordinator = ReconciliationCoordinator()
    outcome = coordinator.execute(PendingOperation.list_item("Lamp", 10))
    assert isinstance(outcome.error, SessionError)
    assert coordinator.state.busy is False


def test_failing_subscriber_does_not_block_publication() -> None:
    gateway = RecordingGateway(seeded_ledger(), ALICE)
    coordinator, published = _bound(gateway, ALICE)

    def _boom(_state: EngineState) -> None:
        raise RuntimeError("subscriber bug")

    coordinator.subscribe(_boom)
    outcome = coordinator.execute(PendingOperation.list_item("Lamp", 10))

    assert outcome.succeeded
    assert published[-1].busy is False


def test_unsubscribe_stops_notifications() -> None:
    gateway = RecordingGateway(seeded_ledger(), ALICE)
    coordinator, _ = _bound(gateway, ALICE)
    seen: list[EngineState] = []
    unsubscribe = coordinator.subscribe(seen.append)
    unsubscribe()

    coordinator.refresh()

    assert seen == []


def test_out_of_range_item_id_is_returned_as_validation_error() -> None:
    gateway = RecordingGateway(seeded_ledger(), ALICE)
    coordinator, published = _bound(gateway, ALICE)

    outcome = coordinator.execute(PendingOperation.transfer(2**256, BOB))

    assert isinstance(outcome.error, ValidationError)
    assert outcome.error.reason is ValidationReason.INVALID_ITEM_ID
    assert gateway.calls == []
    assert not any(s.busy for s in published)


def test_intent_runs_against_session_bound_when_busy_was_taken(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ledger = seeded_ledger()
    alice_gateway = RecordingGateway(ledger, ALICE)
    bob_gateway = RecordingGateway(ledger, BOB)
    coordinator, _ = _bound(alice_gateway, ALICE)

    def _rebinding_validate(intent: PendingOperation):
        coordinator.bind_session(Session(account=BOB, gateway=bob_gateway))
        return validate_intent(intent)

    monkeypatch.setattr(coordinator_module, "validate_intent", _rebinding_validate)

    outcome = coordinator.execute(PendingOperation.list_item("Lamp", 10))

    assert outcome.succeeded
    assert alice_gateway.submit_calls() == []
    assert bob_gateway.submit_calls() == [("submit_list", "Lamp", 10)]
    assert ledger.read(6).is_owned_by(BOB)
    state = coordinator.state
    assert state.account == BOB
    assert 6 in [i.id for i in state.owned_items.items]
