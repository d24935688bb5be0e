from __future__ import annotations

import threading

import pytest

from ledger_fakes import ALICE, BOB, HoldingGateway, RecordingGateway, seeded_ledger
from market_engine.coordinator import ReconciliationCoordinator
from market_engine.data_models import PendingOperation
from market_engine.errors import (
    AuthError,
    FetchError,
    ProviderUnavailableError,
    SessionError,
    SessionFailure,
)
from market_engine.session import SessionBinder, StaticWallet, Web3Wallet


class _UnreachableWallet:
    def request_account(self) -> str:
        raise ProviderUnavailableError("connection refused")

    def bind_signer(self, account: str):  # pragma: no cover - never reached
        raise AssertionError("unreachable")


def _binder(wallet, ledger=None) -> tuple[SessionBinder, ReconciliationCoordinator]:
    coordinator = ReconciliationCoordinator()
    ledger = ledger or seeded_ledger()
    return SessionBinder(wallet, ledger.gateway_for, coordinator), coordinator


def test_missing_wallet_fails_with_no_provider() -> None:
    binder, coordinator = _binder(None)

    with pytest.raises(SessionError) as excinfo:
        binder.initialize()

    assert excinfo.value.kind is SessionFailure.NO_PROVIDER
    assert coordinator.state.session is None
    assert coordinator.state.last_error is excinfo.value


def test_unreachable_provider_fails_with_no_provider() -> None:
    binder, _ = _binder(_UnreachableWallet())
    with pytest.raises(SessionError) as excinfo:
        binder.initialize()
    assert excinfo.value.kind is SessionFailure.NO_PROVIDER


def test_declined_authorization_fails_with_rejected() -> None:
    binder, coordinator = _binder(StaticWallet(None))

    with pytest.raises(SessionError) as excinfo:
        binder.initialize()

    assert excinfo.value.kind is SessionFailure.REJECTED
    outcome = coordinator.execute(PendingOperation.list_item("Lamp", 10))
    assert isinstance(outcome.error, SessionError)


def test_initialize_binds_session_and_populates_both_views() -> None:
    binder, coordinator = _binder(StaticWallet(ALICE))

    session = binder.initialize()

    state = coordinator.state
    assert session.account == ALICE
    assert state.session is session
    assert state.busy is False
    assert len(state.all_items) == 5
    assert [i.id for i in state.owned_items.items] == [1, 2, 5]


def test_initial_fetch_failure_still_yields_a_session() -> None:
    ledger = seeded_ledger()
    coordinator = ReconciliationCoordinator()

    def _broken_gateway(_signer):
        gateway = RecordingGateway(ledger, ALICE)
        gateway.failing_item_ids.add(1)
        return gateway

    binder = SessionBinder(StaticWallet(ALICE), _broken_gateway, coordinator)
    session = binder.initialize()

    assert coordinator.state.session is session
    assert isinstance(coordinator.state.last_error, FetchError)
    assert len(coordinator.state.all_items) == 0


def test_account_change_starts_a_new_session() -> None:
    wallet = StaticWallet(ALICE)
    binder, coordinator = _binder(wallet)
    first = binder.initialize()

    assert binder.ensure_current_account() is False

    wallet.switch_account(BOB)
    assert binder.ensure_current_account() is True

    state = coordinator.state
    assert state.session is not first
    assert state.account == BOB
    assert [i.id for i in state.owned_items.items] == [3, 4]


def test_account_check_reports_lost_wallet() -> None:
    wallet = StaticWallet(ALICE)
    binder, coordinator = _binder(wallet)
    binder.initialize()

    wallet.switch_account(None)
    with pytest.raises(SessionError):
        binder.ensure_current_account()
    assert isinstance(coordinator.state.last_error, SessionError)


class _FakeEth:
    def __init__(self, accounts) -> None:
        self._accounts = accounts
        self.default_account = None

    @property
    def accounts(self):
        if isinstance(self._accounts, Exception):
            raise self._accounts
        return self._accounts


class _FakeWeb3:
    def __init__(self, *, connected=True, accounts=()) -> None:
        self._connected = connected
        self.eth = _FakeEth(list(accounts) if not isinstance(accounts, Exception) else accounts)

    def is_connected(self) -> bool:
        if isinstance(self._connected, Exception):
            raise self._connected
        return self._connected


def test_web3_wallet_requires_a_reachable_node() -> None:
    with pytest.raises(ProviderUnavailableError):
        Web3Wallet(_FakeWeb3(connected=False)).request_account()  # type: ignore[arg-type]
    with pytest.raises(ProviderUnavailableError):
        Web3Wallet(_FakeWeb3(connected=OSError("refused"))).request_account()  # type: ignore[arg-type]


def test_web3_wallet_without_accounts_is_an_auth_error() -> None:
    with pytest.raises(AuthError):
        Web3Wallet(_FakeWeb3(accounts=[])).request_account()  # type: ignore[arg-type]
    with pytest.raises(AuthError):
        Web3Wallet(_FakeWeb3(accounts=ValueError("method not allowed"))).request_account()  # type: ignore[arg-type]


def test_web3_wallet_picks_preferred_account() -> None:
    w3 = _FakeWeb3(accounts=[ALICE, BOB])
    assert Web3Wallet(w3).request_account() == ALICE  # type: ignore[arg-type]
    assert Web3Wallet(w3, preferred_account=BOB.upper().replace("0X", "0x")).request_account() == BOB  # type: ignore[arg-type]
    with pytest.raises(AuthError):
        Web3Wallet(w3, preferred_account="0x" + "c3" * 20).request_account()  # type: ignore[arg-type]


def test_web3_wallet_binds_checksum_signer() -> None:
    w3 = _FakeWeb3(accounts=[ALICE])
    signer = Web3Wallet(w3).bind_signer(ALICE)  # type: ignore[arg-type]

    assert signer.account.lower() == ALICE
    assert signer.account != ALICE
    assert w3.eth.default_account == signer.account
    assert signer.backend is w3


def test_account_switch_while_busy_is_retried_after_settlement() -> None:
    ledger = seeded_ledger()
    gateways: list[HoldingGateway] = []

    def _holding_gateway(signer):
        gateway = HoldingGateway(ledger, signer.account)
        gateways.append(gateway)
        return gateway

    wallet = StaticWallet(ALICE)
    coordinator = ReconciliationCoordinator()
    binder = SessionBinder(wallet, _holding_gateway, coordinator)
    binder.initialize()

    entered = threading.Event()
    coordinator.subscribe(lambda s: entered.set() if s.busy else None)
    results = []
    worker = threading.Thread(
        target=lambda: results.append(coordinator.execute(PendingOperation.list_item("Lamp", 10)))
    )
    worker.start()
    assert entered.wait(timeout=5)

    wallet.switch_account(BOB)
    assert binder.ensure_current_account() is False
    assert binder.session is not None and binder.session.account == ALICE
    assert coordinator.state.account == ALICE

    gateways[0].release.set()
    worker.join(timeout=5)
    assert results and results[0].succeeded

    assert binder.ensure_current_account() is True
    assert binder.session is not None and binder.session.account == BOB
    assert coordinator.state.account == BOB
    assert [i.id for i in coordinator.state.owned_items.items] == [3, 4]
