"""
Engine assembly.

Builds the coordinator and session binder from EngineSettings, either against
a JSON-RPC node through web3.py or against an in-memory demo ledger.
"""

from __future__ import annotations

from dataclasses import dataclass

from web3 import Web3

from market_engine.coordinator import ReconciliationCoordinator
from market_engine.data_models import SignerHandle
from market_engine.gateway import LedgerGateway
from market_engine.memory_ledger import DEMO_ACCOUNTS, InMemoryLedger
from market_engine.session import SessionBinder, StaticWallet, Web3Wallet
from market_engine.settings import EngineSettings
from market_engine.web3_gateway import Web3LedgerGateway, load_abi


@dataclass(frozen=True, slots=True)
class Engine:
    """
    A wired engine.

    Attributes
    ----------
    coordinator:
        Owns the published EngineState.
    binder:
        Starts (and restarts) the session.
    ledger:
        The in-memory ledger in simulate mode, else None.
    """

    coordinator: ReconciliationCoordinator
    binder: SessionBinder
    ledger: InMemoryLedger | None = None


def build_engine(settings: EngineSettings, *, simulate: bool = False) -> Engine:
    """
    Wire an engine for `settings`. No network traffic happens until
    ``engine.binder.initialize()`` is called.
    """
    coordinator = ReconciliationCoordinator(
        verify_price_before_buy=settings.verify_price_before_buy
    )

    if simulate:
        ledger = InMemoryLedger.with_demo_items()
        wallet = StaticWallet(settings.account or DEMO_ACCOUNTS[0])
        binder = SessionBinder(wallet, ledger.gateway_for, coordinator)
        return Engine(coordinator=coordinator, binder=binder, ledger=ledger)

    w3 = Web3(
        Web3.HTTPProvider(settings.rpc_url, request_kwargs={"timeout": settings.settlement_timeout_s})
    )
    abi = load_abi(settings.abi_path)

    def _gateway_for(signer: SignerHandle) -> LedgerGateway:
        return Web3LedgerGateway(
            w3,
            settings.contract_address,
            signer,
            abi=abi,
            settlement_timeout_s=settings.settlement_timeout_s,
            poll_latency_s=settings.poll_latency_s,
        )

    binder = SessionBinder(
        Web3Wallet(w3, preferred_account=settings.account), _gateway_for, coordinator
    )
    return Engine(coordinator=coordinator, binder=binder)
