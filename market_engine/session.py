"""
Session establishment.

The binder asks the wallet for the active account, binds a signer, builds the
ledger gateway for that signer and hands the resulting Session to the
coordinator, which performs the initial read pass.

Notes
-----
If the wallet later reports a different account, the old session is not
patched: ``ensure_current_account()`` builds a new one from scratch.
"""

from __future__ import annotations

from typing import Callable, Protocol

from web3 import Web3
from web3.exceptions import Web3Exception

from market_engine.coordinator import ReconciliationCoordinator
from market_engine.data_models import Session, SignerHandle
from market_engine.errors import (
    AuthError,
    BusyError,
    ProviderUnavailableError,
    SessionError,
    SessionFailure,
)
from market_engine.gateway import LedgerGateway
from market_engine.logger import get_logger

logger = get_logger(__name__)

GatewayFactory = Callable[[SignerHandle], LedgerGateway]


class Wallet(Protocol):
    """Identity collaborator supplying the active account and its signer."""

    def request_account(self) -> str:
        """
        Return the active account address.

        Raises
        ------
        AuthError
            If the operator declined or no account is available.
        ProviderUnavailableError
            If the provider behind the wallet cannot be reached.
        """
        ...

    def bind_signer(self, account: str) -> SignerHandle:
        """Return the signer handle gateway submissions for `account` go through."""
        ...


class StaticWallet:
    """Wallet that always reports the same account. Used with the in-memory ledger."""

    def __init__(self, account: str | None) -> None:
        self._account = account

    def switch_account(self, account: str | None) -> None:
        """Make `account` the active account; None simulates a locked wallet."""
        self._account = account

    def request_account(self) -> str:
        """Return the configured account, or raise AuthError when there is none."""
        if not self._account:
            raise AuthError("No account selected.")
        return self._account

    def bind_signer(self, account: str) -> SignerHandle:
        """Return a backend-free signer for `account`."""
        return SignerHandle(account=account)


class Web3Wallet:
    """
    Wallet over the accounts a JSON-RPC node manages (e.g. a local dev chain).

    Parameters
    ----------
    w3:
        Web3 instance connected to the node.
    preferred_account:
        Use this account if the node manages it; otherwise the first account.
    """

    def __init__(self, w3: Web3, *, preferred_account: str | None = None) -> None:
        self._w3 = w3
        self._preferred = preferred_account

    def request_account(self) -> str:
        """
        Return the preferred account, or the node's first account.

        Raises
        ------
        ProviderUnavailableError
            If the node is unreachable.
        AuthError
            If the node exposes no accounts, or not the preferred one.
        """
        try:
            connected = self._w3.is_connected()
        except (Web3Exception, OSError) as exc:
            raise ProviderUnavailableError(f"Ledger node unreachable: {exc}") from exc
        if not connected:
            raise ProviderUnavailableError("Ledger node is not reachable.")

        try:
            accounts = [str(a) for a in self._w3.eth.accounts]
        except (Web3Exception, ValueError, OSError) as exc:
            raise AuthError(f"Node refused to list accounts: {exc}") from exc
        if not accounts:
            raise AuthError("The node exposes no unlocked accounts.")

        if self._preferred:
            for account in accounts:
                if account.lower() == self._preferred.lower():
                    return account
            raise AuthError(f"Account {self._preferred} is not available on this node.")
        return accounts[0]

    def bind_signer(self, account: str) -> SignerHandle:
        """Make `account` the node's default sender and return its checksum signer."""
        self._w3.eth.default_account = Web3.to_checksum_address(account)
        return SignerHandle(account=Web3.to_checksum_address(account), backend=self._w3)


class SessionBinder:
    """
    Establishes the active Session and hands it to the coordinator.

    Parameters
    ----------
    wallet:
        Identity collaborator, or None when none is available.
    gateway_factory:
        Builds a gateway for a bound signer.
    coordinator:
        Receives the new session and runs the initial read pass.
    """

    def __init__(
        self,
        wallet: Wallet | None,
        gateway_factory: GatewayFactory,
        coordinator: ReconciliationCoordinator,
    ) -> None:
        self._wallet = wallet
        self._gateway_factory = gateway_factory
        self._coordinator = coordinator
        self._session: Session | None = None

    @property
    def session(self) -> Session | None:
        """The session most recently handed to the coordinator, or None."""
        return self._session

    def initialize(self) -> Session:
        """
        Establish a session and perform the initial read pass.

        A failed initial read is published as a warning; the session is still
        returned because the account and gateway are valid.

        Raises
        ------
        SessionError
            NO_PROVIDER if no wallet is available or its provider is unreachable,
            REJECTED if the operator declined authorization.
        BusyError
            If an intent is in flight; the current session stays bound.
        """
        try:
            session = self._establish()
        except SessionError as exc:
            logger.error("Session start failed: %s", exc)
            self._coordinator.report_error(exc)
            raise

        self._coordinator.bind_session(session)
        self._session = session
        return session

    def ensure_current_account(self) -> bool:
        """
        Start a new session if the wallet's active account changed.

        Returns
        -------
        bool
            True if a new session was started. False if the account is unchanged, or if
            an intent is still in flight; the switch is retried on the next call.

        Raises
        ------
        SessionError
            If the wallet can no longer provide an account.
        """
        try:
            account = self._request_account()
        except SessionError as exc:
            self._coordinator.report_error(exc)
            raise

        if self._session is not None and self._session.account.lower() == account.lower():
            return False

        logger.info("Active account changed to %s; starting a new session", account)
        try:
            self.initialize()
        except BusyError:
            logger.info("Deferring switch to %s until the pending operation settles", account)
            return False
        return True

    def _establish(self) -> Session:
        account = self._request_account()
        signer = self._wallet.bind_signer(account)  # type: ignore[union-attr]
        return Session(account=signer.account, gateway=self._gateway_factory(signer))

    def _request_account(self) -> str:
        if self._wallet is None:
            raise SessionError(SessionFailure.NO_PROVIDER, "No wallet provider is available.")
        try:
            return self._wallet.request_account()
        except ProviderUnavailableError as exc:
            raise SessionError(SessionFailure.NO_PROVIDER, str(exc)) from exc
        except AuthError as exc:
            raise SessionError(SessionFailure.REJECTED, str(exc)) from exc
