"""
Domain exceptions for marketsync.

Notes
-----
Engine code does not raise generic exceptions for expected failure modes.
Every failure a caller can act on maps to one of the classes below, and the
reconciliation coordinator converts them into published data rather than
letting them escape to the presentation layer.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Terminal failure classes for a submitted ledger operation."""

    REJECTED = "rejected"
    REVERTED = "reverted"
    TIMEOUT = "timeout"


class ValidationReason(str, Enum):
    """Why an operation intent was refused before reaching the ledger."""

    EMPTY_NAME = "empty_name"
    INVALID_PRICE = "invalid_price"
    INVALID_ADDRESS = "invalid_address"
    INVALID_ITEM_ID = "invalid_item_id"
    STALE_PRICE = "stale_price"


class SessionFailure(str, Enum):
    """Why a session could not be established."""

    NO_PROVIDER = "no_provider"
    REJECTED = "rejected"
    NOT_BOUND = "not_bound"


class MarketSyncError(RuntimeError):
    """Base exception for all marketsync domain failures."""


class GatewayError(MarketSyncError):
    """Raised when a ledger read or submission call fails."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SettlementError(MarketSyncError):
    """Raised by a settlement handle when the ledger operation did not finalize."""

    def __init__(self, kind: FailureKind, cause: str) -> None:
        super().__init__(f"{kind.value}: {cause}")
        self.kind = kind
        self.cause = cause


class ValidationError(MarketSyncError):
    """Raised when an intent is malformed; never involves a ledger write."""

    def __init__(self, reason: ValidationReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class SessionError(MarketSyncError):
    """Raised when the wallet collaborator is missing or declines authorization."""

    def __init__(self, kind: SessionFailure, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class FetchError(MarketSyncError):
    """Raised when a snapshot read pass fails partway. Partial results are discarded."""


class OperationError(MarketSyncError):
    """Raised when a submitted operation failed to settle successfully."""

    def __init__(self, kind: FailureKind, cause: str) -> None:
        super().__init__(f"Operation {kind.value}: {cause}")
        self.kind = kind
        self.cause = cause


class ReconciliationWarning(MarketSyncError):
    """
    The operation settled but the follow-up refresh failed.

    Ledger state did change; the published snapshots are stale until the next
    successful read pass.
    """


class BusyError(MarketSyncError):
    """Raised when an intent arrives while another one is in flight."""


class AuthError(MarketSyncError):
    """Raised by a wallet when the operator declines or no account is available."""


class ProviderUnavailableError(MarketSyncError):
    """Raised by a wallet when its underlying provider cannot be reached."""


class SettingsError(MarketSyncError):
    """Raised when settings cannot be persisted."""
