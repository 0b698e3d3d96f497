"""Exception hierarchy for the lending dashboard."""


class IsolendError(Exception):
    """Base exception for dashboard errors."""


class InvalidAmount(IsolendError, ValueError):
    """Raised when a user-entered amount is not a non-negative decimal numeral."""


class ValidationError(IsolendError):
    """Raised when an action fails client-side checks before touching the chain."""


class SubmissionError(IsolendError):
    """Raised when the wallet or RPC node refuses a transaction."""


class TransactionReverted(SubmissionError):
    """Raised when a transaction was mined with a failed status."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"Transaction reverted: {tx_hash}")
        self.tx_hash = tx_hash


class PoolUnavailable(IsolendError):
    """Raised when a pool snapshot cannot be loaded."""

    def __init__(self, pool_address: str, reason: str = "") -> None:
        message = f"Pool {pool_address} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.pool_address = pool_address


class FlowStateError(IsolendError):
    """Raised when a transaction flow command is issued in the wrong phase."""
