"""
Error types raised by the wallet engine.
"""


class WalletEngineError(Exception):
    """Base class for wallet engine errors."""


class ValidationError(WalletEngineError):
    """Input rejected before any network call was made."""


class NetworkError(WalletEngineError):
    """A node, indexer or pricing service was unreachable or answered badly."""


class RateLimitError(WalletEngineError):
    """A gas claim was requested too soon after the previous one."""


class ReconciliationGap(WalletEngineError):
    """A transaction input could not be resolved against its source output."""

    def __init__(self, txid: str, message: str):
        super().__init__(f"Unable to resolve inputs of {txid}: {message}")
        self.txid = txid


class TokenNotFoundError(WalletEngineError):
    """A token contract no longer resolves on the selected network."""


class EmptyHistoryError(WalletEngineError):
    """The indexer has no transaction history for an address."""
