from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import (
    BroadcastRequest,
    KeySource,
    SystemTransaction,
    TokenLookup,
    TokenTransfer,
    Valuation,
)


class LedgerClient(ABC):
    """Request interface to a NEO node."""

    @abstractmethod
    async def get_account_state(self, address: str) -> Dict[str, Decimal]:
        """Get native asset balances keyed by asset id"""

    @abstractmethod
    async def get_block_count(self) -> int:
        """Get current block height"""

    @abstractmethod
    async def get_raw_transaction(self, tx_hash: str, verbose: bool = True) -> Dict[str, Any]:
        """Get a transaction as the node returns it"""


class ExplorerClient(ABC):
    """Request interface to the indexing services."""

    @abstractmethod
    async def get_token_balance(self, network: str, asset_id: str, address: str) -> TokenLookup:
        """Get a NEP5 token balance; never raises for lookup failures"""

    @abstractmethod
    async def get_token_transfers(self, address: str, from_ts: Optional[int] = None,
                                  to_ts: Optional[int] = None, from_block: Optional[int] = None,
                                  to_block: Optional[int] = None) -> List[TokenTransfer]:
        """Get NEP5 transfers involving an address"""

    @abstractmethod
    async def get_known_token_list(self, network: str) -> List[Dict[str, Any]]:
        """Get the tokens known to the indexer"""

    @abstractmethod
    async def get_transaction_history(self, address: str) -> List[SystemTransaction]:
        """Get the system transactions of an address"""

    @abstractmethod
    async def get_unclaimed(self, address: str) -> Decimal:
        """Get the GAS claimable by an address"""


class PricingService(ABC):

    @abstractmethod
    async def get_valuation(self, symbol: str) -> Valuation:
        """Get market valuation of a symbol in the display currency"""


class SigningBackend(ABC):
    """Builds, signs and broadcasts transactions."""

    @abstractmethod
    async def build_and_broadcast(self, request: BroadcastRequest,
                                  key_source: KeySource) -> Dict[str, Any]:
        """Return the node response, with the signed transaction under ``tx``"""


class NotificationKind(Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    NETWORK_ERROR = "networkError"


class Notifier(ABC):

    @abstractmethod
    def notify(self, kind: NotificationKind, message: str) -> None:
        """Deliver a user notification; must never raise"""
