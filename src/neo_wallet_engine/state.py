"""
Process-wide wallet state with a publish/subscribe mutation channel.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, List, Optional

from .models import (
    GAS_ASSET_ID,
    GasClaim,
    Holding,
    MovementRecord,
    WalletAccount,
)
from .utils import normalize_hash

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, Any], None]

GAS_CLAIM = "gas_claim"
SEND_IN_PROGRESS = "send_in_progress"
HOLDINGS = "holdings"
RECENT_TRANSACTIONS = "recent_transactions"


class WalletState:
    """Current wallet, network and progress records shared across workflows."""

    def __init__(self, wallet: Optional[WalletAccount] = None,
                 network: str = "MainNet", currency: str = "USD"):
        self.wallet = wallet
        self.network = network
        self.currency = currency
        self.holdings: List[Holding] = []
        self.recent_transactions: List[MovementRecord] = []
        self.gas_claim: Optional[GasClaim] = None
        self.send_in_progress = False
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a mutation listener; returns a function removing it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, mutation: str, payload: Any) -> None:
        for callback in list(self._subscribers):
            try:
                callback(mutation, payload)
            except Exception as e:
                logger.error(f"State subscriber failed on {mutation}: {e}")

    def set_gas_claim(self, gas_claim: GasClaim) -> None:
        self.gas_claim = gas_claim
        self.publish(GAS_CLAIM, gas_claim)

    def set_send_in_progress(self, value: bool) -> None:
        self.send_in_progress = value
        self.publish(SEND_IN_PROGRESS, value)

    def set_holdings(self, holdings: List[Holding]) -> None:
        self.holdings = holdings
        self.publish(HOLDINGS, holdings)

    def set_recent_transactions(self, transactions: List[MovementRecord]) -> None:
        self.recent_transactions = transactions
        self.publish(RECENT_TRANSACTIONS, transactions)

    def find_recent_transaction(self, tx_hash: str) -> Optional[MovementRecord]:
        wanted = normalize_hash(tx_hash)
        for record in self.recent_transactions:
            if normalize_hash(record.hash) == wanted:
                return record
        return None

    def gas_balance(self) -> Decimal:
        """GAS balance from the last holdings refresh."""
        for holding in self.holdings:
            if holding.asset_id == GAS_ASSET_ID:
                return holding.balance
        return Decimal("0")
