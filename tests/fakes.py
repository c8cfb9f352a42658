"""In-memory collaborators for tests."""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from neo_wallet_engine.exceptions import NetworkError
from neo_wallet_engine.interfaces import (
    ExplorerClient,
    LedgerClient,
    Notifier,
    PricingService,
    SigningBackend,
)
from neo_wallet_engine.models import MovementRecord, TokenLookup, Valuation
from neo_wallet_engine.utils import strip_hex_prefix

WALLET = "AK2nJJpJr6o664CWJKi1QRXjqeic2zRp8y"
OTHER = "ALq7AWrhAueN6mJNqk6FHJjnsEoPRytLdW"
THIRD = "AHL7aa9FFAMcQ4kTxwkV7tkDPJYVcMHj68"


class FakeLedger(LedgerClient):
    def __init__(self, balances=None, transactions=None, block_count=1000,
                 account_error=None, block_count_error=None):
        self.balances = balances or {}
        self.transactions = transactions or {}
        self.block_count = block_count
        self.account_error = account_error
        self.block_count_error = block_count_error
        self.calls: List[tuple] = []

    async def get_account_state(self, address):
        self.calls.append(("get_account_state", address))
        if self.account_error:
            raise self.account_error
        return dict(self.balances)

    async def get_block_count(self):
        self.calls.append(("get_block_count",))
        if self.block_count_error:
            raise self.block_count_error
        return self.block_count

    async def get_raw_transaction(self, tx_hash, verbose=True):
        self.calls.append(("get_raw_transaction", tx_hash))
        key = strip_hex_prefix(tx_hash)
        if key not in self.transactions:
            raise NetworkError(f"Unknown transaction {tx_hash}")
        return self.transactions[key]


class FakeExplorer(ExplorerClient):
    def __init__(self, token_lookups=None, transfers=None, history=None,
                 unclaimed=Decimal("0"), known_tokens=None):
        self.token_lookups: Dict[str, Any] = token_lookups or {}
        self.transfers = transfers or []
        self.history = history or []
        self.unclaimed = unclaimed
        self.known_tokens = known_tokens or []
        self.calls: List[tuple] = []

    async def get_token_balance(self, network, asset_id, address):
        self.calls.append(("get_token_balance", asset_id))
        lookup = self.token_lookups.get(asset_id, TokenLookup.not_found())
        if isinstance(lookup, Exception):
            raise lookup
        return lookup

    async def get_token_transfers(self, address, from_ts=None, to_ts=None,
                                  from_block=None, to_block=None):
        self.calls.append(("get_token_transfers", address, from_ts, to_ts, from_block, to_block))
        if isinstance(self.transfers, Exception):
            raise self.transfers
        return list(self.transfers)

    async def get_known_token_list(self, network):
        self.calls.append(("get_known_token_list", network))
        if isinstance(self.known_tokens, Exception):
            raise self.known_tokens
        return list(self.known_tokens)

    async def get_transaction_history(self, address):
        self.calls.append(("get_transaction_history", address))
        if isinstance(self.history, Exception):
            raise self.history
        return list(self.history)

    async def get_unclaimed(self, address):
        self.calls.append(("get_unclaimed", address))
        if isinstance(self.unclaimed, Exception):
            raise self.unclaimed
        return self.unclaimed


class FakePricing(PricingService):
    def __init__(self, valuations=None):
        self.valuations = valuations or {}
        self.calls: List[str] = []

    async def get_valuation(self, symbol):
        self.calls.append(symbol)
        valuation = self.valuations.get(symbol, Valuation())
        if isinstance(valuation, Exception):
            raise valuation
        return valuation


class FakeSigner(SigningBackend):
    """Broadcasts instantly; optionally marks each transaction confirmed in a state."""

    def __init__(self, state=None, response=None, error=None):
        self.state = state
        self.response = response
        self.error = error
        self.requests: List[Any] = []
        self.key_sources: List[Any] = []

    async def build_and_broadcast(self, request, key_source):
        self.requests.append(request)
        self.key_sources.append(key_source)
        if self.error:
            raise self.error
        if self.response is not None:
            return self.response

        tx_hash = f"0x{len(self.requests):064x}"
        if self.state is not None:
            self.state.recent_transactions.append(MovementRecord(
                hash=tx_hash[2:], block_index=1, block_time=1, from_address=None,
                to_address=None, symbol="NEO", value=Decimal("0")))
        return {"tx": {"hash": tx_hash}}


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages: List[tuple] = []

    def notify(self, kind, message):
        self.messages.append((kind, message))

    def kinds(self):
        return [kind for kind, _ in self.messages]


class StubMonitor:
    """Stands in for ConfirmationMonitor."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.awaited: List[str] = []

    async def await_confirmation(self, tx_hash, timeout=None):
        self.awaited.append(tx_hash)
        if self.error:
            raise self.error
        return MovementRecord(hash=tx_hash, block_index=1, block_time=1, from_address=None,
                              to_address=None, symbol="NEO", value=Decimal("0"))
