"""
Data models for NEO wallet orchestration.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


NEO_ASSET_ID = "0xc56f33fc6ecfcd0c225c4ab356fee59390af8560be0e930faebe74a6daff7c9b"
GAS_ASSET_ID = "0x602c79718b16e442de58778e148d0b1084e3b2dffd5de6b7b16cee7969282de7"

INVOCATION_TRANSACTION = "InvocationTransaction"

# Smallest GAS amount (one Fixed8 unit)
MIN_GAS_DROP = Decimal("0.00000001")


@dataclass(frozen=True)
class NativeAsset:
    """A ledger-level asset (NEO or GAS)."""
    asset_id: str
    symbol: str
    name: str


@dataclass(frozen=True)
class TokenAsset:
    """A NEP5 token identified by its contract script hash."""
    script_hash: str
    symbol: Optional[str] = None


AssetKind = Union[NativeAsset, TokenAsset]

NEO = NativeAsset(asset_id=NEO_ASSET_ID, symbol="NEO", name="NEO")
GAS = NativeAsset(asset_id=GAS_ASSET_ID, symbol="GAS", name="GAS")
NATIVE_ASSETS = {NEO.asset_id: NEO, GAS.asset_id: GAS}


def native_asset_for(asset_id: Optional[str]) -> Optional[NativeAsset]:
    """Return the native asset for an id, accepting ids with or without 0x."""
    if not asset_id:
        return None
    asset_id = asset_id.lower()
    if not asset_id.startswith("0x"):
        asset_id = "0x" + asset_id
    return NATIVE_ASSETS.get(asset_id)


@dataclass
class Token:
    """A NEP5 token registered in the catalog."""
    asset_id: str
    symbol: str
    network: str
    is_custom: bool = False


@dataclass
class TokenBalance:
    """Balance and metadata of a NEP5 token for one address."""
    balance: Decimal
    decimals: int
    name: str
    symbol: str
    total_supply: Optional[Decimal] = None


class TokenLookupStatus(Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass
class TokenLookup:
    """Result of a token balance lookup."""
    status: TokenLookupStatus
    balance: Optional[TokenBalance] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, balance: TokenBalance) -> "TokenLookup":
        return cls(status=TokenLookupStatus.OK, balance=balance)

    @classmethod
    def not_found(cls) -> "TokenLookup":
        return cls(status=TokenLookupStatus.NOT_FOUND)

    @classmethod
    def failure(cls, error: str) -> "TokenLookup":
        return cls(status=TokenLookupStatus.TRANSIENT_FAILURE, error=error)


@dataclass
class Valuation:
    """Market valuation of a symbol in the display currency."""
    unit_value: Optional[Decimal] = None
    change_24h_percent: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None
    total_supply: Optional[Decimal] = None


@dataclass
class Holding:
    """One asset's position for the active wallet."""
    asset_id: str
    symbol: str
    name: str
    balance: Decimal
    is_token: bool = False
    is_custom_token: bool = False
    unit_value: Optional[Decimal] = None
    unit_value_24h_ago: Optional[Decimal] = None
    change_24h_percent: Optional[Decimal] = None
    change_24h_value: Optional[Decimal] = None
    total_value: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None
    total_supply: Optional[Decimal] = None
    available_to_claim: Optional[Decimal] = None


@dataclass
class HoldingsResult:
    """Holdings of an address with aggregate valuation."""
    holdings: List[Holding]
    total_balance: Decimal = Decimal("0")
    change_24h_value: Decimal = Decimal("0")
    change_24h_percent: Optional[Decimal] = None


@dataclass
class GasClaim:
    """Progress record of a gas claim, published to state subscribers."""
    step: int = 0
    neo_transfer_amount: Optional[Decimal] = None
    gas_claim_amount: Optional[Decimal] = None
    claim_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.step == 5 or self.error is not None


PostBroadcastCallback = Callable[[], Union[None, Awaitable[None]]]


@dataclass
class TransferIntent:
    """What the user asked to send."""
    to_address: str
    asset_id: str
    amount: Decimal
    is_token: bool = False
    callback: Optional[PostBroadcastCallback] = None


@dataclass
class KeySource:
    """Key material used to sign: a local key or a hardware signing function."""
    wif: Optional[str] = None
    private_key: Optional[str] = None
    signing_function: Optional[Callable[..., Any]] = None

    @property
    def is_hardware(self) -> bool:
        return self.signing_function is not None


@dataclass
class AssetTransferRequest:
    """Native asset transfer; only assets present in ``amounts`` move."""
    from_address: str
    to_address: str
    amounts: Dict[str, Decimal]


@dataclass
class TokenTransferRequest:
    """NEP5 ``transfer`` invocation with a minimal GAS attachment."""
    from_address: str
    to_address: str
    script_hash: str
    amount: Decimal
    gas_attachment: Decimal = MIN_GAS_DROP
    operation: str = "transfer"


@dataclass
class ClaimGasRequest:
    """Claim of all unclaimed GAS for an address."""
    address: str
    amount: Decimal


BroadcastRequest = Union[AssetTransferRequest, TokenTransferRequest, ClaimGasRequest]


@dataclass
class WalletAccount:
    """The currently opened wallet."""
    address: str
    key_source: KeySource = field(default_factory=KeySource)
    label: Optional[str] = None


@dataclass
class TransactionInput:
    """Reference to a prior output, resolved to its address/asset/value."""
    txid: str
    vout: int
    address: Optional[str] = None
    asset: Optional[str] = None
    symbol: Optional[str] = None
    value: Optional[Decimal] = None


@dataclass
class TransactionOutput:
    address: str
    value: Decimal
    asset: Optional[str] = None
    symbol: Optional[str] = None
    n: int = 0


@dataclass
class LedgerTransactionDetail:
    """A raw transaction as read from the node."""
    txid: str
    type: str
    inputs: List[TransactionInput]
    outputs: List[TransactionOutput]
    confirmations: int = 0
    block_time: Optional[int] = None
    current_block_height: Optional[int] = None
    block: Optional[int] = None
    symbol: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.confirmations > 0


@dataclass
class TokenTransfer:
    """A NEP5 transfer record from the indexing service."""
    transaction_hash: str
    block_index: int
    block_time: int
    from_address: str
    to_address: str
    symbol: str
    received: Decimal = Decimal("0")
    sent: Decimal = Decimal("0")

    @property
    def net_value(self) -> Decimal:
        return self.received - self.sent


@dataclass
class SystemTransaction:
    """An entry of the indexer's transaction list for an address."""
    txid: str
    block_height: Optional[int] = None


@dataclass
class MovementRecord:
    """A single-asset, directional transfer reconstructed from a transaction."""
    hash: str
    block_index: Optional[int]
    block_time: Optional[int]
    from_address: Optional[str]
    to_address: Optional[str]
    symbol: str
    value: Decimal
    is_token: bool = False
    details: Optional[LedgerTransactionDetail] = None
