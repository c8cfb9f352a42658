"""
Transaction history reconstruction.

System transactions are read from the node and their inputs resolved against
the outputs they spend, so the value each asset moved for the wallet can be
computed. One transaction can move NEO and GAS at once; it is split into one
movement record per asset. NEP5 transfers come from the indexer and map to a
single record each.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .exceptions import EmptyHistoryError, NetworkError, ReconciliationGap
from .interfaces import ExplorerClient, LedgerClient, NotificationKind, Notifier
from .models import (
    GAS,
    INVOCATION_TRANSACTION,
    NEO,
    LedgerTransactionDetail,
    MovementRecord,
    NativeAsset,
    SystemTransaction,
    TokenTransfer,
    TransactionInput,
    TransactionOutput,
    native_asset_for,
)
from .notifications import safe_notify
from .state import WalletState
from .utils import strip_hex_prefix, to_decimal

logger = logging.getLogger(__name__)

DateLike = Union[datetime, int, float, None]


@dataclass
class HistoryCandidate:
    """A transaction to reconcile, before its details are known."""
    txid: str
    block_height: Optional[int] = None
    is_token: bool = False
    symbol: Optional[str] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    value: Optional[Decimal] = None
    inputs: List[TransactionInput] = field(default_factory=list)
    outputs: List[TransactionOutput] = field(default_factory=list)

    @classmethod
    def from_system(cls, tx: SystemTransaction) -> "HistoryCandidate":
        return cls(txid=strip_hex_prefix(tx.txid), block_height=tx.block_height)

    @classmethod
    def from_token_transfer(cls, transfer: TokenTransfer) -> "HistoryCandidate":
        value = transfer.net_value
        return cls(
            txid=strip_hex_prefix(transfer.transaction_hash),
            block_height=transfer.block_index,
            is_token=True,
            symbol=transfer.symbol,
            from_address=transfer.from_address,
            to_address=transfer.to_address,
            value=value,
            inputs=[TransactionInput(txid=transfer.transaction_hash, vout=0,
                                     address=transfer.from_address, symbol=transfer.symbol,
                                     value=abs(value))],
            outputs=[TransactionOutput(address=transfer.to_address, value=abs(value),
                                       symbol=transfer.symbol)],
        )


def to_timestamp(value: DateLike) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return int(value.timestamp())
    return int(value)


def parse_transaction(raw: Dict[str, Any], block_count: int) -> LedgerTransactionDetail:
    """Build a transaction detail from a verbose ``getrawtransaction`` result."""
    confirmations = int(raw.get("confirmations") or 0)
    outputs = []
    for index, output in enumerate(raw.get("vout", [])):
        asset = native_asset_for(output.get("asset"))
        outputs.append(TransactionOutput(
            address=output.get("address"),
            value=to_decimal(output.get("value"), Decimal("0")),
            asset=output.get("asset"),
            symbol=asset.symbol if asset else None,
            n=int(output.get("n", index)),
        ))

    inputs = [TransactionInput(txid=strip_hex_prefix(i["txid"]), vout=int(i["vout"]))
              for i in raw.get("vin", [])]

    return LedgerTransactionDetail(
        txid=strip_hex_prefix(raw.get("txid", "")),
        type=raw.get("type", ""),
        inputs=inputs,
        outputs=outputs,
        confirmations=confirmations,
        block_time=raw.get("blocktime"),
        current_block_height=block_count,
        block=block_count - confirmations if confirmations > 0 else None,
    )


def split_native_movements(detail: LedgerTransactionDetail, address: str,
                           txid: Optional[str] = None) -> List[MovementRecord]:
    """One movement record per native asset the transaction moved for ``address``."""
    records = []
    for asset in (NEO, GAS):
        record = _native_movement(detail, address, asset, txid or detail.txid)
        if record is not None:
            records.append(record)
    return records


def _native_movement(detail: LedgerTransactionDetail, address: str,
                     asset: NativeAsset, txid: str) -> Optional[MovementRecord]:
    symbol = asset.symbol
    moved = False

    value_out = Decimal("0")
    for i in detail.inputs:
        if i.address == address and i.symbol == symbol:
            value_out += i.value or Decimal("0")
            moved = True

    value_in = Decimal("0")
    for o in detail.outputs:
        if o.address == address and o.symbol == symbol:
            value_in += o.value
            moved = True

    change = value_in - value_out

    # invocations touching an asset without changing it are side effects
    if detail.type == INVOCATION_TRANSACTION and change == 0:
        moved = False

    if not moved:
        return None

    from_address = None
    for i in detail.inputs:
        if i.symbol != symbol:
            continue
        if change > 0:
            if i.address != address:
                from_address = i.address
        elif i.address == address:
            from_address = i.address

    to_address = None
    for o in detail.outputs:
        if o.symbol != symbol:
            continue
        if change > 0:
            if o.address == address:
                to_address = o.address
        elif o.address != address:
            to_address = o.address

    return MovementRecord(
        hash=txid,
        block_index=detail.block,
        block_time=detail.block_time,
        from_address=from_address or address,
        to_address=to_address or address,
        symbol=symbol,
        value=change,
        is_token=False,
        details=replace(detail, symbol=symbol),
    )


class TransactionHistoryReconciler:
    """Merges system transactions and NEP5 transfers into movement records."""

    def __init__(self, ledger: LedgerClient, explorer: ExplorerClient,
                 state: WalletState, notifier: Notifier):
        self.ledger = ledger
        self.explorer = explorer
        self.state = state
        self.notifier = notifier

    async def get_recent_transactions(self, address: str, for_search: bool = False,
                                      from_date: DateLike = None, to_date: DateLike = None,
                                      from_block: Optional[int] = None,
                                      to_block: Optional[int] = None) -> List[MovementRecord]:
        """Movement records of an address, newest first."""
        from_ts = to_timestamp(from_date)
        to_ts = to_timestamp(to_date)

        system_transactions = await self._fetch_system_transactions(address)
        transfers = await self._fetch_token_transfers(address, from_ts, to_ts, from_block, to_block)

        candidates = [HistoryCandidate.from_system(t) for t in system_transactions]
        candidates.extend(HistoryCandidate.from_token_transfer(t) for t in transfers)

        in_range = [c for c in candidates if self._in_block_range(c, from_block, to_block)]
        results = await asyncio.gather(
            *(self._reconcile(c, address, from_ts, to_ts) for c in in_range),
            return_exceptions=True,
        )

        records: List[MovementRecord] = []
        for candidate, result in zip(in_range, results):
            if isinstance(result, BaseException):
                logger.warning(f"Dropping transaction {candidate.txid} from history: {result}")
                continue
            records.extend(result)

        records.sort(key=lambda r: (r.block_time is None, r.block_time or 0), reverse=True)
        logger.info(f"Reconciled {len(records)} movements from {len(in_range)} transactions")

        if not for_search:
            self.state.set_recent_transactions(records)

        return records

    async def get_transaction_details(self, tx_hash: str,
                                      resolve_inputs: bool = True) -> LedgerTransactionDetail:
        """Read a transaction from the node and resolve its inputs."""
        block_count = await self.ledger.get_block_count()

        try:
            raw = await self.ledger.get_raw_transaction(tx_hash, True)
        except Exception as e:
            raise NetworkError(f"NEO RPC Network Error: {e}") from e

        detail = parse_transaction(raw, block_count)
        if not detail.txid:
            detail.txid = strip_hex_prefix(tx_hash)

        if resolve_inputs and detail.inputs:
            results = await asyncio.gather(
                *(self._resolve_input(i) for i in detail.inputs), return_exceptions=True)
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                raise ReconciliationGap(detail.txid, str(failures[0]))

        return detail

    async def _resolve_input(self, tx_input: TransactionInput) -> None:
        source = await self.ledger.get_raw_transaction(tx_input.txid, True)
        outputs = source.get("vout", [])
        if tx_input.vout >= len(outputs):
            raise ReconciliationGap(tx_input.txid, f"output {tx_input.vout} does not exist")

        spent = outputs[tx_input.vout]
        asset = native_asset_for(spent.get("asset"))
        tx_input.asset = spent.get("asset")
        tx_input.symbol = asset.symbol if asset else None
        tx_input.address = spent.get("address")
        tx_input.value = to_decimal(spent.get("value"), Decimal("0"))

    async def _fetch_system_transactions(self, address: str) -> List[SystemTransaction]:
        try:
            return await self.explorer.get_transaction_history(address)
        except EmptyHistoryError:
            # new wallets have no history yet
            return []
        except Exception as e:
            logger.warning(f"System transaction fetch failed for {address}: {e}")
            safe_notify(self.notifier, NotificationKind.NETWORK_ERROR, str(e))
            return []

    async def _fetch_token_transfers(self, address: str, from_ts: Optional[int],
                                     to_ts: Optional[int], from_block: Optional[int],
                                     to_block: Optional[int]) -> List[TokenTransfer]:
        try:
            return await self.explorer.get_token_transfers(
                address, from_ts, to_ts, from_block, to_block)
        except Exception as e:
            logger.warning(f"Token transfer fetch failed for {address}: {e}")
            safe_notify(self.notifier, NotificationKind.ERROR, f"APH API Error: {e}")
            return []

    @staticmethod
    def _in_block_range(candidate: HistoryCandidate, from_block: Optional[int],
                        to_block: Optional[int]) -> bool:
        height = candidate.block_height
        if height is None:
            return True
        if from_block is not None and height < from_block:
            return False
        if to_block is not None and height > to_block:
            return False
        return True

    async def _reconcile(self, candidate: HistoryCandidate, address: str,
                         from_ts: Optional[int], to_ts: Optional[int]) -> List[MovementRecord]:
        detail = await self.get_transaction_details(
            candidate.txid, resolve_inputs=not candidate.is_token)

        if detail.block_time is not None:
            if from_ts is not None and detail.block_time < from_ts:
                return []
            if to_ts is not None and detail.block_time > to_ts:
                return []

        if not candidate.is_token:
            return split_native_movements(detail, address, candidate.txid)

        detail = replace(detail, inputs=candidate.inputs, outputs=candidate.outputs,
                         symbol=candidate.symbol)
        return [MovementRecord(
            hash=candidate.txid,
            block_index=detail.block,
            block_time=detail.block_time,
            from_address=candidate.from_address,
            to_address=candidate.to_address,
            symbol=candidate.symbol,
            value=candidate.value,
            is_token=True,
            details=detail,
        )]
