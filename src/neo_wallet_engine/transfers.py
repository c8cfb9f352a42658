"""
Transfer dispatch and lifecycle tracking up to confirmation.
"""

import asyncio
import inspect
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .config import Config
from .exceptions import NetworkError, ValidationError
from .interfaces import NotificationKind, Notifier, SigningBackend
from .models import (
    MIN_GAS_DROP,
    AssetKind,
    AssetTransferRequest,
    BroadcastRequest,
    NativeAsset,
    PostBroadcastCallback,
    TokenAsset,
    TokenTransferRequest,
    TransferIntent,
    native_asset_for,
)
from .monitor import ConfirmationMonitor
from .notifications import safe_notify
from .state import WalletState
from .utils import is_valid_neo_address, strip_hex_prefix

logger = logging.getLogger(__name__)


class TransferOrchestrator:
    """Validates, broadcasts and tracks NEO, GAS and NEP5 transfers."""

    def __init__(self, state: WalletState, signer: SigningBackend,
                 monitor: ConfirmationMonitor, notifier: Notifier, config: Config):
        self.state = state
        self.signer = signer
        self.monitor = monitor
        self.notifier = notifier
        self.config = config

    async def send(self, to_address: str, asset_id: str, amount: Decimal,
                   is_token: bool = False,
                   callback: Optional[PostBroadcastCallback] = None) -> Dict[str, Any]:
        """Send funds and wait for confirmation; returns the broadcast transaction."""
        intent = TransferIntent(
            to_address=(to_address or "").strip(),
            asset_id=asset_id,
            amount=amount,
            is_token=is_token,
            callback=callback,
        )
        asset = self.validate(intent)
        request = self._build_request(intent, asset)

        self.state.set_send_in_progress(True)
        try:
            return await self._dispatch(request, intent.callback)
        finally:
            self.state.set_send_in_progress(False)

    def validate(self, intent: TransferIntent) -> AssetKind:
        """Check an intent without touching the network."""
        if not is_valid_neo_address(intent.to_address):
            raise ValidationError(f"Invalid to address. {intent.to_address}")

        try:
            intent.amount = Decimal(str(intent.amount))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"Invalid amount {intent.amount}")

        if not intent.is_token:
            asset = native_asset_for(intent.asset_id)
            if asset is None:
                raise ValidationError("Invalid system asset id")
            return asset

        if self.state.gas_balance() < MIN_GAS_DROP:
            message = "At least one drop of GAS is required to send NEP5 transfers."
            safe_notify(self.notifier, NotificationKind.ERROR, message)
            raise ValidationError(message)

        script_hash = strip_hex_prefix(intent.asset_id)
        holding = next((h for h in self.state.holdings if h.asset_id == script_hash), None)
        return TokenAsset(script_hash=script_hash, symbol=holding.symbol if holding else None)

    def _build_request(self, intent: TransferIntent, asset: AssetKind) -> BroadcastRequest:
        if self.state.wallet is None:
            raise ValidationError("No wallet is open")
        from_address = self.state.wallet.address

        if isinstance(asset, NativeAsset):
            return AssetTransferRequest(
                from_address=from_address,
                to_address=intent.to_address,
                amounts={asset.symbol: intent.amount},
            )

        return TokenTransferRequest(
            from_address=from_address,
            to_address=intent.to_address,
            script_hash=asset.script_hash,
            amount=intent.amount,
            gas_attachment=MIN_GAS_DROP,
        )

    async def _dispatch(self, request: BroadcastRequest,
                        callback: Optional[PostBroadcastCallback]) -> Dict[str, Any]:
        try:
            response = await self.signer.build_and_broadcast(request, self.state.wallet.key_source)
        except Exception as e:
            logger.error(f"Broadcast failed: {e}")
            safe_notify(self.notifier, NotificationKind.ERROR, str(e))
            raise NetworkError(f"Unable to send transaction: {e}") from e

        tx = (response or {}).get("tx")
        if not tx or not tx.get("hash"):
            raise NetworkError("Failed to create transaction.")

        tx_hash = tx["hash"]
        safe_notify(self.notifier, NotificationKind.INFO,
                    f"Transaction Hash: {tx_hash} Sent, waiting for confirmation.")

        callback_task = None
        if callback is not None:
            callback_task = asyncio.ensure_future(self._run_callback(callback))

        try:
            try:
                await self.monitor.await_confirmation(tx_hash)
            except Exception as e:
                logger.warning(f"Confirmation monitoring of {tx_hash} failed: {e}")
                safe_notify(self.notifier, NotificationKind.ERROR, str(e))

            if callback_task is not None:
                await callback_task
        finally:
            if callback_task is not None and not callback_task.done():
                callback_task.cancel()

        return tx

    async def _run_callback(self, callback: PostBroadcastCallback) -> None:
        # give the node time to relay the transaction
        await asyncio.sleep(self.config.callback_delay)
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Post-broadcast callback failed: {e}")
