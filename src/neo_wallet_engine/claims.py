"""
Gas claim workflow.

A claim moves through these steps, published on every transition:

0. initialized
1. NEO holding read, self-transfer amount known
2. self-transfer acknowledged (only when NEO balance is positive)
3. claimable GAS recomputed
4. claim transaction broadcast
5. claim transaction confirmed

Moving NEO to the same address makes all accrued GAS claimable; with a zero
NEO balance the claim is sent directly.
"""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from .config import Config
from .exceptions import NetworkError, RateLimitError, ValidationError
from .holdings import HoldingsAggregator
from .interfaces import ExplorerClient, NotificationKind, Notifier, SigningBackend
from .models import NEO, ClaimGasRequest, GasClaim
from .monitor import ConfirmationMonitor
from .notifications import safe_notify
from .state import WalletState
from .transfers import TransferOrchestrator

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "May only claim GAS once every 5 minutes."


class GasClaimWorkflow:

    def __init__(self, state: WalletState, holdings: HoldingsAggregator,
                 transfers: TransferOrchestrator, explorer: ExplorerClient,
                 signer: SigningBackend, monitor: ConfirmationMonitor,
                 notifier: Notifier, config: Config,
                 refresh_history: Optional[Callable[[], Awaitable[object]]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.state = state
        self.holdings = holdings
        self.transfers = transfers
        self.explorer = explorer
        self.signer = signer
        self.monitor = monitor
        self.notifier = notifier
        self.config = config
        self.refresh_history = refresh_history
        self.clock = clock
        self.last_claim_sent: Optional[float] = None

    def check_rate_limit(self) -> None:
        if (self.last_claim_sent is not None
                and self.clock() - self.last_claim_sent < self.config.claim_interval):
            safe_notify(self.notifier, NotificationKind.ERROR, RATE_LIMIT_MESSAGE)
            raise RateLimitError(RATE_LIMIT_MESSAGE)

    async def claim(self) -> GasClaim:
        """Run a claim to completion; failures end up in ``GasClaim.error``."""
        self.check_rate_limit()
        if self.state.wallet is None:
            raise ValidationError("No wallet is open")

        gas_claim = GasClaim(step=0)
        self.state.set_gas_claim(gas_claim)
        self.last_claim_sent = self.clock()

        address = self.state.wallet.address
        try:
            result = await self.holdings.get_holdings(address, NEO.symbol)
            neo = next((h for h in result.holdings if h.asset_id == NEO.asset_id), None)
            neo_amount = neo.balance if neo else Decimal("0")

            gas_claim.neo_transfer_amount = neo_amount
            self._advance(gas_claim, 1)

            if neo_amount > 0:
                await self.transfers.send(address, NEO.asset_id, neo_amount, False,
                                          callback=lambda: self._advance(gas_claim, 2))
                await asyncio.sleep(self.config.claim_settle_delay)

            await self._send_claim(gas_claim, address)
        except Exception as e:
            self._fail(gas_claim, e)

        return gas_claim

    async def _send_claim(self, gas_claim: GasClaim, address: str) -> None:
        gas_claim.gas_claim_amount = await self.explorer.get_unclaimed(address)
        self._advance(gas_claim, 3)

        request = ClaimGasRequest(address=address, amount=gas_claim.gas_claim_amount)
        response = await self.signer.build_and_broadcast(request, self.state.wallet.key_source)
        tx = (response or {}).get("tx")
        if not tx or not tx.get("hash"):
            raise NetworkError("Failed to create claim transaction.")

        gas_claim.claim_hash = tx["hash"]
        self._advance(gas_claim, 4)

        await self.monitor.await_confirmation(gas_claim.claim_hash)
        if self.refresh_history is not None:
            await self.refresh_history()
        self._advance(gas_claim, 5)

    def _advance(self, gas_claim: GasClaim, step: int) -> None:
        gas_claim.step = step
        logger.info(f"Gas claim step {step}")
        self.state.set_gas_claim(gas_claim)

    def _fail(self, gas_claim: GasClaim, error: Exception) -> None:
        logger.error(f"Gas claim failed at step {gas_claim.step}: {error}")
        gas_claim.error = str(error)
        self.last_claim_sent = None
        kind = NotificationKind.NETWORK_ERROR if isinstance(error, NetworkError) else NotificationKind.ERROR
        safe_notify(self.notifier, kind, str(error))
        self.state.set_gas_claim(gas_claim)
