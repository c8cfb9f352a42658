"""
Confirmation polling against the locally known confirmed transactions.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import Config
from .interfaces import NotificationKind, Notifier
from .models import MovementRecord
from .notifications import safe_notify
from .state import WalletState

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[object]]


class ConfirmationMonitor:
    """Waits until a transaction hash appears in the recent transactions of the state."""

    def __init__(self, state: WalletState, config: Config, notifier: Notifier,
                 refresh: Optional[RefreshCallback] = None):
        self.state = state
        self.config = config
        self.notifier = notifier
        self.refresh = refresh

    async def await_confirmation(self, tx_hash: str,
                                 timeout: Optional[float] = None) -> MovementRecord:
        """Resolve with the confirmed record; waits forever unless ``timeout`` is given."""
        if timeout is None:
            return await self._poll(tx_hash)
        return await asyncio.wait_for(self._poll(tx_hash), timeout)

    async def _poll(self, tx_hash: str) -> MovementRecord:
        # wait a block for propagation
        await asyncio.sleep(self.config.confirmation_initial_delay)

        polls = 0
        while True:
            if self.refresh is not None and polls % max(self.config.confirmation_refresh_every, 1) == 0:
                try:
                    await self.refresh()
                except Exception as e:
                    logger.warning(f"History refresh while waiting for {tx_hash} failed: {e}")

            record = self.state.find_recent_transaction(tx_hash)
            if record is not None:
                safe_notify(self.notifier, NotificationKind.SUCCESS, f"TX: {tx_hash} CONFIRMED")
                return record

            polls += 1
            await asyncio.sleep(self.config.confirmation_poll_interval)
