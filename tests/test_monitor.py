import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest

from neo_wallet_engine.interfaces import NotificationKind
from neo_wallet_engine.models import MovementRecord
from neo_wallet_engine.monitor import ConfirmationMonitor

TX_HASH = "3f" * 32


def record(tx_hash):
    return MovementRecord(hash=tx_hash, block_index=10, block_time=100, from_address=None,
                          to_address=None, symbol="GAS", value=Decimal("1"))


class TestConfirmationMonitor:
    def test_known_transaction_resolves(self, state, config, notifier):
        state.recent_transactions = [record(TX_HASH.upper())]
        monitor = ConfirmationMonitor(state, config, notifier)

        confirmed = asyncio.run(monitor.await_confirmation("0x" + TX_HASH))

        assert confirmed is state.recent_transactions[0]
        assert notifier.messages == [
            (NotificationKind.SUCCESS, f"TX: 0x{TX_HASH} CONFIRMED"),
        ]

    def test_refresh_discovers_transaction(self, state, config, notifier):
        calls = []

        async def refresh():
            calls.append(1)
            if len(calls) == 2:
                state.recent_transactions = [record(TX_HASH)]

        monitor = ConfirmationMonitor(state, replace(config, confirmation_refresh_every=3),
                                      notifier, refresh=refresh)

        confirmed = asyncio.run(monitor.await_confirmation(TX_HASH))

        assert confirmed.hash == TX_HASH
        assert len(calls) == 2

    def test_refresh_errors_do_not_stop_polling(self, state, config, notifier):
        calls = []

        async def refresh():
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionError("node unreachable")
            state.recent_transactions = [record(TX_HASH)]

        monitor = ConfirmationMonitor(state, replace(config, confirmation_refresh_every=1),
                                      notifier, refresh=refresh)

        confirmed = asyncio.run(monitor.await_confirmation(TX_HASH))

        assert confirmed.hash == TX_HASH
        assert len(calls) == 2

    def test_timeout(self, state, config, notifier):
        monitor = ConfirmationMonitor(state, replace(config, confirmation_poll_interval=0.01),
                                      notifier)

        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(monitor.await_confirmation(TX_HASH, timeout=0.05))

        assert notifier.messages == []

    def test_other_transactions_do_not_confirm(self, state, config, notifier):
        state.recent_transactions = [record("4e" * 32)]
        monitor = ConfirmationMonitor(state, replace(config, confirmation_poll_interval=0.01),
                                      notifier)

        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(monitor.await_confirmation(TX_HASH, timeout=0.05))
