import pytest

from neo_wallet_engine.config import Config
from neo_wallet_engine.models import KeySource, WalletAccount
from neo_wallet_engine.state import WalletState

from fakes import WALLET, FakeExplorer, FakeLedger, FakePricing, RecordingNotifier


@pytest.fixture
def config():
    """Config without waits between workflow steps"""
    return Config(
        confirmation_initial_delay=0,
        confirmation_poll_interval=0,
        callback_delay=0,
        claim_settle_delay=0,
    )


@pytest.fixture
def state():
    """State with an opened local-key wallet"""
    return WalletState(wallet=WalletAccount(address=WALLET, key_source=KeySource(wif="test-wif")))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def explorer():
    return FakeExplorer()


@pytest.fixture
def pricing():
    return FakePricing()
