"""
Wires clients, state and workflows together for one opened wallet.
"""

import logging
from decimal import Decimal
from typing import List, Optional

import aiohttp

from .api_clients import AphelionExplorerClient, CoinGeckoClient, NeoRpcClient
from .catalog import AssetCatalog
from .claims import GasClaimWorkflow
from .config import Config
from .exceptions import ValidationError
from .history import TransactionHistoryReconciler
from .holdings import HoldingsAggregator
from .interfaces import (
    ExplorerClient,
    LedgerClient,
    Notifier,
    PricingService,
    SigningBackend,
)
from .models import GasClaim, HoldingsResult, MovementRecord
from .monitor import ConfirmationMonitor
from .notifications import LoggingNotifier
from .state import WalletState
from .transfers import TransferOrchestrator

logger = logging.getLogger(__name__)


class WalletEngine:
    """Entry point for holdings, history, transfers and gas claims of the state's wallet."""

    def __init__(self, config: Config, state: WalletState,
                 ledger: LedgerClient, explorer: ExplorerClient,
                 pricing: PricingService, signer: Optional[SigningBackend] = None,
                 catalog: Optional[AssetCatalog] = None,
                 notifier: Optional[Notifier] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.state = state
        self.ledger = ledger
        self.explorer = explorer
        self.pricing = pricing
        self.signer = signer
        self.catalog = catalog or AssetCatalog()
        self.notifier = notifier or LoggingNotifier()
        self._session = session

        self.holdings = HoldingsAggregator(
            ledger, explorer, pricing, self.catalog, self.notifier, config.network)
        self.history = TransactionHistoryReconciler(ledger, explorer, state, self.notifier)
        self.monitor = ConfirmationMonitor(
            state, config, self.notifier, refresh=self.refresh_history)
        self._transfers: Optional[TransferOrchestrator] = None
        self._claims: Optional[GasClaimWorkflow] = None

    @classmethod
    def from_config(cls, config: Config, state: WalletState,
                    signer: Optional[SigningBackend] = None,
                    catalog: Optional[AssetCatalog] = None,
                    notifier: Optional[Notifier] = None) -> "WalletEngine":
        """Create an engine talking to the configured node, indexers and price API."""
        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=config.request_timeout))
        rpc = NeoRpcClient(config, session)
        explorer = AphelionExplorerClient(config, rpc, session)
        pricing = CoinGeckoClient(config, session)
        return cls(config, state, rpc, explorer, pricing, signer=signer,
                   catalog=catalog, notifier=notifier, session=session)

    async def __aenter__(self) -> "WalletEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    @property
    def address(self) -> str:
        if self.state.wallet is None:
            raise ValidationError("No wallet is open")
        return self.state.wallet.address

    @property
    def transfers(self) -> TransferOrchestrator:
        if self._transfers is None:
            if self.signer is None:
                raise ValidationError("A signing backend is required to send transactions")
            self._transfers = TransferOrchestrator(
                self.state, self.signer, self.monitor, self.notifier, self.config)
        return self._transfers

    @property
    def claims(self) -> GasClaimWorkflow:
        # one workflow per engine so the claim rate limit survives between calls
        if self._claims is None:
            self._claims = GasClaimWorkflow(
                self.state, self.holdings, self.transfers, self.explorer, self.signer,
                self.monitor, self.notifier, self.config, refresh_history=self.refresh_history)
        return self._claims

    async def refresh_holdings(self, restrict_to_symbol: Optional[str] = None) -> HoldingsResult:
        result = await self.holdings.get_holdings(self.address, restrict_to_symbol)
        if restrict_to_symbol is None:
            self.state.set_holdings(result.holdings)
        return result

    async def refresh_history(self) -> List[MovementRecord]:
        return await self.history.get_recent_transactions(self.address)

    async def load_known_tokens(self) -> int:
        return await self.catalog.load_known_tokens(
            self.explorer, self.config.network, self.notifier)

    async def send(self, to_address: str, asset_id: str, amount: Decimal,
                   is_token: bool = False, callback=None):
        """Send from the open wallet. Token sends check GAS against the loaded holdings."""
        return await self.transfers.send(to_address, asset_id, amount, is_token, callback)

    async def claim_gas(self) -> GasClaim:
        return await self.claims.claim()
