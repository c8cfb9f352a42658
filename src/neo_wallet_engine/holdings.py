"""
Holdings aggregation: native balances, NEP5 balances and market valuation.
"""

import asyncio
import logging
from decimal import Decimal, DivisionByZero, InvalidOperation
from typing import List, Optional

from .catalog import AssetCatalog
from .exceptions import NetworkError
from .interfaces import (
    ExplorerClient,
    LedgerClient,
    NotificationKind,
    Notifier,
    PricingService,
)
from .models import (
    NEO,
    Holding,
    HoldingsResult,
    Token,
    TokenLookupStatus,
    Valuation,
)
from .notifications import safe_notify
from .utils import round2

logger = logging.getLogger(__name__)


class HoldingsAggregator:
    """Builds the holdings view of an address."""

    def __init__(self, ledger: LedgerClient, explorer: ExplorerClient,
                 pricing: PricingService, catalog: AssetCatalog,
                 notifier: Notifier, network: str):
        self.ledger = ledger
        self.explorer = explorer
        self.pricing = pricing
        self.catalog = catalog
        self.notifier = notifier
        self.network = network

    async def get_holdings(self, address: str,
                           restrict_to_symbol: Optional[str] = None) -> HoldingsResult:
        try:
            balances = await self.ledger.get_account_state(address)
        except Exception as e:
            raise NetworkError(f"NEO RPC Network Error: {e}") from e

        holdings = self._native_holdings(balances)

        neo_holding = next(h for h in holdings if h.asset_id == NEO.asset_id)
        tokens = self.catalog.tokens_for(self.network)

        results = await asyncio.gather(
            self._load_claimable(address, neo_holding),
            *(self._load_token(address, token) for token in tokens),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException):
                raise result
            if isinstance(result, Holding):
                holdings.append(result)

        if restrict_to_symbol:
            holdings = [h for h in holdings if h.symbol == restrict_to_symbol]

        await asyncio.gather(*(self._enrich(h) for h in holdings))

        holdings.sort(key=lambda h: h.symbol.lower())
        return self._summarize(holdings)

    def _native_holdings(self, balances) -> List[Holding]:
        """One holding per native asset, zero when the node omits it."""
        holdings = []
        for asset in self.catalog.native_assets():
            holdings.append(Holding(
                asset_id=asset.asset_id,
                symbol=asset.symbol,
                name=asset.name,
                balance=balances.get(asset.asset_id, Decimal("0")),
            ))
        return holdings

    async def _load_claimable(self, address: str, holding: Holding) -> None:
        try:
            holding.available_to_claim = await self.explorer.get_unclaimed(address)
        except Exception as e:
            logger.warning(f"Unclaimed GAS lookup failed for {address}: {e}")
            safe_notify(self.notifier, NotificationKind.NETWORK_ERROR,
                        f"Unable to read claimable GAS: {e}")

    async def _load_token(self, address: str, token: Token) -> Optional[Holding]:
        lookup = await self.explorer.get_token_balance(self.network, token.asset_id, address)

        if lookup.status == TokenLookupStatus.NOT_FOUND:
            self.catalog.remove(token.asset_id, token.network)
            return None

        if lookup.status == TokenLookupStatus.TRANSIENT_FAILURE:
            safe_notify(self.notifier, NotificationKind.NETWORK_ERROR,
                        f"Unable to read {token.symbol} balance: {lookup.error}")
            if not token.is_custom:
                return None
            return Holding(
                asset_id=token.asset_id,
                symbol=token.symbol,
                name=token.symbol,
                balance=Decimal("0"),
                is_token=True,
                is_custom_token=True,
            )

        balance = lookup.balance
        if balance.balance <= 0 and not token.is_custom:
            return None

        return Holding(
            asset_id=token.asset_id,
            symbol=balance.symbol,
            name=balance.name,
            balance=balance.balance,
            is_token=True,
            is_custom_token=token.is_custom,
        )

    async def _enrich(self, holding: Holding) -> None:
        try:
            valuation = await self.pricing.get_valuation(holding.symbol)
        except Exception as e:
            logger.warning(f"Valuation failed for {holding.symbol}: {e}")
            safe_notify(self.notifier, NotificationKind.NETWORK_ERROR,
                        f"Unable to read {holding.symbol} price: {e}")
            return
        apply_valuation(holding, valuation)

    @staticmethod
    def _summarize(holdings: List[Holding]) -> HoldingsResult:
        total_balance = sum(
            (h.total_value for h in holdings if h.total_value is not None), Decimal("0"))
        change_value = sum(
            (h.change_24h_value for h in holdings if h.change_24h_value is not None), Decimal("0"))

        change_percent = None
        base = total_balance - change_value
        if base != 0:
            change_percent = round2(100 * change_value / base)

        return HoldingsResult(
            holdings=holdings,
            total_balance=total_balance,
            change_24h_value=change_value,
            change_24h_percent=change_percent,
        )


def apply_valuation(holding: Holding, valuation: Valuation) -> None:
    """Fill the enrichment fields of a holding from its market valuation."""
    holding.total_supply = valuation.total_supply
    holding.market_cap = valuation.market_cap
    holding.change_24h_percent = valuation.change_24h_percent
    holding.unit_value = valuation.unit_value

    if holding.unit_value is None:
        holding.total_value = None
        holding.change_24h_percent = None
        holding.change_24h_value = None
        return

    holding.total_value = holding.unit_value * holding.balance

    if holding.change_24h_percent is None:
        return

    try:
        holding.unit_value_24h_ago = holding.unit_value / (1 + holding.change_24h_percent / 100)
    except (DivisionByZero, InvalidOperation):
        # -100% change leaves no meaningful previous price
        return
    holding.change_24h_value = (holding.unit_value * holding.balance
                                - holding.unit_value_24h_ago * holding.balance)
