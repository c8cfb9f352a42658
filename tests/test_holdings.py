import asyncio
from decimal import Decimal

import pytest

from neo_wallet_engine.catalog import AssetCatalog
from neo_wallet_engine.exceptions import NetworkError
from neo_wallet_engine.holdings import HoldingsAggregator, apply_valuation
from neo_wallet_engine.interfaces import NotificationKind
from neo_wallet_engine.models import (
    GAS_ASSET_ID,
    NEO_ASSET_ID,
    Holding,
    Token,
    TokenBalance,
    TokenLookup,
    Valuation,
)

from fakes import WALLET, FakeExplorer, FakeLedger, FakePricing

APH_ID = "a0777c3ce2b169d4a23bcba4565e3225a0122d95"
DBC_ID = "b951ecbbc5fe37a9c280a76cb0ce0014827294cf"
ONT_ID = "ceab719b8baa2310f232ee0d277c061704541cfb"


def make_aggregator(ledger, explorer, pricing, notifier, tokens=None):
    catalog = AssetCatalog(tokens=tokens or [], include_defaults=False)
    return HoldingsAggregator(ledger, explorer, pricing, catalog, notifier, "MainNet"), catalog


def token_ok(symbol, balance, name=None):
    return TokenLookup.ok(TokenBalance(balance=Decimal(balance), decimals=8,
                                       name=name or symbol, symbol=symbol))


class TestNativeHoldings:
    def test_missing_native_assets_are_added_with_zero_balance(self, notifier):
        aggregator, _ = make_aggregator(FakeLedger(), FakeExplorer(), FakePricing(), notifier)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        by_id = {h.asset_id: h for h in result.holdings}
        assert set(by_id) == {NEO_ASSET_ID, GAS_ASSET_ID}
        assert by_id[NEO_ASSET_ID].symbol == "NEO"
        assert by_id[NEO_ASSET_ID].name == "NEO"
        assert by_id[NEO_ASSET_ID].balance == 0
        assert by_id[GAS_ASSET_ID].symbol == "GAS"
        assert by_id[GAS_ASSET_ID].name == "GAS"
        assert by_id[GAS_ASSET_ID].balance == 0

    def test_existing_balances_are_kept(self, notifier):
        ledger = FakeLedger(balances={NEO_ASSET_ID: Decimal("12"), GAS_ASSET_ID: Decimal("0.5")})
        aggregator, _ = make_aggregator(ledger, FakeExplorer(), FakePricing(), notifier)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        balances = {h.symbol: h.balance for h in result.holdings}
        assert balances == {"GAS": Decimal("0.5"), "NEO": Decimal("12")}

    def test_claimable_gas_is_set_on_neo(self, notifier):
        explorer = FakeExplorer(unclaimed=Decimal("1.25"))
        aggregator, _ = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        neo = next(h for h in result.holdings if h.symbol == "NEO")
        gas = next(h for h in result.holdings if h.symbol == "GAS")
        assert neo.available_to_claim == Decimal("1.25")
        assert gas.available_to_claim is None

    def test_claimable_failure_is_not_fatal(self, notifier):
        explorer = FakeExplorer(unclaimed=NetworkError("neoscan down"))
        aggregator, _ = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        neo = next(h for h in result.holdings if h.symbol == "NEO")
        assert neo.available_to_claim is None
        assert NotificationKind.NETWORK_ERROR in notifier.kinds()

    def test_account_state_failure_is_fatal(self, notifier):
        ledger = FakeLedger(account_error=ConnectionError("refused"))
        aggregator, _ = make_aggregator(ledger, FakeExplorer(), FakePricing(), notifier)

        with pytest.raises(NetworkError, match="NEO RPC Network Error"):
            asyncio.run(aggregator.get_holdings(WALLET))


class TestTokenHoldings:
    def test_token_with_balance_is_included(self, notifier):
        explorer = FakeExplorer(token_lookups={DBC_ID: token_ok("DBC", "250", "DeepBrain Coin")})
        tokens = [Token(asset_id=DBC_ID, symbol="DBC", network="MainNet")]
        aggregator, _ = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier, tokens)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        dbc = next(h for h in result.holdings if h.symbol == "DBC")
        assert dbc.is_token
        assert not dbc.is_custom_token
        assert dbc.balance == Decimal("250")
        assert dbc.name == "DeepBrain Coin"

    def test_zero_balance_tokens_are_dropped_unless_custom(self, notifier):
        explorer = FakeExplorer(token_lookups={
            DBC_ID: token_ok("DBC", "0"),
            APH_ID: token_ok("APH", "0", "Aphelion"),
        })
        tokens = [
            Token(asset_id=DBC_ID, symbol="DBC", network="MainNet"),
            Token(asset_id=APH_ID, symbol="APH", network="MainNet", is_custom=True),
        ]
        aggregator, _ = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier, tokens)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        symbols = [h.symbol for h in result.holdings]
        assert "DBC" not in symbols
        assert "APH" in symbols
        aph = next(h for h in result.holdings if h.symbol == "APH")
        assert aph.is_custom_token
        assert aph.balance == 0

    def test_token_on_other_network_is_not_queried(self, notifier):
        explorer = FakeExplorer()
        tokens = [Token(asset_id=DBC_ID, symbol="DBC", network="TestNet")]
        aggregator, _ = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier, tokens)

        asyncio.run(aggregator.get_holdings(WALLET))

        assert ("get_token_balance", DBC_ID) not in explorer.calls

    def test_missing_token_is_removed_from_catalog(self, notifier):
        explorer = FakeExplorer(token_lookups={DBC_ID: TokenLookup.not_found()})
        tokens = [Token(asset_id=DBC_ID, symbol="DBC", network="MainNet")]
        aggregator, catalog = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier, tokens)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        assert catalog.get(DBC_ID, "MainNet") is None
        assert "DBC" not in [h.symbol for h in result.holdings]
        assert notifier.messages == []

    def test_transient_failure_keeps_custom_token_at_zero(self, notifier):
        explorer = FakeExplorer(token_lookups={
            APH_ID: TokenLookup.failure("timeout"),
            DBC_ID: TokenLookup.failure("timeout"),
        })
        tokens = [
            Token(asset_id=APH_ID, symbol="APH", network="MainNet", is_custom=True),
            Token(asset_id=DBC_ID, symbol="DBC", network="MainNet"),
        ]
        aggregator, catalog = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier, tokens)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        symbols = [h.symbol for h in result.holdings]
        assert "APH" in symbols
        assert "DBC" not in symbols
        assert catalog.get(DBC_ID, "MainNet") is not None
        assert notifier.kinds().count(NotificationKind.NETWORK_ERROR) == 2

    def test_unexpected_token_error_fails_the_call(self, notifier):
        explorer = FakeExplorer(token_lookups={DBC_ID: RuntimeError("decoder crashed")})
        tokens = [Token(asset_id=DBC_ID, symbol="DBC", network="MainNet")]
        aggregator, _ = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier, tokens)

        with pytest.raises(RuntimeError, match="decoder crashed"):
            asyncio.run(aggregator.get_holdings(WALLET))

    def test_symbol_filter_still_queries_every_token(self, notifier):
        explorer = FakeExplorer(token_lookups={
            DBC_ID: token_ok("DBC", "3"),
            ONT_ID: token_ok("ONT", "4"),
        })
        tokens = [
            Token(asset_id=DBC_ID, symbol="DBC", network="MainNet"),
            Token(asset_id=ONT_ID, symbol="ONT", network="MainNet"),
        ]
        pricing = FakePricing()
        aggregator, _ = make_aggregator(FakeLedger(), explorer, pricing, notifier, tokens)

        result = asyncio.run(aggregator.get_holdings(WALLET, "NEO"))

        assert [h.symbol for h in result.holdings] == ["NEO"]
        assert ("get_token_balance", DBC_ID) in explorer.calls
        assert ("get_token_balance", ONT_ID) in explorer.calls
        assert ("get_unclaimed", WALLET) in explorer.calls
        assert pricing.calls == ["NEO"]


class TestValuation:
    def test_missing_unit_value_clears_derived_fields(self, notifier):
        pricing = FakePricing(valuations={
            "NEO": Valuation(unit_value=None, change_24h_percent=Decimal("5"),
                             market_cap=Decimal("1000")),
        })
        ledger = FakeLedger(balances={NEO_ASSET_ID: Decimal("10")})
        aggregator, _ = make_aggregator(ledger, FakeExplorer(), pricing, notifier)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        neo = next(h for h in result.holdings if h.symbol == "NEO")
        assert neo.unit_value is None
        assert neo.total_value is None
        assert neo.change_24h_percent is None
        assert neo.change_24h_value is None
        assert neo.market_cap == Decimal("1000")

    def test_valuation_failure_leaves_fields_unset(self, notifier):
        pricing = FakePricing(valuations={"GAS": NetworkError("rate limited")})
        ledger = FakeLedger(balances={GAS_ASSET_ID: Decimal("2")})
        aggregator, _ = make_aggregator(ledger, FakeExplorer(), pricing, notifier)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        gas = next(h for h in result.holdings if h.symbol == "GAS")
        assert gas.total_value is None
        assert gas.unit_value is None
        assert NotificationKind.NETWORK_ERROR in notifier.kinds()

    def test_apply_valuation_computes_24h_change(self):
        holding = Holding(asset_id=NEO_ASSET_ID, symbol="NEO", name="NEO", balance=Decimal("10"))

        apply_valuation(holding, Valuation(unit_value=Decimal("12"),
                                           change_24h_percent=Decimal("20")))

        assert holding.unit_value_24h_ago == Decimal("10")
        assert holding.total_value == Decimal("120")
        assert holding.change_24h_value == Decimal("20")

    def test_aggregate_totals(self, notifier):
        ledger = FakeLedger(balances={NEO_ASSET_ID: Decimal("10"), GAS_ASSET_ID: Decimal("5")})
        pricing = FakePricing(valuations={
            "NEO": Valuation(unit_value=Decimal("12"), change_24h_percent=Decimal("20")),
            "GAS": Valuation(unit_value=Decimal("3"), change_24h_percent=Decimal("0")),
        })
        aggregator, _ = make_aggregator(ledger, FakeExplorer(), pricing, notifier)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        assert result.total_balance == Decimal("135")
        assert result.change_24h_value == Decimal("20")
        assert result.change_24h_percent == Decimal("17.39")

    def test_total_ignores_holdings_without_value(self, notifier):
        explorer = FakeExplorer(token_lookups={DBC_ID: token_ok("DBC", "100")})
        tokens = [Token(asset_id=DBC_ID, symbol="DBC", network="MainNet")]
        ledger = FakeLedger(balances={NEO_ASSET_ID: Decimal("2")})
        pricing = FakePricing(valuations={"NEO": Valuation(unit_value=Decimal("15"))})
        aggregator, _ = make_aggregator(ledger, explorer, pricing, notifier, tokens)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        values = [h.total_value for h in result.holdings if h.total_value is not None]
        assert result.total_balance == sum(values)
        assert result.total_balance == Decimal("30")

    def test_empty_wallet_has_no_change_percent(self, notifier):
        aggregator, _ = make_aggregator(FakeLedger(), FakeExplorer(), FakePricing(), notifier)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        assert result.total_balance == 0
        assert result.change_24h_percent is None


class TestOrdering:
    def test_holdings_sorted_by_symbol_case_insensitively(self, notifier):
        explorer = FakeExplorer(token_lookups={
            DBC_ID: token_ok("dbc", "1"),
            ONT_ID: token_ok("ONT", "1"),
            APH_ID: token_ok("APH", "1"),
        })
        tokens = [
            Token(asset_id=DBC_ID, symbol="dbc", network="MainNet"),
            Token(asset_id=ONT_ID, symbol="ONT", network="MainNet"),
            Token(asset_id=APH_ID, symbol="APH", network="MainNet"),
        ]
        aggregator, _ = make_aggregator(FakeLedger(), explorer, FakePricing(), notifier, tokens)

        result = asyncio.run(aggregator.get_holdings(WALLET))

        assert [h.symbol for h in result.holdings] == ["APH", "dbc", "GAS", "NEO", "ONT"]
