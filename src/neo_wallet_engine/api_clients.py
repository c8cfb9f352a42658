import asyncio
import logging
from typing import Optional, List, Dict, Any
from decimal import Decimal

import aiohttp

from .config import Config
from .exceptions import EmptyHistoryError, NetworkError, TokenNotFoundError
from .interfaces import ExplorerClient, LedgerClient, PricingService
from .models import (
    SystemTransaction,
    TokenBalance,
    TokenLookup,
    TokenTransfer,
    Valuation,
)
from .utils import (
    address_to_script_hash,
    fixed8_from_hex,
    string_from_hex,
    strip_hex_prefix,
    to_decimal,
)

# Set up logging
logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, NetworkError)


class HttpClient:
    """Shared aiohttp session handling."""

    def __init__(self, config: Config, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                        headers: Optional[Dict[str, str]] = None) -> Any:
        async with self.session.get(url, params=params, headers=headers) as response:
            response.raise_for_status()
            data = await response.json(content_type=None)

        # Rate limiting
        if self.config.rate_limit_delay:
            await asyncio.sleep(self.config.rate_limit_delay)

        return data


class NeoRpcClient(HttpClient, LedgerClient):
    """Client for the NEO node JSON-RPC API."""

    def __init__(self, config: Config, session: Optional[aiohttp.ClientSession] = None):
        super().__init__(config, session)
        self.base_url = config.rpc_url
        self._request_id = 0

    async def _make_request(self, method: str, params: List[Any]) -> Any:
        """Make a JSON-RPC call and return its result."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        async with self.session.post(self.base_url, json=payload) as response:
            response.raise_for_status()
            data = await response.json(content_type=None)

        if data.get("error"):
            error = data["error"]
            message = error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
            raise NetworkError(f"NEO RPC error in {method}: {message}")

        # Rate limiting
        if self.config.rate_limit_delay:
            await asyncio.sleep(self.config.rate_limit_delay)

        return data.get("result")

    async def get_account_state(self, address: str) -> Dict[str, Decimal]:
        """Get native asset balances of an address."""
        result = await self._make_request("getaccountstate", [address])
        balances = {}
        for entry in (result or {}).get("balances", []):
            balances[entry["asset"]] = to_decimal(entry.get("value"), Decimal("0"))
        return balances

    async def get_block_count(self) -> int:
        return int(await self._make_request("getblockcount", []))

    async def get_raw_transaction(self, tx_hash: str, verbose: bool = True) -> Dict[str, Any]:
        return await self._make_request("getrawtransaction", [tx_hash, 1 if verbose else 0])

    async def invoke_function(self, script_hash: str, operation: str,
                              params: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Run a read-only contract invocation."""
        return await self._make_request(
            "invokefunction", [script_hash, operation, params or []])

    async def _invoke_single(self, script_hash: str, operation: str,
                             params: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        result = await self.invoke_function(script_hash, operation, params)
        if not result or "FAULT" in str(result.get("state", "")):
            raise TokenNotFoundError(f"Invocation of {operation} on {script_hash} faulted")
        stack = result.get("stack") or []
        if not stack:
            raise TokenNotFoundError(f"Invocation of {operation} on {script_hash} returned nothing")
        return stack[0]

    @staticmethod
    def _stack_number(item: Dict[str, Any], decimals: int = 0) -> Decimal:
        """Decode an Integer or little-endian ByteArray stack item."""
        if item.get("type") == "Integer":
            return Decimal(int(item.get("value") or 0)).scaleb(-decimals)
        return fixed8_from_hex(item.get("value") or "", decimals)

    async def get_nep5_token(self, script_hash: str, address: str) -> TokenBalance:
        """Read NEP5 metadata and the balance of an address from the contract."""
        script_hash = strip_hex_prefix(script_hash)
        account = {"type": "Hash160", "value": address_to_script_hash(address)}

        name, symbol, decimals, total_supply, balance = await asyncio.gather(
            self._invoke_single(script_hash, "name"),
            self._invoke_single(script_hash, "symbol"),
            self._invoke_single(script_hash, "decimals"),
            self._invoke_single(script_hash, "totalSupply"),
            self._invoke_single(script_hash, "balanceOf", [account]),
        )

        symbol_text = string_from_hex(symbol.get("value") or "")
        if not symbol_text:
            raise TokenNotFoundError(f"Contract {script_hash} has no symbol")

        token_decimals = int(self._stack_number(decimals))
        return TokenBalance(
            balance=self._stack_number(balance, token_decimals),
            decimals=token_decimals,
            name=string_from_hex(name.get("value") or ""),
            symbol=symbol_text,
            total_supply=self._stack_number(total_supply, token_decimals),
        )


class AphelionExplorerClient(HttpClient, ExplorerClient):
    """Client for the indexing services: Aphelion token API and neoscan."""

    def __init__(self, config: Config, rpc: NeoRpcClient,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(config, session)
        self.rpc = rpc
        self.aph_url = config.aph_api_url.rstrip("/")
        self.neoscan_url = config.neoscan_url.rstrip("/")

    async def get_token_balance(self, network: str, asset_id: str, address: str) -> TokenLookup:
        """Get a NEP5 balance through contract invocation on the node."""
        if network != self.config.network:
            return TokenLookup.failure(
                f"Node is on {self.config.network}, token is registered on {network}")
        try:
            return TokenLookup.ok(await self.rpc.get_nep5_token(asset_id, address))
        except TokenNotFoundError as e:
            logger.warning(f"Token {asset_id} not found on {network}: {e}")
            return TokenLookup.not_found()
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Token balance lookup failed for {asset_id}: {e}")
            return TokenLookup.failure(str(e))

    async def get_token_transfers(self, address: str, from_ts: Optional[int] = None,
                                  to_ts: Optional[int] = None, from_block: Optional[int] = None,
                                  to_block: Optional[int] = None) -> List[TokenTransfer]:
        """Get NEP5 transfers of an address within a time and block range."""
        params = {
            "fromTimestamp": from_ts,
            "toTimestamp": to_ts,
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        params = {k: v for k, v in params.items() if v is not None}

        data = await self._get_json(f"{self.aph_url}/transfers/{address}", params)
        transfers = []
        for t in (data or {}).get("transfers", []):
            try:
                transfers.append(TokenTransfer(
                    transaction_hash=strip_hex_prefix(t["transactionHash"]),
                    block_index=int(t["blockIndex"]),
                    block_time=int(t["blockTime"]),
                    from_address=t.get("fromAddress"),
                    to_address=t.get("toAddress"),
                    symbol=t.get("symbol", ""),
                    received=to_decimal(t.get("received"), Decimal("0")),
                    sent=to_decimal(t.get("sent"), Decimal("0")),
                ))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(
                    f"Skipping malformed transfer {t.get('transactionHash', 'unknown')}: {e}")
                continue

        return transfers

    async def get_known_token_list(self, network: str) -> List[Dict[str, Any]]:
        if network != self.config.network:
            raise ValueError(
                f"Token list for {network} requested from a {self.config.network} client")
        data = await self._get_json(f"{self.aph_url}/tokens")
        return (data or {}).get("tokens", [])

    async def get_transaction_history(self, address: str) -> List[SystemTransaction]:
        """Get the system transactions of an address from neoscan."""
        data = await self._get_json(
            f"{self.neoscan_url}/v1/get_last_transactions_by_address/{address}")
        if not data:
            raise EmptyHistoryError(f"No transaction history for {address}")

        history = []
        for entry in data:
            txid = entry.get("txid")
            if not txid:
                continue
            block_height = entry.get("block_height")
            history.append(SystemTransaction(
                txid=strip_hex_prefix(txid),
                block_height=int(block_height) if block_height is not None else None,
            ))
        return history

    async def get_unclaimed(self, address: str) -> Decimal:
        data = await self._get_json(f"{self.neoscan_url}/v1/get_unclaimed/{address}")
        return to_decimal((data or {}).get("unclaimed"), Decimal("0"))


class CoinGeckoClient(HttpClient, PricingService):
    """Client for CoinGecko API."""

    def __init__(self, config: Config, session: Optional[aiohttp.ClientSession] = None):
        super().__init__(config, session)
        self.base_url = config.coingecko_base_url.rstrip("/")
        self.api_key = config.coingecko_api_key

    async def _make_request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make a request to CoinGecko API."""
        headers = {}

        if self.api_key:
            headers["x-cg-pro-api-key"] = self.api_key

        return await self._get_json(f"{self.base_url}/{endpoint}", params or {}, headers)

    async def get_valuation(self, symbol: str) -> Valuation:
        """Get market data of a symbol in the configured currency."""
        data = await self._make_request("coins/markets", {
            "vs_currency": self.config.currency.lower(),
            "symbols": symbol.lower(),
        })

        if not data:
            logger.warning(f"No market data for {symbol}")
            return Valuation()

        market = data[0]
        return Valuation(
            unit_value=to_decimal(market.get("current_price")),
            change_24h_percent=to_decimal(market.get("price_change_percentage_24h")),
            market_cap=to_decimal(market.get("market_cap")),
            total_supply=to_decimal(market.get("total_supply")),
        )
