"""
Registry of native assets and network-scoped NEP5 tokens.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from .interfaces import ExplorerClient, NotificationKind, Notifier
from .models import NATIVE_ASSETS, NativeAsset, Token
from .notifications import safe_notify
from .utils import strip_hex_prefix

logger = logging.getLogger(__name__)

DEFAULT_TOKENS = [
    Token(asset_id="591eedcd379a8981edeefe04ef26207e1391904a",
          symbol="APH", network="TestNet", is_custom=True),
    Token(asset_id="a0777c3ce2b169d4a23bcba4565e3225a0122d95",
          symbol="APH", network="MainNet", is_custom=True),
]


class AssetCatalog:
    """Native assets plus the tokens registered per network."""

    def __init__(self, tokens: Optional[List[Token]] = None, include_defaults: bool = True):
        self._tokens: Dict[Tuple[str, str], Token] = {}
        if include_defaults:
            for token in DEFAULT_TOKENS:
                self.add(replace(token))
        for token in tokens or []:
            self.add(token)

    @staticmethod
    def native_assets() -> List[NativeAsset]:
        return list(NATIVE_ASSETS.values())

    def add(self, token: Token) -> None:
        token.asset_id = strip_hex_prefix(token.asset_id)
        self._tokens[(token.asset_id, token.network)] = token

    def remove(self, asset_id: str, network: str) -> None:
        removed = self._tokens.pop((strip_hex_prefix(asset_id), network), None)
        if removed:
            logger.info(f"Removed token {removed.symbol} ({removed.asset_id}) from {network}")

    def get(self, asset_id: str, network: str) -> Optional[Token]:
        return self._tokens.get((strip_hex_prefix(asset_id), network))

    def tokens_for(self, network: str) -> List[Token]:
        return [t for t in self._tokens.values() if t.network == network]

    async def load_known_tokens(self, explorer: ExplorerClient, network: str,
                                notifier: Notifier) -> int:
        """Register the indexer's known tokens for a network; returns how many were added."""
        default_ids = {t.asset_id for t in DEFAULT_TOKENS}
        try:
            known = await explorer.get_known_token_list(network)
        except Exception as e:
            logger.warning(f"Known token list fetch failed for {network}: {e}")
            safe_notify(notifier, NotificationKind.ERROR, f"APH API Error: {e}")
            return 0

        added = 0
        for entry in known:
            script_hash = entry.get("scriptHash") or entry.get("script_hash")
            if not script_hash:
                continue
            asset_id = strip_hex_prefix(script_hash)
            if asset_id in default_ids:
                continue
            self.add(Token(asset_id=asset_id, symbol=entry.get("symbol", ""),
                           network=network, is_custom=False))
            added += 1

        logger.info(f"Registered {added} known tokens for {network}")
        return added
