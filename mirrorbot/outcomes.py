"""
Outcome Resolver
Maps a token id to the outcome label of its market (e.g. "Yes"/"No")
"""

import logging
from typing import Optional, Dict, Any, List

import httpx

from config.mirror_settings import CLOB_API_URL, DATA_API_URL
from .models import SETTLEMENT_ASSET_ID

logger = logging.getLogger(__name__)


def _match_token(tokens: Any, token_id: str) -> Optional[str]:
    """Find the outcome of token_id in a market's token list"""
    if not isinstance(tokens, list):
        return None
    for token in tokens:
        if not isinstance(token, dict):
            continue
        tid = token.get("tokenId") or token.get("token_id")
        if tid is not None and str(tid) == token_id and token.get("outcome"):
            return token["outcome"]
    return None


class OutcomeResolver:
    """
    Best-effort token id -> outcome label lookup

    Labels are decoration for reports: a failed lookup returns None and is
    not cached, so the next call for the same token asks the API again.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        clob_api_base: str = CLOB_API_URL,
        data_api_base: str = DATA_API_URL,
    ):
        self.http_client = http_client or httpx.AsyncClient(timeout=30)
        self.clob_api_base = clob_api_base
        self.data_api_base = data_api_base
        self.cache: Dict[str, str] = {}
        self.lookups = 0

    async def resolve(self, token_id: str) -> Optional[str]:
        """Return the outcome label for token_id, or None"""
        token_id = str(token_id)
        if not token_id or token_id == SETTLEMENT_ASSET_ID:
            return None

        cached = self.cache.get(token_id)
        if cached is not None:
            return cached

        self.lookups += 1
        try:
            outcome = await self._lookup(token_id)
        except Exception as e:
            logger.debug(f"Outcome lookup failed for {token_id[:20]}...: {e}")
            return None

        if outcome:
            self.cache.setdefault(token_id, outcome)
            return self.cache[token_id]
        return None

    async def _lookup(self, token_id: str) -> Optional[str]:
        token_data = await self._get_json(f"{self.clob_api_base}/token", params={"id": token_id})
        if isinstance(token_data, dict):
            if token_data.get("outcome"):
                return token_data["outcome"]

            market_id = token_data.get("marketId")
            if market_id:
                outcome = await self._outcome_from_market(market_id, token_id)
                if outcome:
                    return outcome

        book = await self._get_json(f"{self.clob_api_base}/book", params={"token_id": token_id})
        if isinstance(book, dict) and isinstance(book.get("market"), dict):
            return _match_token(book["market"].get("tokens"), token_id)
        return None

    async def _outcome_from_market(self, market_id: str, token_id: str) -> Optional[str]:
        market = await self._get_json(f"{self.data_api_base}/markets/{market_id}")
        if not isinstance(market, dict):
            return None

        outcome = _match_token(market.get("tokens"), token_id)
        if outcome:
            return outcome

        # Binary markets: fall back to the outcome index encoded in the id parity
        outcomes: List[Any] = market.get("outcomes") or []
        if isinstance(outcomes, list) and token_id.isdigit():
            index = int(token_id) % 2
            if index < len(outcomes) and outcomes[index]:
                return str(outcomes[index])
        return None

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        """GET url, None on a non-200 status or a body that is not JSON"""
        try:
            response = await self.http_client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.debug(f"GET {url} failed: {e}")
            return None

        if response.status_code != 200:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def close(self) -> None:
        await self.http_client.aclose()
