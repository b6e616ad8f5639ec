from __future__ import annotations

from decimal import Decimal

from coinsync.errors import MalformedResponseError
from coinsync.integrations.quote_client import QuoteClient, parse_price
from coinsync.schemas.coin import CoinRef


class CoinGeckoQuoteClient(QuoteClient):
    """CoinGecko free tier: one /simple/price request per id, throttled."""

    name = "coingecko"
    supports_batch = False
    default_base_url = "https://api.coingecko.com/api/v3"
    vs_currency = "usd"
    default_watch_list = (
        ("bitcoin", "BTC", "Bitcoin"),
        ("ethereum", "ETH", "Ethereum"),
        ("solana", "SOL", "Solana"),
    )

    def _fetch_one(self, coin_id: str) -> Decimal:
        payload = self._get_json(
            "/simple/price",
            params={"ids": coin_id, "vs_currencies": self.vs_currency},
            parse_float=Decimal,
        )
        if not isinstance(payload, dict):
            raise MalformedResponseError("price payload must be an object")
        entry = payload.get(coin_id)
        if not isinstance(entry, dict):
            raise MalformedResponseError(f"missing id in response: {coin_id}")
        return parse_price(entry.get(self.vs_currency), field_name=f"{coin_id}.{self.vs_currency}")

    def _search(self, query: str) -> CoinRef | None:
        payload = self._get_json("/search", params={"query": query})
        coins = payload.get("coins") if isinstance(payload, dict) else None
        if not isinstance(coins, list):
            raise MalformedResponseError("search payload has no coins list")
        if not coins:
            return None
        first = coins[0]
        return CoinRef(id=str(first["id"]), symbol=str(first["symbol"]), name=str(first["name"]))
