from __future__ import annotations

import json
import time
from decimal import Decimal
from typing import Any, Callable

from coinsync.errors import MalformedResponseError
from coinsync.integrations.quote_client import QuoteClient, parse_price
from coinsync.schemas.coin import CoinRef
from coinsync.services.coin_store import DEFAULT_COINS
from coinsync.services.identifier_registry import KNOWN_NAMES, LEGACY_ID_MAP, canonical_id, display_name


class BinanceQuoteClient(QuoteClient):
    """Binance spot tickers: every id priced in one request against USDT."""

    name = "binance"
    supports_batch = True
    default_base_url = "https://api.binance.com/api/v3"
    quote_asset = "USDT"
    default_watch_list = DEFAULT_COINS
    legacy_id_map = LEGACY_ID_MAP

    def __init__(
        self,
        *args: Any,
        listing_ttl_sec: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.listing_ttl_sec = listing_ttl_sec
        self._clock = clock
        self._listing: list[str] = []
        self._listing_loaded_at: float | None = None

    def pair_for(self, coin_id: str) -> str:
        return f"{coin_id.upper()}{self.quote_asset}"

    def base_for(self, pair: str) -> str | None:
        if not pair.endswith(self.quote_asset) or pair == self.quote_asset:
            return None
        return pair[: -len(self.quote_asset)]

    def _fetch_batch(self, ids: list[str]) -> dict[str, Decimal]:
        pairs = [self.pair_for(coin_id) for coin_id in ids]
        payload = self._get_json(
            "/ticker/price",
            params={"symbols": json.dumps(pairs, separators=(",", ":"))},
        )
        if not isinstance(payload, list):
            raise MalformedResponseError("ticker payload must be an array")

        by_upper = {coin_id.upper(): coin_id for coin_id in ids}
        prices: dict[str, Decimal] = {}
        for row in payload:
            if not isinstance(row, dict):
                continue
            base = self.base_for(str(row.get("symbol", "")))
            coin_id = by_upper.get(base) if base else None
            if coin_id is None:
                continue
            try:
                prices[coin_id] = parse_price(row.get("price"), field_name=f"{base}.price")
            except MalformedResponseError:
                # one bad row only fails its own id
                continue
        return prices

    def _load_listing(self) -> list[str]:
        now = self._clock()
        if self._listing_loaded_at is not None and now - self._listing_loaded_at < self.listing_ttl_sec:
            return self._listing

        payload = self._get_json("/exchangeInfo")
        symbols = payload.get("symbols") if isinstance(payload, dict) else None
        if not isinstance(symbols, list):
            raise MalformedResponseError("exchangeInfo payload has no symbols list")

        bases: set[str] = set()
        for entry in symbols:
            if not isinstance(entry, dict):
                continue
            if entry.get("quoteAsset") != self.quote_asset or entry.get("status") != "TRADING":
                continue
            base = entry.get("baseAsset")
            if isinstance(base, str) and base:
                bases.add(base.upper())

        self._listing = sorted(bases)
        self._listing_loaded_at = now
        return self._listing

    def _search(self, query: str) -> CoinRef | None:
        listing = self._load_listing()
        eligible = set(listing)

        ticker = query.upper()
        if ticker in eligible:
            return self._ref(ticker)

        migrated = canonical_id(query.lower(), self.legacy_id_map)
        if migrated in eligible:
            return self._ref(migrated)

        needle = query.lower()
        for base in listing:
            if needle in base.lower() or needle in KNOWN_NAMES.get(base, "").lower():
                return self._ref(base)
        return None

    @staticmethod
    def _ref(base: str) -> CoinRef:
        return CoinRef(id=base, symbol=base, name=display_name(base))
