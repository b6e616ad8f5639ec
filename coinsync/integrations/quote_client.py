from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

import requests

from coinsync.errors import MalformedResponseError, QuoteProviderError, RateLimitedError
from coinsync.schemas.coin import CoinRef
from coinsync.schemas.quote import QuoteResult

logger = logging.getLogger(__name__)


def parse_price(value: Any, *, field_name: str = "price") -> Decimal:
    """Parse a wire price into a non-negative Decimal without going through float."""
    if value is None or value == "" or isinstance(value, bool):
        raise MalformedResponseError(f"missing value for {field_name}")
    if isinstance(value, float):
        # only reachable when the body was decoded without parse_float=Decimal
        value = repr(value)
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise MalformedResponseError(f"invalid numeric value for {field_name}: {value!r}") from exc
    if not price.is_finite() or price < 0:
        raise MalformedResponseError(f"invalid numeric value for {field_name}: {value!r}")
    return price


def parse_retry_after(value: Any) -> float | None:
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return seconds


class QuoteClient:
    """Base provider client: HTTP plumbing, per-id retry, throttling and 429 backoff.

    Subclasses implement ``_search`` and either ``_fetch_one`` (sequential
    providers) or ``_fetch_batch`` (``supports_batch = True``). Neither public
    method raises: ``search`` returns None and ``get_prices`` reports failures
    through the returned QuoteResult.
    """

    name = "base"
    supports_batch = False
    default_base_url = ""
    # (id, symbol, name) rows seeded when no watch-list file exists
    default_watch_list: tuple[tuple[str, str, str], ...] = ()
    legacy_id_map: Mapping[str, str] = MappingProxyType({})

    def __init__(
        self,
        session: Optional[Any] = None,
        base_url: Optional[str] = None,
        *,
        timeout_sec: float = 10.0,
        request_delay_sec: float = 1.5,
        max_attempts: int = 2,
        default_retry_after_sec: float = 10.0,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session or requests.Session()
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout_sec = timeout_sec
        self.request_delay_sec = request_delay_sec
        self.max_attempts = max(1, max_attempts)
        self.default_retry_after_sec = default_retry_after_sec
        self._sleep = sleep_fn
        self._metrics = {
            "requests": 0,
            "rate_limited": 0,
            "retries": 0,
            "failed_ids": 0,
            "total_failures": 0,
        }

    def _get_json(self, path: str, *, params: dict | None = None, parse_float: Any = None) -> Any:
        self._metrics["requests"] += 1
        response = self.session.get(
            f"{self.base_url}{path}",
            params=params,
            headers={"accept": "application/json", "user-agent": "coinsync/0.1"},
            timeout=self.timeout_sec,
        )
        if response.status_code == 429:
            self._metrics["rate_limited"] += 1
            raise RateLimitedError(parse_retry_after(response.headers.get("Retry-After")))
        response.raise_for_status()
        try:
            if parse_float is not None:
                return response.json(parse_float=parse_float)
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError("response body is not valid JSON") from exc

    def search(self, query: str) -> CoinRef | None:
        text = (query or "").strip()
        if not text:
            return None
        try:
            ref = self._search(text)
        except (QuoteProviderError, requests.RequestException, KeyError, TypeError, ValueError) as exc:
            logger.warning("[QUOTE][search_error] provider=%s query=%r error=%s", self.name, text, exc)
            return None
        if ref is None:
            logger.info("[QUOTE][search_miss] provider=%s query=%r", self.name, text)
        return ref

    def get_prices(self, ids: Iterable[str]) -> QuoteResult:
        unique_ids: list[str] = []
        seen: set[str] = set()
        for coin_id in ids:
            value = str(coin_id).strip()
            if not value or value in seen:
                continue
            seen.add(value)
            unique_ids.append(value)

        if not unique_ids:
            return QuoteResult()

        if self.supports_batch:
            result = self._get_prices_batch(unique_ids)
        else:
            result = self._get_prices_sequential(unique_ids)

        self._metrics["failed_ids"] += len(result.failed_ids)
        if result.total_failure:
            self._metrics["total_failures"] += 1
        logger.info(
            "[QUOTE][batch_resolve] provider=%s target_count=%d ok_count=%d failed_count=%d total_failure=%d",
            self.name,
            len(unique_ids),
            len(result.prices),
            len(result.failed_ids),
            int(result.total_failure),
        )
        return result

    def _get_prices_batch(self, ids: list[str]) -> QuoteResult:
        try:
            prices = self._fetch_batch(ids)
        except (QuoteProviderError, requests.RequestException, KeyError, TypeError, ValueError) as exc:
            logger.warning("[QUOTE][batch_error] provider=%s error=%s", self.name, exc)
            return QuoteResult(failed_ids=list(ids), total_failure=True)

        # the provider answered: anything missing is a per-id miss, not an outage
        found = {coin_id: prices[coin_id] for coin_id in ids if coin_id in prices}
        failed = [coin_id for coin_id in ids if coin_id not in found]
        return QuoteResult(prices=found, failed_ids=failed, total_failure=False)

    def _get_prices_sequential(self, ids: list[str]) -> QuoteResult:
        prices: dict[str, Decimal] = {}
        failed: list[str] = []
        for index, coin_id in enumerate(ids):
            if index > 0 and self.request_delay_sec > 0:
                self._sleep(self.request_delay_sec)
            price = self._fetch_with_retry(coin_id)
            if price is None:
                failed.append(coin_id)
            else:
                prices[coin_id] = price
        return QuoteResult(prices=prices, failed_ids=failed, total_failure=not prices)

    def _fetch_with_retry(self, coin_id: str) -> Decimal | None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._fetch_one(coin_id)
            except RateLimitedError as exc:
                if attempt >= self.max_attempts:
                    logger.warning("[QUOTE][rate_limit_exhausted] provider=%s id=%s", self.name, coin_id)
                    return None
                wait_sec = exc.retry_after_sec
                if wait_sec is None:
                    wait_sec = self.default_retry_after_sec
                logger.info(
                    "[QUOTE][rate_limited] provider=%s id=%s retry_after_sec=%s", self.name, coin_id, wait_sec
                )
                self._sleep(wait_sec)
            except (QuoteProviderError, requests.RequestException, KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "[QUOTE][fetch_error] provider=%s id=%s attempt=%d error=%s", self.name, coin_id, attempt, exc
                )
                if attempt >= self.max_attempts:
                    return None
            self._metrics["retries"] += 1
        return None

    def metrics(self) -> dict[str, int]:
        return dict(self._metrics)

    def _search(self, query: str) -> CoinRef | None:
        raise NotImplementedError

    def _fetch_one(self, coin_id: str) -> Decimal:
        raise NotImplementedError

    def _fetch_batch(self, ids: list[str]) -> dict[str, Decimal]:
        raise NotImplementedError
