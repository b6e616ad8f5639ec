from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Mapping

from coinsync.schemas.coin import WatchedCoin
from coinsync.schemas.quote import QuoteResult
from coinsync.services import identifier_registry
from coinsync.services.coin_store import CoinStore

logger = logging.getLogger(__name__)

Listener = Callable[[list[WatchedCoin]], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """Owns the watch-list, runs fetch cycles and persists snapshots.

    At most one fetch cycle runs at a time. Blocking callers (``add_coin``,
    ``refresh_now``) wait for an in-flight cycle and then run their own, with
    repeated manual refreshes merged into the one already waiting; the
    scheduler thread skips a tick instead. Network calls never happen while
    the list lock is held, and every write of the watch-list file goes
    through ``_persist``.
    """

    def __init__(
        self,
        *,
        quote_client,
        store: CoinStore,
        interval_sec: float = 300.0,
        id_migrations: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.quote_client = quote_client
        self.store = store
        self.interval_sec = interval_sec
        if id_migrations is None:
            id_migrations = identifier_registry.LEGACY_ID_MAP
        self.id_migrations = id_migrations
        self.clock = clock or _utcnow
        self._coins: list[WatchedCoin] = []
        self._state_lock = threading.RLock()
        self._cycle_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._pending_refresh: threading.Thread | None = None
        self._metrics = {
            "cycles": 0,
            "total_failures": 0,
            "skipped_cycles": 0,
            "merged_refreshes": 0,
            "last_cycle_at": None,
        }

    def load(self) -> list[WatchedCoin]:
        saved, dirty = identifier_registry.migrate_all(self.store.load(), self.id_migrations)

        coins: list[WatchedCoin] = []
        seen: set[str] = set()
        for record in saved:
            # a legacy slug and its ticker can collapse onto the same id
            if record.id in seen:
                dirty = True
                continue
            seen.add(record.id)
            coins.append(WatchedCoin.from_saved(record))

        with self._state_lock:
            self._coins = coins

        if dirty:
            logger.info("[SYNC][migrated] count=%d", len(coins))
            self._persist()
        self._notify()
        return self.coins()

    def coins(self) -> list[WatchedCoin]:
        with self._state_lock:
            return [coin.model_copy(deep=True) for coin in self._coins]

    def add_coin(self, query: str) -> str | None:
        """Resolve and append a coin. Returns None on success, else a message for the user."""
        text = (query or "").strip()
        ref = self.quote_client.search(text)
        if ref is None:
            return f'No coin found for "{text}".'

        with self._state_lock:
            if any(coin.id == ref.id for coin in self._coins):
                return f"{ref.name} is already in the list."
            self._coins.append(WatchedCoin.from_ref(ref))

        logger.info("[SYNC][coin_added] id=%s query=%r", ref.id, text)
        self._persist()
        self._notify()
        self.run_cycle()
        return None

    def remove_coin(self, coin_id: str) -> bool:
        with self._state_lock:
            index = self._index_of(coin_id)
            if index is None:
                return False
            self._coins.pop(index)

        logger.info("[SYNC][coin_removed] id=%s", coin_id)
        self._persist()
        self._notify()
        return True

    def move_up(self, coin_id: str) -> bool:
        return self._move(coin_id, -1)

    def move_down(self, coin_id: str) -> bool:
        return self._move(coin_id, 1)

    def _move(self, coin_id: str, offset: int) -> bool:
        with self._state_lock:
            index = self._index_of(coin_id)
            if index is None:
                return False
            target = index + offset
            if target < 0 or target >= len(self._coins):
                return False
            self._coins[index], self._coins[target] = self._coins[target], self._coins[index]

        self._persist()
        self._notify()
        return True

    def _index_of(self, coin_id: str) -> int | None:
        for index, coin in enumerate(self._coins):
            if coin.id == coin_id:
                return index
        return None

    def run_cycle(self, blocking: bool = True) -> QuoteResult | None:
        if not self._cycle_lock.acquire(blocking=blocking):
            with self._state_lock:
                self._metrics["skipped_cycles"] += 1
            logger.info("[SYNC][cycle_skip] reason=in_flight")
            return None
        try:
            return self._run_cycle_locked()
        finally:
            self._cycle_lock.release()

    def _run_cycle_locked(self) -> QuoteResult | None:
        with self._state_lock:
            ids = [coin.id for coin in self._coins]
        if not ids:
            return None

        try:
            result = self.quote_client.get_prices(ids)
        except Exception:
            logger.exception("[SYNC][cycle_error] provider call raised")
            result = QuoteResult(failed_ids=ids, total_failure=True)

        now = self.clock()
        self._apply(result, ids, now)

        with self._state_lock:
            self._metrics["cycles"] += 1
            self._metrics["last_cycle_at"] = now
            if result.total_failure:
                self._metrics["total_failures"] += 1
        logger.info(
            "[SYNC][cycle_done] target_count=%d ok_count=%d failed_count=%d total_failure=%d",
            len(ids),
            len(result.prices),
            len(result.failed_ids),
            int(result.total_failure),
        )

        self._persist()
        self._notify()
        return result

    def _apply(self, result: QuoteResult, requested: list[str], now: datetime) -> None:
        asked = set(requested)
        with self._state_lock:
            for coin in self._coins:
                # coins added while the request was out wait for the next cycle
                if coin.id not in asked:
                    continue
                price = result.prices.get(coin.id)
                if price is not None:
                    coin.set_price(price, now)
                elif result.total_failure:
                    coin.status = "ERROR"
                else:
                    coin.status = "STALE"

    def refresh_now(self) -> threading.Thread:
        """Run a cycle on a background thread so the caller never blocks.

        At most one manual refresh waits behind an in-flight cycle; further
        requests join it and get the same thread back.
        """
        with self._state_lock:
            if self._pending_refresh is not None:
                self._metrics["merged_refreshes"] += 1
                logger.info("[SYNC][refresh_merged]")
                return self._pending_refresh
            thread = threading.Thread(target=self._run_refresh, daemon=True, name="coinsync-refresh")
            self._pending_refresh = thread
        thread.start()
        return thread

    def _run_refresh(self) -> None:
        with self._cycle_lock:
            # requests arriving from here on need a cycle of their own
            with self._state_lock:
                self._pending_refresh = None
            self._run_cycle_locked()

    def _persist(self) -> None:
        with self._write_lock:
            with self._state_lock:
                snapshot = [coin.to_saved() for coin in self._coins]
            self.store.save(snapshot)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._state_lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._state_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        with self._state_lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        snapshot = self.coins()
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("[SYNC][listener_error] listener=%r", listener)

    def _loop(self, run_immediately: bool) -> None:
        if run_immediately and not self._stop_event.is_set():
            self.run_cycle(blocking=False)
        while not self._stop_event.wait(self.interval_sec):
            try:
                self.run_cycle(blocking=False)
            except Exception:  # pragma: no cover
                logger.exception("[SYNC][scheduler_error]")
                continue

    def start(self, run_immediately: bool = False) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, args=(run_immediately,), daemon=True, name="coinsync-scheduler"
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)

    def metrics(self) -> dict:
        with self._state_lock:
            return dict(self._metrics)
