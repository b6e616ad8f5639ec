from __future__ import annotations

import argparse
import logging
import sys
import threading

from coinsync.config.logging_config import configure_logging
from coinsync.config.settings import Settings, get_settings
from coinsync.integrations.binance import BinanceQuoteClient
from coinsync.integrations.coingecko import CoinGeckoQuoteClient
from coinsync.integrations.quote_client import QuoteClient
from coinsync.schemas.coin import WatchedCoin
from coinsync.services.coin_store import CoinStore
from coinsync.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

_PROVIDERS: dict[str, type[QuoteClient]] = {
    "binance": BinanceQuoteClient,
    "coingecko": CoinGeckoQuoteClient,
}


def build_quote_client(settings: Settings, session=None) -> QuoteClient:
    client_cls = _PROVIDERS[settings.provider]
    return client_cls(
        session=session,
        base_url=settings.base_url,
        timeout_sec=settings.timeout_sec,
        request_delay_sec=settings.request_delay_sec,
    )


def build_orchestrator(settings: Settings | None = None, session=None) -> SyncOrchestrator:
    settings = settings or get_settings()
    client = build_quote_client(settings, session=session)
    return SyncOrchestrator(
        quote_client=client,
        store=CoinStore(settings.coins_path, defaults=client.default_watch_list),
        interval_sec=settings.refresh_interval_sec,
        id_migrations=client.legacy_id_map,
    )


def format_board(coins: list[WatchedCoin]) -> str:
    lines = []
    for coin in coins:
        marker = "" if coin.status == "OK" else f" [{coin.status}]"
        lines.append(f"{coin.symbol:<6} {coin.display_price():>16}  {coin.age_text():<10}{marker}")
    return "\n".join(lines)


def _print_board(coins: list[WatchedCoin]) -> None:
    print(format_board(coins), flush=True)
    print("-" * 40, flush=True)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="coinsync", description="Keep a crypto watch-list priced.")
    parser.add_argument("--add", action="append", default=[], metavar="QUERY", help="add a coin by symbol or name")
    parser.add_argument("--remove", action="append", default=[], metavar="ID", help="remove a coin by id")
    parser.add_argument("--once", action="store_true", help="run a single fetch cycle and exit")
    args = parser.parse_args(argv)

    configure_logging()
    settings = get_settings()
    orchestrator = build_orchestrator(settings)
    orchestrator.load()

    for coin_id in args.remove:
        if not orchestrator.remove_coin(coin_id):
            print(f"{coin_id} is not in the list.", file=sys.stderr)
    for query in args.add:
        message = orchestrator.add_coin(query)
        if message:
            print(message, file=sys.stderr)

    if args.once:
        orchestrator.run_cycle()
        _print_board(orchestrator.coins())
        return 0

    orchestrator.subscribe(_print_board)
    logger.info(
        "[SYNC][scheduler_start] provider=%s interval_sec=%s path=%s",
        settings.provider,
        settings.refresh_interval_sec,
        settings.coins_path,
    )
    orchestrator.start(run_immediately=True)
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        orchestrator.stop()
        logger.info("[SYNC][scheduler_stop]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
