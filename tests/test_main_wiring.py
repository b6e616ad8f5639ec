import tempfile
import unittest
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

from coinsync.config.settings import Settings
from coinsync.integrations.binance import BinanceQuoteClient
from coinsync.integrations.coingecko import CoinGeckoQuoteClient
from coinsync.main import build_orchestrator, build_quote_client, format_board
from coinsync.schemas.coin import WatchedCoin


class TestMainWiring(unittest.TestCase):
    def test_provider_selects_client(self):
        binance = build_quote_client(Settings(provider="binance"))
        coingecko = build_quote_client(Settings(provider="coingecko", request_delay_sec=2.0, timeout_sec=3.0))

        self.assertIsInstance(binance, BinanceQuoteClient)
        self.assertIsInstance(coingecko, CoinGeckoQuoteClient)
        self.assertEqual(coingecko.request_delay_sec, 2.0)
        self.assertEqual(coingecko.timeout_sec, 3.0)
        self.assertEqual(coingecko.base_url, "https://api.coingecko.com/api/v3")

    def test_build_orchestrator_uses_settings_paths(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = Settings(data_dir=Path(tmpdir), refresh_interval_sec=60, base_url="https://example.test/")
            orchestrator = build_orchestrator(settings, session=MagicMock())

            self.assertEqual(orchestrator.store.path, Path(tmpdir) / "coins.json")
            self.assertEqual(orchestrator.interval_sec, 60)
            self.assertEqual(orchestrator.quote_client.base_url, "https://example.test")

            coins = orchestrator.load()
            self.assertEqual([coin.id for coin in coins], ["BTC", "ETH", "SOL"])

    def test_coingecko_keeps_slugs_and_seeds_slug_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "coins.json"
            settings = Settings(provider="coingecko", data_dir=Path(tmpdir))
            orchestrator = build_orchestrator(settings, session=MagicMock())

            self.assertEqual([coin.id for coin in orchestrator.load()], ["bitcoin", "ethereum", "solana"])

            path.write_text('[{"id": "dogecoin", "symbol": "DOGE", "name": "Dogecoin"}]', encoding="utf-8")
            self.assertEqual([coin.id for coin in orchestrator.load()], ["dogecoin"])
            self.assertFalse(any(p.suffix == ".tmp" for p in Path(tmpdir).iterdir()))

    def test_binance_migrates_saved_slugs(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "coins.json"
            path.write_text('[{"id": "dogecoin", "symbol": "doge", "name": "Dogecoin"}]', encoding="utf-8")
            orchestrator = build_orchestrator(Settings(data_dir=Path(tmpdir)), session=MagicMock())

            coins = orchestrator.load()

            self.assertEqual([(coin.id, coin.symbol, coin.name) for coin in coins], [("DOGE", "DOGE", "Dogecoin")])
            self.assertIn('"id": "DOGE"', path.read_text(encoding="utf-8"))

    def test_format_board_marks_failed_coins(self):
        now = datetime.now(timezone.utc)
        ok = WatchedCoin(id="BTC", symbol="BTC", name="Bitcoin", last_price=Decimal("67000"), last_updated_at=now)
        stale = WatchedCoin(id="ETH", symbol="ETH", name="Ethereum", status="STALE")

        board = format_board([ok, stale]).splitlines()

        self.assertIn("$67,000.00", board[0])
        self.assertNotIn("[", board[0])
        self.assertTrue(board[1].endswith("[STALE]"))


if __name__ == "__main__":
    unittest.main()
