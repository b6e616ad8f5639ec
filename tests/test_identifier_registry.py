import unittest

from coinsync.schemas.coin import SavedCoin
from coinsync.services.identifier_registry import LEGACY_ID_MAP, canonical_id, migrate, migrate_all


class TestIdentifierRegistry(unittest.TestCase):
    def test_legacy_slug_is_rewritten_and_name_kept(self):
        record = SavedCoin(id="avalanche-2", symbol="avax", name="Avalanche (old)", lastPrice=30)

        migrated = migrate(record)

        self.assertEqual(migrated.id, "AVAX")
        self.assertEqual(migrated.symbol, "AVAX")
        self.assertEqual(migrated.name, "Avalanche (old)")
        self.assertEqual(migrated.last_price, record.last_price)

    def test_migrate_is_idempotent(self):
        records = [SavedCoin(id=legacy, symbol=legacy, name=legacy) for legacy in LEGACY_ID_MAP]
        records += [
            SavedCoin(id="BTC", symbol="BTC", name="Bitcoin"),
            SavedCoin(id="some-future-coin", symbol="SFC", name="Future"),
            SavedCoin(id="PEPE", symbol="PEPE", name="Pepe"),
        ]

        for record in records:
            once = migrate(record)
            self.assertEqual(migrate(once), once)

    def test_unknown_ids_pass_through_untouched(self):
        for coin_id in ("BTC", "some-future-coin", "Wrapped-Thing", "lowercase"):
            record = SavedCoin(id=coin_id, symbol="X", name="X")
            self.assertIs(migrate(record), record)
            self.assertEqual(canonical_id(coin_id), coin_id)

    def test_migrate_all_reports_dirty_only_when_rewritten(self):
        clean, dirty = migrate_all([SavedCoin(id="BTC", symbol="BTC", name="Bitcoin")])
        self.assertFalse(dirty)
        self.assertEqual([c.id for c in clean], ["BTC"])

        migrated, dirty = migrate_all(
            [
                SavedCoin(id="BTC", symbol="BTC", name="Bitcoin"),
                SavedCoin(id="ethereum", symbol="eth", name="Ethereum"),
            ]
        )
        self.assertTrue(dirty)
        self.assertEqual([c.id for c in migrated], ["BTC", "ETH"])

        _, dirty_again = migrate_all(migrated)
        self.assertFalse(dirty_again)


if __name__ == "__main__":
    unittest.main()
