"""Legacy identifier migration.

Watch-lists saved while CoinGecko was the active provider store CoinGecko
slugs ("bitcoin", "avalanche-2"); Binance keys coins by base asset ticker
("BTC", "AVAX"). Each provider client names the table that leads to its own
id scheme (empty for CoinGecko). Records are rewritten once at load time and
anything not in the table is taken as already canonical.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from coinsync.schemas.coin import SavedCoin

LEGACY_ID_MAP = MappingProxyType(
    {
        "bitcoin": "BTC",
        "ethereum": "ETH",
        "solana": "SOL",
        "cardano": "ADA",
        "ripple": "XRP",
        "dogecoin": "DOGE",
        "litecoin": "LTC",
        "binancecoin": "BNB",
        "polkadot": "DOT",
        "avalanche-2": "AVAX",
        "chainlink": "LINK",
        "uniswap": "UNI",
        "stellar": "XLM",
        "monero": "XMR",
    }
)

KNOWN_NAMES = MappingProxyType(
    {
        "BTC": "Bitcoin",
        "ETH": "Ethereum",
        "SOL": "Solana",
        "ADA": "Cardano",
        "XRP": "XRP",
        "DOGE": "Dogecoin",
        "LTC": "Litecoin",
        "BNB": "BNB",
        "DOT": "Polkadot",
        "AVAX": "Avalanche",
        "LINK": "Chainlink",
        "UNI": "Uniswap",
        "XLM": "Stellar",
        "XMR": "Monero",
    }
)


def canonical_id(coin_id: str, table: Mapping[str, str] = LEGACY_ID_MAP) -> str:
    return table.get(coin_id, coin_id)


def display_name(coin_id: str) -> str:
    return KNOWN_NAMES.get(coin_id, coin_id)


def migrate(record: SavedCoin, table: Mapping[str, str] = LEGACY_ID_MAP) -> SavedCoin:
    mapped = table.get(record.id)
    if mapped is None:
        return record
    return record.model_copy(update={"id": mapped, "symbol": mapped})


def migrate_all(
    records: list[SavedCoin], table: Mapping[str, str] = LEGACY_ID_MAP
) -> tuple[list[SavedCoin], bool]:
    """Migrate every record; the flag is True when any record was rewritten."""
    out: list[SavedCoin] = []
    dirty = False
    for record in records:
        migrated = migrate(record, table)
        if migrated is not record:
            dirty = True
        out.append(migrated)
    return out, dirty
