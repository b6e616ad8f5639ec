from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Sequence

from pydantic import ValidationError

from coinsync.schemas.coin import SavedCoin

logger = logging.getLogger(__name__)

DEFAULT_COINS = (
    ("BTC", "BTC", "Bitcoin"),
    ("ETH", "ETH", "Ethereum"),
    ("SOL", "SOL", "Solana"),
)

# SavedCoin dumps prices as exact decimal text; unquote them into JSON numbers
_PRICE_TEXT = re.compile(r'("lastPrice": )"(-?\d+(?:\.\d+)?)"')


def default_coins(rows: Sequence[tuple[str, str, str]] = DEFAULT_COINS) -> list[SavedCoin]:
    return [SavedCoin(id=coin_id, symbol=symbol, name=name) for coin_id, symbol, name in rows]


class CoinStore:
    """JSON file holding the ordered watch-list and each coin's last price.

    Knows nothing about migration or fetch cycles. ``load`` never raises;
    ``save`` logs failures and leaves any previous file in place.
    """

    def __init__(self, path: str | Path, defaults: Sequence[tuple[str, str, str]] = DEFAULT_COINS) -> None:
        self.path = Path(path)
        self.defaults = tuple(defaults) or DEFAULT_COINS

    def load(self) -> list[SavedCoin]:
        if not self.path.exists():
            logger.info("[STORE][load_defaults] reason=missing path=%s", self.path)
            return default_coins(self.defaults)

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"), parse_float=Decimal)
        except (OSError, ValueError) as exc:
            logger.warning("[STORE][load_defaults] reason=unreadable path=%s error=%s", self.path, exc)
            return default_coins(self.defaults)

        if not isinstance(raw, list) or not raw:
            logger.warning("[STORE][load_defaults] reason=empty_or_not_array path=%s", self.path)
            return default_coins(self.defaults)

        try:
            coins = [SavedCoin.model_validate(entry) for entry in raw]
        except ValidationError as exc:
            logger.warning(
                "[STORE][load_defaults] reason=invalid_entry path=%s errors=%d", self.path, exc.error_count()
            )
            return default_coins(self.defaults)

        logger.info("[STORE][load] count=%d path=%s", len(coins), self.path)
        return coins

    def save(self, coins: Iterable[SavedCoin]) -> bool:
        rows = [coin.model_dump(mode="json", by_alias=True) for coin in coins]
        body = _PRICE_TEXT.sub(r"\1\2", json.dumps(rows, indent=2, ensure_ascii=False))

        tmp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".coins_", suffix=".tmp", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as exc:
            logger.warning("[STORE][save_error] path=%s error=%s", self.path, exc)
            return False
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

        logger.debug("[STORE][save] count=%d path=%s", len(rows), self.path)
        return True
