import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


def _default_data_dir() -> Path:
    return Path.home() / ".coinsync"


class Settings(BaseModel):
    provider: Literal["binance", "coingecko"] = "binance"
    refresh_interval_sec: float = Field(default=300.0, ge=30, le=3600)
    request_delay_sec: float = Field(default=1.5, ge=0)
    timeout_sec: float = Field(default=10.0, gt=0)
    data_dir: Path = Field(default_factory=_default_data_dir)
    base_url: str | None = None

    @property
    def coins_path(self) -> Path:
        return self.data_dir / "coins.json"

    @classmethod
    def from_env(cls) -> "Settings":
        raw = {
            "provider": os.getenv("COINSYNC_PROVIDER"),
            "refresh_interval_sec": os.getenv("COINSYNC_REFRESH_INTERVAL_SEC"),
            "request_delay_sec": os.getenv("COINSYNC_REQUEST_DELAY_SEC"),
            "timeout_sec": os.getenv("COINSYNC_TIMEOUT_SEC"),
            "data_dir": os.getenv("COINSYNC_DATA_DIR"),
            "base_url": os.getenv("COINSYNC_BASE_URL"),
        }
        # unset or blank env vars fall back to the field defaults
        values = {k: v.strip() for k, v in raw.items() if v is not None and v.strip()}
        if "provider" in values:
            values["provider"] = values["provider"].lower()
        if "data_dir" in values:
            values["data_dir"] = Path(values["data_dir"]).expanduser()
        return cls.model_validate(values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
