from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

CoinStatus = Literal["OK", "STALE", "ERROR"]
Price = Annotated[Decimal, Field(ge=0)]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CoinRef(BaseModel):
    id: str
    symbol: str
    name: str

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, value: str) -> str:
        return value.strip().upper()


class WatchedCoin(BaseModel):
    id: str
    symbol: str
    name: str
    last_price: Price | None = None
    last_updated_at: datetime | None = None
    status: CoinStatus = "OK"

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("last_updated_at")
    @classmethod
    def _utc_timestamp(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @model_validator(mode="after")
    def _price_and_time_together(self) -> "WatchedCoin":
        if (self.last_price is None) != (self.last_updated_at is None):
            self.last_price = None
            self.last_updated_at = None
        return self

    def set_price(self, price: Decimal, at: datetime) -> None:
        self.last_price = price
        self.last_updated_at = at
        self.status = "OK"

    def display_price(self) -> str:
        if self.last_price is None:
            return "…"
        return f"${self.last_price:,.2f}"

    def age_text(self, now: datetime | None = None) -> str:
        """Relative age of the last price, e.g. "just now" or "5m ago"."""
        if self.last_updated_at is None:
            return "–"
        ref = _as_utc(now) or datetime.now(timezone.utc)
        seconds = (ref - self.last_updated_at).total_seconds()
        if seconds < 60:
            return "just now"
        if seconds < 3600:
            return f"{int(seconds // 60)}m ago"
        return f"{int(seconds // 3600)}h ago"

    def to_saved(self) -> "SavedCoin":
        return SavedCoin(
            id=self.id,
            symbol=self.symbol,
            name=self.name,
            last_price=self.last_price,
            last_updated_at=self.last_updated_at,
        )

    @classmethod
    def from_saved(cls, saved: "SavedCoin") -> "WatchedCoin":
        return cls(
            id=saved.id,
            symbol=saved.symbol,
            name=saved.name,
            last_price=saved.last_price,
            last_updated_at=saved.last_updated_at,
        )

    @classmethod
    def from_ref(cls, ref: CoinRef) -> "WatchedCoin":
        return cls(id=ref.id, symbol=ref.symbol, name=ref.name)


class SavedCoin(BaseModel):
    """One entry of the persisted watch-list file (camelCase on disk)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    symbol: str
    name: str
    last_price: Price | None = Field(default=None, alias="lastPrice")
    last_updated_at: datetime | None = Field(default=None, alias="lastUpdatedAt")

    @field_validator("last_updated_at")
    @classmethod
    def _utc_timestamp(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_serializer("last_price", when_used="json")
    def _price_as_text(self, value: Decimal | None) -> str | None:
        # plain notation keeps every digit; CoinStore writes it as a bare JSON number
        return None if value is None else format(value, "f")
