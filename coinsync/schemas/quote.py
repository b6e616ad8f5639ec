from decimal import Decimal

from pydantic import BaseModel, Field


class QuoteResult(BaseModel):
    prices: dict[str, Decimal] = Field(default_factory=dict)
    failed_ids: list[str] = Field(default_factory=list)
    total_failure: bool = False

    @property
    def requested_count(self) -> int:
        return len(self.prices) + len(self.failed_ids)
