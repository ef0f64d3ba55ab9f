"""
schemas/quotations.py — Pydantic models for quotation workflow endpoints

Business Rules:
- Batch requests need at least one quotation id (duplicates removed)
- Negotiated / approved price overrides must be >= 0
- Negotiated price map cannot be empty
- Status updates only target negotiation, approved or cancelled

Called by: routers/quotations.py
Depends on: pydantic
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, field_validator


def _non_negative(prices: dict[int, Decimal] | None) -> dict[int, Decimal] | None:
    if prices is None:
        return None
    for item_id, price in prices.items():
        if not price.is_finite() or price < 0:
            raise ValueError(f"Price for item {item_id} must be >= 0")
    return prices


class QuotationIdsRequest(BaseModel):
    quotation_ids: list[int]

    @field_validator("quotation_ids")
    @classmethod
    def ids_not_empty(cls, v: list[int]) -> list[int]:
        unique = list(dict.fromkeys(v))
        if not unique:
            raise ValueError("At least one quotation id is required")
        return unique


class NegotiatedPricesRequest(BaseModel):
    prices: dict[int, Decimal]

    @field_validator("prices")
    @classmethod
    def prices_valid(cls, v: dict[int, Decimal]) -> dict[int, Decimal]:
        if not v:
            raise ValueError("At least one negotiated price is required")
        return _non_negative(v)


class ApproveRequest(BaseModel):
    approved_prices: dict[int, Decimal] | None = None

    @field_validator("approved_prices")
    @classmethod
    def prices_valid(cls, v: dict[int, Decimal] | None) -> dict[int, Decimal] | None:
        return _non_negative(v)


class CancelRequest(BaseModel):
    reason: str | None = None


class StatusUpdate(BaseModel):
    status: Literal["negotiation", "approved", "cancelled"]
