"""
schemas/comparison.py — Pydantic models for comparison matrix endpoints

Business Rules:
- period must match YYYY-MM-XX
- region is required and non-blank for the matrix (one region slice)
- categories are stripped; blanks dropped; duplicates removed in order

Called by: routers/comparison.py
Depends on: pydantic, utils/periods.py
"""

from __future__ import annotations

from pydantic import BaseModel, field_validator

from ..utils.periods import validate_period


class ComparisonMatrixRequest(BaseModel):
    period: str
    region: str
    categories: list[str] = []
    team_id: int | None = None

    @field_validator("period")
    @classmethod
    def period_format(cls, v: str) -> str:
        return validate_period(v)

    @field_validator("region")
    @classmethod
    def region_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Region is required")
        return v

    @field_validator("categories")
    @classmethod
    def clean_categories(cls, v: list[str]) -> list[str]:
        seen = []
        for c in v:
            c = c.strip()
            if c and c not in seen:
                seen.append(c)
        return seen
