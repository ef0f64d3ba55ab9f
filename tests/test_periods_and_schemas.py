"""
test_periods_and_schemas.py — Tests for utils/periods.py, utils helpers
and the pydantic request models.

Called by: pytest
Depends on: quotemaster/utils, quotemaster/schemas
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from quotemaster.schemas.comparison import ComparisonMatrixRequest
from quotemaster.schemas.quotations import (
    ApproveRequest,
    NegotiatedPricesRequest,
    QuotationIdsRequest,
    StatusUpdate,
)
from quotemaster.utils import money, safe_decimal, safe_int
from quotemaster.utils.periods import InvalidPeriodError, is_valid_period, validate_period


@pytest.mark.parametrize("value", ["2024-01-01", "2024-12-03"])
def test_valid_periods(value):
    assert is_valid_period(value)


@pytest.mark.parametrize("value", ["2024-1-01", "2024/01/01", "", None, "2024-01-01x", 20240101])
def test_invalid_periods(value):
    assert not is_valid_period(value)


def test_validate_period_strips():
    assert validate_period(" 2024-03-02 ") == "2024-03-02"
    with pytest.raises(InvalidPeriodError):
        validate_period("March")


def test_periods_sort_chronologically():
    assert sorted(["2024-02-01", "2023-12-02", "2024-02-02"]) == ["2023-12-02", "2024-02-01", "2024-02-02"]


def test_safe_decimal():
    assert safe_decimal(0.1) == Decimal("0.1")
    assert safe_decimal("abc") is None
    assert safe_decimal(float("nan")) is None
    assert safe_decimal("Infinity") is None


def test_money_and_safe_int():
    assert money(Decimal("1234.567")) == 1234.57
    assert money(None) == 0.0
    assert safe_int("7") == 7
    assert safe_int("x") is None


def test_matrix_request_cleans_categories():
    req = ComparisonMatrixRequest(period="2024-03-01", region=" Hà Nội ", categories=[" Dry goods", "", "Dry goods"])
    assert req.region == "Hà Nội"
    assert req.categories == ["Dry goods"]


def test_matrix_request_rejects_bad_period():
    with pytest.raises(ValidationError):
        ComparisonMatrixRequest(period="2024-03", region="Hà Nội")


def test_ids_request_dedupes_and_requires_one():
    assert QuotationIdsRequest(quotation_ids=[3, 3, 1]).quotation_ids == [3, 1]
    with pytest.raises(ValidationError):
        QuotationIdsRequest(quotation_ids=[])


def test_negotiated_prices_request():
    req = NegotiatedPricesRequest(prices={"5": "90000"})
    assert req.prices == {5: Decimal("90000")}
    with pytest.raises(ValidationError):
        NegotiatedPricesRequest(prices={})
    with pytest.raises(ValidationError):
        NegotiatedPricesRequest(prices={1: "-1"})


def test_approve_request_optional_overrides():
    assert ApproveRequest().approved_prices is None
    with pytest.raises(ValidationError):
        ApproveRequest(approved_prices={1: "-0.01"})


def test_status_update_targets():
    assert StatusUpdate(status="cancelled").status == "cancelled"
    with pytest.raises(ValidationError):
        StatusUpdate(status="pending")
