"""
test_variance.py — Tests for services/variance.py

Variance against the three baselines, trend banding and the per-supplier
aggregate rollup.

Called by: pytest
Depends on: quotemaster/services/variance.py
"""

import math
import random
from decimal import Decimal

from quotemaster.services.variance import (
    SupplierAggregate,
    comparison_block,
    compute_variance,
    safe_percentage,
    variance_trend,
)

D = Decimal


def test_compute_variance():
    v = compute_variance("110", "100")
    assert v.difference == D("10")
    assert v.percentage == 10.0
    assert v.to_dict() == {"difference": 10.0, "percentage": 10.0}


def test_zero_baseline_gives_zero_percentage():
    assert compute_variance("50", "0").percentage == 0.0
    assert compute_variance("50", None).percentage == 0.0


def test_percentage_never_nan_or_infinite():
    rng = random.Random(1234)
    specials = [0, -1, None, "nan", "inf", float("nan"), float("inf"), 1e-12]
    for _ in range(1000):
        current = rng.choice([rng.uniform(-1e9, 1e9), rng.choice(specials)])
        baseline = rng.choice([rng.uniform(-1e9, 1e9), rng.choice(specials)])
        pct = safe_percentage(current, baseline)
        assert math.isfinite(pct)
        assert math.isfinite(compute_variance(current, baseline).percentage)


def test_safe_percentage_rounds_to_two_decimals():
    assert safe_percentage(1, 3) == 33.33


def test_variance_trend_band():
    assert variance_trend(0.5) == "stable"
    assert variance_trend(-0.5) == "stable"
    assert variance_trend(0.51) == "up"
    assert variance_trend(-0.51) == "down"
    assert variance_trend(None) == "stable"
    assert variance_trend(2.0, band=5) == "stable"


def _aggregate():
    return SupplierAggregate(supplier_id=1, supplier_code="SUP-A")


def test_aggregate_totals():
    agg = _aggregate()
    agg.add_line(1, D("10"), D("90"), D("100"), D("95"))
    agg.add_line(2, D("2"), D("50"), D("50"), D("40"))
    assert agg.product_count == 2
    assert agg.total_current_value == D("1000")
    assert agg.total_initial_value == D("1100")
    assert agg.total_base_value == D("1030")
    assert agg.variance_vs_initial.difference == D("-100")


def test_aggregate_without_previous_data():
    agg = _aggregate()
    agg.add_line(1, D("10"), D("90"), D("100"), D("95"))
    assert agg.has_previous_data is False
    assert agg.variance_vs_previous is None
    data = agg.to_dict()
    assert data["has_previous_data"] is False
    assert data["total_previous_value"] is None
    assert data["variance_vs_previous"] is None


def test_previous_variance_only_counts_products_with_history():
    agg = _aggregate()
    agg.add_line(1, D("10"), D("90"), D("100"), D("95"), previous_price=D("100"))
    agg.add_line(2, D("10"), D("500"), D("500"), D("500"))
    v = agg.variance_vs_previous
    assert v.difference == D("-100")
    assert v.percentage == -10.0


def test_catalog_variance():
    agg = _aggregate()
    agg.add_line(1, D("1"), D("110"), D("110"), D("110"), catalog_price=D("100"))
    assert agg.variance_vs_catalog.percentage == 10.0
    assert agg.to_dict()["total_catalog_value"] == 100.0


def test_comparison_block_without_data():
    assert comparison_block(10, 0, flag="has_previous_data", has_data=False) == {
        "difference": 0.0, "percentage": 0.0, "has_previous_data": False,
    }
    assert comparison_block(110, 100, flag="has_base_data")["has_base_data"] is True
