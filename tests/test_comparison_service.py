"""
test_comparison_service.py — Tests for services/comparison_service.py

End-to-end matrix assembly against the in-memory DB: best price per
product, zero-quote products, excluded products, previous-period
variance, region scoping and cancellation.

Called by: pytest
Depends on: quotemaster/services/comparison_service.py, tests/conftest.py
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from quotemaster.models import Product, QuoteItem
from quotemaster.roles import ROLE_PERMISSIONS
from quotemaster.services.access_scope import UNRESTRICTED, build_access_scope
from quotemaster.services.comparison_service import (
    EXCLUDED_MISSING_QUANTITY,
    ComparisonCancelled,
    ComparisonFilters,
    get_categories_for_period_and_region,
    get_comparison_matrix,
    get_quotation_summary,
    get_regions_for_period,
)
from quotemaster.services.permissions import Membership
from quotemaster.services.storage import QuotationRepository

PERIOD = "2024-03-01"
HANOI = "Hà Nội"
HCM = "TP.HCM"


@pytest.fixture()
def repo(db_session):
    return QuotationRepository(db_session)


@pytest.fixture()
def two_suppliers(make_quotation, supplier_a, supplier_b, rice):
    """Rice quoted by A at 100,000 and B at 95,000 (VAT 10 %)."""
    qa = make_quotation(supplier_a, [(rice, "100000", "10")])
    qb = make_quotation(supplier_b, [(rice, "95000", "10")])
    return qa, qb


def _matrix(repo, region=HANOI, scope=UNRESTRICTED, **kw):
    return get_comparison_matrix(repo, ComparisonFilters(period=PERIOD, region=region, **kw), scope)


def _row(matrix, code):
    return next(r for r in matrix["products"] if r["product_code"] == code)


def test_basic_comparison(repo, two_suppliers, supplier_b):
    row = _row(_matrix(repo), "P-RICE")
    assert row["quantity"] == 10.0
    assert row["quantity_source"] == "base_quantity"
    assert row["best_supplier_id"] == supplier_b.id
    assert row["best_price"] == 1045000.0
    cells = {c["supplier_code"]: c for c in row["suppliers"]}
    assert cells["SUP-A"]["total_price_with_vat"] == 1100000.0
    assert cells["SUP-A"]["vat_amount"] == 100000.0
    assert cells["SUP-B"]["is_best"] is True
    assert cells["SUP-A"]["is_best"] is False


def test_negotiated_price_changes_winner(db_session, repo, two_suppliers, supplier_a):
    qa, _ = two_suppliers
    item = db_session.query(QuoteItem).filter_by(quotation_id=qa.id).one()
    item.negotiated_price = Decimal("90000")
    db_session.commit()
    row = _row(_matrix(repo), "P-RICE")
    assert row["best_supplier_id"] == supplier_a.id
    assert row["best_price"] == 990000.0
    cell = next(c for c in row["suppliers"] if c["supplier_code"] == "SUP-A")
    assert cell["price_source"] == "negotiated"


def test_at_most_one_best_per_product(repo, make_quotation, supplier_a, supplier_b, rice):
    make_quotation(supplier_a, [(rice, "100000", "10")])
    make_quotation(supplier_b, [(rice, "100000", "10")])
    row = _row(_matrix(repo), "P-RICE")
    assert sum(c["is_best"] for c in row["suppliers"]) == 1
    assert row["best_supplier_id"] == supplier_a.id  # tie → lowest code


def test_products_without_quotes_are_listed(repo, two_suppliers, fish_sauce):
    matrix = _matrix(repo)
    sauce = _row(matrix, "P-SAUCE")
    assert sauce["has_quotes"] is False
    assert sauce["best_supplier_id"] is None
    coverage = {s["supplier_code"]: s["coverage_percentage"] for s in matrix["suppliers"]}
    assert coverage == {"SUP-A": 50.0, "SUP-B": 50.0}
    assert matrix["overview_kpis"]["unquoted_products"] == 1


def test_inactive_supplier_never_wins(db_session, repo, two_suppliers, supplier_a, supplier_b):
    supplier_b.status = "inactive"
    db_session.commit()
    matrix = _matrix(repo)
    row = _row(matrix, "P-RICE")
    assert row["best_supplier_id"] == supplier_a.id
    assert [c["supplier_code"] for c in row["suppliers"]] == ["SUP-A"]
    assert [s["supplier_code"] for s in matrix["suppliers"]] == ["SUP-A"]


def test_soft_deleted_supplier_is_hidden(db_session, repo, two_suppliers, supplier_a, supplier_b):
    supplier_b.deleted_at = datetime.now(timezone.utc)
    db_session.commit()
    matrix = _matrix(repo)
    assert _row(matrix, "P-RICE")["best_supplier_id"] == supplier_a.id
    assert supplier_b.id not in {s["supplier_id"] for s in matrix["suppliers"]}


def test_zero_price_does_not_count_as_quoted(repo, make_quotation, supplier_a, supplier_b, rice):
    make_quotation(supplier_a, [(rice, "0", "10")])
    make_quotation(supplier_b, [(rice, "95000", "10")])
    matrix = _matrix(repo)
    suppliers = {s["supplier_code"]: s for s in matrix["suppliers"]}
    assert suppliers["SUP-A"]["quoted_products"] == 0
    assert suppliers["SUP-A"]["coverage_percentage"] == 0.0
    assert suppliers["SUP-B"]["coverage_percentage"] == 100.0
    assert _row(matrix, "P-RICE")["best_supplier_id"] == supplier_b.id


def test_regional_products_only_show_in_their_region(db_session, repo, make_quotation, supplier_a, rice):
    lotus = Product(
        product_code="P-LOTUS", name="Lotus seeds", unit="kg", category="Dry goods",
        base_quantity=Decimal("2"), region=HCM,
    )
    db_session.add(lotus)
    db_session.commit()
    make_quotation(supplier_a, [(rice, "100000", "10"), (lotus, "200000", "10")])
    make_quotation(supplier_a, [(lotus, "180000", "10")], region=HCM)

    hanoi = _matrix(repo)
    assert [r["product_code"] for r in hanoi["products"]] == ["P-RICE"]
    assert hanoi["suppliers"][0]["coverage_percentage"] == 100.0

    hcm = _matrix(repo, region=HCM)
    assert {r["product_code"] for r in hcm["products"]} == {"P-LOTUS", "P-RICE"}
    assert _row(hcm, "P-LOTUS")["region"] == HCM
    assert _row(hcm, "P-LOTUS")["best_price"] == 396000.0


def test_product_without_quantity_is_excluded(db_session, repo, make_quotation, supplier_a):
    loose = Product(product_code="P-LOOSE", name="Herbs", unit="bunch", category="Vegetables")
    db_session.add(loose)
    db_session.commit()
    make_quotation(supplier_a, [(loose, "5000", "0")])
    matrix = _matrix(repo)
    assert matrix["products"] == []
    [excluded] = matrix["excluded_products"]
    assert excluded["product_code"] == "P-LOOSE"
    assert excluded["reason"] == EXCLUDED_MISSING_QUANTITY
    assert matrix["overview_kpis"]["excluded_products"] == 1


def test_kitchen_demand_drives_quantity(repo, two_suppliers, add_demand, hanoi_kitchen):
    add_demand(hanoi_kitchen, two_suppliers[0].items[0].product, "20")
    row = _row(_matrix(repo, team_id=hanoi_kitchen.id), "P-RICE")
    assert row["quantity"] == 20.0
    assert row["quantity_source"] == "kitchen_demand"
    assert row["best_price"] == 2090000.0


def test_missing_previous_period(repo, two_suppliers):
    matrix = _matrix(repo)
    kpis = matrix["overview_kpis"]
    assert kpis["comparison_vs_previous"]["has_previous_data"] is False
    [region] = matrix["grouped_overview"]["regions"]
    for perf in region["categories"][0]["supplier_performances"]:
        assert perf["has_previous_data"] is False
        assert perf["variance_vs_previous"] is None


def test_previous_period_variance(repo, two_suppliers, add_price_history, supplier_b, rice):
    add_price_history(rice, supplier_b, "100000")
    matrix = _matrix(repo)
    row = _row(matrix, "P-RICE")
    cell = next(c for c in row["suppliers"] if c["supplier_code"] == "SUP-B")
    assert cell["previous_price"] == 100000.0
    assert cell["variance_percentage"] == -5.0
    assert cell["variance_trend"] == "down"
    prev = matrix["overview_kpis"]["comparison_vs_previous"]
    assert prev["has_previous_data"] is True
    assert prev["percentage"] == -5.0


def test_supplier_performance_baselines(repo, two_suppliers):
    [region] = _matrix(repo)["grouped_overview"]["regions"]
    assert region["region"] == HANOI
    [category] = region["categories"]
    assert category["category"] == "Dry goods"
    perf = {p["supplier_code"]: p for p in category["supplier_performances"]}
    # base = cheapest opening bid (95,000) × 10
    assert perf["SUP-A"]["total_base_value"] == 950000.0
    assert perf["SUP-A"]["variance_vs_base"]["percentage"] == 5.26
    assert perf["SUP-B"]["variance_vs_base"]["difference"] == 0.0
    assert perf["SUP-A"]["variance_vs_catalog"]["percentage"] == 2.04


def test_kpis_against_catalog_base(repo, two_suppliers):
    kpis = _matrix(repo)["overview_kpis"]
    assert kpis["total_current_value"] == 950000.0
    assert kpis["comparison_vs_base"]["has_base_data"] is True
    assert kpis["comparison_vs_base"]["percentage"] == -3.06


def test_lifecycle_metadata_locks_approved(repo, make_quotation, supplier_a, supplier_b, rice):
    make_quotation(supplier_a, [(rice, "100000", "10")], status="approved")
    make_quotation(supplier_b, [(rice, "95000", "10")], status="negotiation")
    suppliers = {s["supplier_code"]: s for s in _matrix(repo)["suppliers"]}
    assert suppliers["SUP-A"]["is_locked"] is True
    assert suppliers["SUP-A"]["quotation_status"] == "approved"
    assert suppliers["SUP-B"]["is_locked"] is False
    assert suppliers["SUP-B"]["quotation_last_updated"] is not None


def test_output_is_sorted(repo, make_quotation, supplier_a, supplier_b, rice, fish_sauce):
    make_quotation(supplier_b, [(rice, "1", "0"), (fish_sauce, "1", "0")])
    make_quotation(supplier_a, [(fish_sauce, "2", "0")])
    matrix = _matrix(repo)
    assert [r["product_code"] for r in matrix["products"]] == ["P-RICE", "P-SAUCE"]
    assert [s["supplier_code"] for s in matrix["suppliers"]] == ["SUP-A", "SUP-B"]
    cats = [c["category"] for c in matrix["grouped_overview"]["regions"][0]["categories"]]
    assert cats == sorted(cats)


def test_category_filter(repo, make_quotation, supplier_a, rice, fish_sauce):
    make_quotation(supplier_a, [(rice, "1", "0"), (fish_sauce, "1", "0")])
    matrix = _matrix(repo, categories=("Condiments",))
    assert [r["product_code"] for r in matrix["products"]] == ["P-SAUCE"]


def test_other_region_quotes_are_invisible(repo, make_quotation, supplier_a, rice):
    make_quotation(supplier_a, [(rice, "100000", "10")], region=HCM)
    row = _row(_matrix(repo), "P-RICE")
    assert row["has_quotes"] is False


def test_restricted_user_requesting_other_region_gets_empty(repo, two_suppliers, hanoi_kitchen):
    scope = build_access_scope(
        ROLE_PERMISSIONS["KITCHEN_STAFF"], Membership(hanoi_kitchen.id, "KITCHEN_STAFF", HANOI)
    )
    matrix = _matrix(repo, region=HCM, scope=scope)
    assert matrix["scope_denied"] is True
    assert matrix["products"] == []
    assert matrix["suppliers"] == []


def test_restricted_user_in_own_region_sees_data(repo, two_suppliers, hanoi_kitchen):
    scope = build_access_scope(
        ROLE_PERMISSIONS["KITCHEN_STAFF"], Membership(hanoi_kitchen.id, "KITCHEN_STAFF", HANOI)
    )
    matrix = _matrix(repo, scope=scope)
    assert matrix["scope_denied"] is False
    assert len(matrix["products"]) == 1


def test_build_can_be_cancelled(repo, two_suppliers):
    with pytest.raises(ComparisonCancelled):
        get_comparison_matrix(repo, ComparisonFilters(PERIOD, HANOI), UNRESTRICTED, should_cancel=lambda: True)


def test_build_is_read_only(db_session, repo, two_suppliers):
    before = [(i.id, i.initial_price, i.negotiated_price) for i in db_session.query(QuoteItem).all()]
    _matrix(repo)
    db_session.expire_all()
    after = [(i.id, i.initial_price, i.negotiated_price) for i in db_session.query(QuoteItem).all()]
    assert before == after


# ── Summary & filters ────────────────────────────────────────────────


def test_quotation_summary(repo, make_quotation, supplier_a, supplier_b, rice):
    make_quotation(supplier_a, [(rice, "1", "0")], status="approved")
    make_quotation(supplier_b, [(rice, "1", "0")], region=HCM)
    summary = get_quotation_summary(repo, PERIOD, UNRESTRICTED)
    assert summary["total_quotations"] == 2
    assert summary["approved"] == 1
    assert summary["pending"] == 1
    assert summary["regions"] == sorted([HANOI, HCM])


def test_regions_and_categories_follow_scope(repo, make_quotation, supplier_a, supplier_b, rice, fish_sauce,
                                            hanoi_kitchen):
    make_quotation(supplier_a, [(rice, "1", "0")])
    make_quotation(supplier_b, [(fish_sauce, "1", "0")], region=HCM)
    assert get_regions_for_period(repo, PERIOD, UNRESTRICTED) == sorted([HANOI, HCM])
    scope = build_access_scope(
        ROLE_PERMISSIONS["KITCHEN_STAFF"], Membership(hanoi_kitchen.id, "KITCHEN_STAFF", HANOI)
    )
    assert get_regions_for_period(repo, PERIOD, scope) == [HANOI]
    assert get_categories_for_period_and_region(repo, PERIOD, None, scope) == ["Dry goods"]
    assert get_categories_for_period_and_region(repo, PERIOD, HCM, scope) == []
