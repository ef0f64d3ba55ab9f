"""
test_dashboard.py — Tests for services/dashboard_service.py

Called by: pytest
Depends on: quotemaster/services/dashboard_service.py, tests/conftest.py
"""

import pytest

from quotemaster.roles import ROLE_PERMISSIONS
from quotemaster.services.access_scope import UNRESTRICTED, build_access_scope
from quotemaster.services.dashboard_service import get_dashboard_stats, get_price_trends
from quotemaster.services.permissions import Membership
from quotemaster.services.storage import QuotationRepository

HANOI = "Hà Nội"
HCM = "TP.HCM"
BUYER = ROLE_PERMISSIONS["PROCUREMENT_MANAGER"]


@pytest.fixture()
def repo(db_session):
    return QuotationRepository(db_session)


@pytest.fixture()
def hanoi_scope(hanoi_kitchen):
    return build_access_scope(
        ROLE_PERMISSIONS["KITCHEN_MANAGER"], Membership(hanoi_kitchen.id, "KITCHEN_MANAGER", HANOI)
    )


def test_entity_counts(repo, hanoi_kitchen, hcm_kitchen, head_office, rice, fish_sauce, supplier_a):
    stats = get_dashboard_stats(repo, BUYER, UNRESTRICTED)
    assert stats["total_kitchens"] == 2
    assert stats["total_products"] == 2
    assert stats["total_suppliers"] == 1


def test_quotation_count_is_region_scoped(repo, make_quotation, supplier_a, supplier_b, rice, hanoi_scope):
    make_quotation(supplier_a, [(rice, "1", "0")], region=HANOI)
    make_quotation(supplier_b, [(rice, "1", "0")], region=HCM)
    assert get_dashboard_stats(repo, BUYER, UNRESTRICTED)["total_quotations"] == 2
    assert get_dashboard_stats(repo, ROLE_PERMISSIONS["KITCHEN_MANAGER"], hanoi_scope)["total_quotations"] == 1


def test_quotation_count_hidden_without_view(repo, make_quotation, supplier_a, rice):
    make_quotation(supplier_a, [(rice, "1", "0")])
    assert get_dashboard_stats(repo, ROLE_PERMISSIONS["HR_MANAGER"], UNRESTRICTED)["total_quotations"] == 0


@pytest.fixture()
def two_periods(add_price_history, supplier_a, supplier_b, rice, fish_sauce):
    add_price_history(rice, supplier_a, "100000", period="2024-02-01")
    add_price_history(rice, supplier_a, "110000", period="2024-03-01")
    add_price_history(fish_sauce, supplier_b, "30000", period="2024-02-01")
    add_price_history(fish_sauce, supplier_b, "27000", period="2024-03-01")


def test_price_trends(repo, two_periods):
    trends = get_price_trends(repo, BUYER, UNRESTRICTED)
    assert trends["current_period"] == "2024-03-01"
    assert trends["previous_period"] == "2024-02-01"
    [up] = trends["price_increases"]
    [down] = trends["price_decreases"]
    assert up["product_code"] == "P-RICE"
    assert up["price_change_percentage"] == 10.0
    assert down["product_code"] == "P-SAUCE"
    assert down["price_change_percentage"] == -10.0


def test_price_trends_single_period(repo, add_price_history, supplier_a, rice):
    add_price_history(rice, supplier_a, "100000", period="2024-03-01")
    trends = get_price_trends(repo, BUYER, UNRESTRICTED)
    assert trends["current_period"] == "2024-03-01"
    assert trends["previous_period"] is None
    assert trends["price_increases"] == []


def test_price_trends_need_analytics(repo, two_periods):
    trends = get_price_trends(repo, ROLE_PERMISSIONS["KITCHEN_STAFF"], UNRESTRICTED)
    assert trends["price_increases"] == [] and trends["price_decreases"] == []


def test_price_trends_restricted_other_region(repo, two_periods, hanoi_scope):
    trends = get_price_trends(repo, ROLE_PERMISSIONS["KITCHEN_MANAGER"], hanoi_scope, region=HCM)
    assert trends["current_period"] is None
