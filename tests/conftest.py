"""
conftest.py — Shared Test Fixtures for QuoteMaster

Provides an in-memory SQLite database, FastAPI TestClient with auth
overrides, and factory fixtures for the core records (users with team
roles, kitchens, catalog, quotations).

Business Rules:
- All tests run against an isolated in-memory DB
- Auth is overridden so tests don't need a session cookie
- Each test function gets a fresh schema

Called by: all test files via pytest autodiscovery
Depends on: quotemaster.models (Base), quotemaster.database (get_db),
            quotemaster.dependencies (require_user)
"""

import os
os.environ["TESTING"] = "1"  # Must be set before importing quotemaster modules
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from quotemaster.models import (
    Base, KitchenPeriodDemand, PriceHistory, Product, Quotation, QuoteItem,
    Supplier, SupplierServiceScope, Team, TeamMember, User,
)

PERIOD = "2024-03-01"
PREVIOUS_PERIOD = "2024-02-01"
HANOI = "Hà Nội"
HCM = "TP.HCM"

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default — turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _add(db: Session, obj):
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@pytest.fixture()
def hanoi_kitchen(db_session: Session) -> Team:
    return _add(db_session, Team(name="Bếp Hà Nội 01", team_code="K-HN-01", region=HANOI, team_type="KITCHEN"))


@pytest.fixture()
def hcm_kitchen(db_session: Session) -> Team:
    return _add(db_session, Team(name="Bếp Sài Gòn 01", team_code="K-HCM-01", region=HCM, team_type="KITCHEN"))


@pytest.fixture()
def head_office(db_session: Session) -> Team:
    """Office team without a region."""
    return _add(db_session, Team(name="Head Office", team_code="HO", region=None, team_type="OFFICE"))


@pytest.fixture()
def make_user(db_session: Session):
    """Factory: user with one membership per (team, role) pair."""
    counter = {"n": 0}

    def _make(*memberships, status="active") -> User:
        counter["n"] += 1
        user = _add(db_session, User(
            email=f"user{counter['n']}@quotemaster.test",
            name=f"Test User {counter['n']}",
            status=status,
            created_at=datetime.now(timezone.utc),
        ))
        for team, role in memberships:
            db_session.add(TeamMember(user_id=user.id, team_id=team.id, role=role))
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def procurement_user(make_user, head_office) -> User:
    """Unrestricted buyer: negotiates and approves everywhere."""
    return make_user((head_office, "PROCUREMENT_MANAGER"))


@pytest.fixture()
def kitchen_user(make_user, hanoi_kitchen) -> User:
    """KITCHEN_STAFF on the Hà Nội kitchen (region-locked, view only)."""
    return make_user((hanoi_kitchen, "KITCHEN_STAFF"))


@pytest.fixture()
def supplier_a(db_session: Session) -> Supplier:
    return _add(db_session, Supplier(supplier_code="SUP-A", name="Supplier A"))


@pytest.fixture()
def supplier_b(db_session: Session) -> Supplier:
    return _add(db_session, Supplier(supplier_code="SUP-B", name="Supplier B"))


@pytest.fixture()
def rice(db_session: Session) -> Product:
    return _add(db_session, Product(
        product_code="P-RICE", name="Jasmine rice", unit="kg", category="Dry goods",
        base_price=Decimal("98000"), base_quantity=Decimal("10"),
    ))


@pytest.fixture()
def fish_sauce(db_session: Session) -> Product:
    return _add(db_session, Product(
        product_code="P-SAUCE", name="Fish sauce", unit="l", category="Condiments",
        base_quantity=Decimal("4"),
    ))


@pytest.fixture()
def make_quotation(db_session: Session):
    """Factory: quotation with items given as (product, initial_price, vat) tuples."""
    counter = {"n": 0}

    def _make(supplier, items, region=HANOI, period=PERIOD, status="pending") -> Quotation:
        counter["n"] += 1
        q = Quotation(
            quotation_code=f"Q-{counter['n']:04d}",
            period=period,
            supplier_id=supplier.id,
            region=region,
            status=status,
            quote_date=datetime.now(timezone.utc),
        )
        db_session.add(q)
        db_session.flush()
        for product, price, vat in items:
            db_session.add(QuoteItem(
                quotation_id=q.id,
                product_id=product.id,
                initial_price=Decimal(str(price)) if price is not None else None,
                vat_percentage=Decimal(str(vat)),
            ))
        db_session.commit()
        db_session.refresh(q)
        return q

    return _make


@pytest.fixture()
def add_price_history(db_session: Session):
    def _add_history(product, supplier, price, region=HANOI, period=PREVIOUS_PERIOD):
        return _add(db_session, PriceHistory(
            product_id=product.id, supplier_id=supplier.id, period=period,
            price=Decimal(str(price)), price_type="approved", region=region,
        ))

    return _add_history


@pytest.fixture()
def add_demand(db_session: Session):
    def _add_demand(team, product, quantity, period=PERIOD):
        return _add(db_session, KitchenPeriodDemand(
            team_id=team.id, product_id=product.id, period=period,
            quantity=Decimal(str(quantity)), unit=product.unit,
        ))

    return _add_demand


@pytest.fixture()
def add_service_scope(db_session: Session):
    def _add_scope(supplier, team, is_active=True):
        return _add(db_session, SupplierServiceScope(supplier_id=supplier.id, team_id=team.id, is_active=is_active))

    return _add_scope


@pytest.fixture()
def client_for(db_session: Session):
    """Factory: TestClient authenticated as the given user."""
    from quotemaster.database import get_db
    from quotemaster.dependencies import require_user
    from quotemaster.main import app

    def _make(user: User) -> TestClient:
        def _override_db():
            yield db_session

        app.dependency_overrides[get_db] = _override_db
        app.dependency_overrides[require_user] = lambda: user
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture()
def client(client_for, procurement_user) -> TestClient:
    """TestClient authenticated as the unrestricted procurement user."""
    return client_for(procurement_user)
