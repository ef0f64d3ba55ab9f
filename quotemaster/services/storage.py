"""
storage.py — Quotation Repository (storage query & command interface)

The only place the engine touches the database. Every row is parsed into a
typed record before it leaves this module; malformed rows raise
StorageRowError instead of leaking loosely-typed data into the engine.

Business Rules:
- Cancelled quotations never contribute quote lines
- Soft-deleted products / teams are invisible
- Inactive or soft-deleted suppliers never reach the comparison matrix or
  the price list
- A product with a region only shows up in that region; NULL = every region
- Previous approved period = latest PriceHistory period (price_type
  'approved') strictly before the requested period, in the same region
- approve_quotation_batch is one transaction per quotation: conditional
  status flip (pending|negotiation → approved), approved_price frozen on
  every item, one PriceHistory row per item. Status precondition failing at
  write time → CONFLICT; any other failure rolls everything back and raises
- Single-row lookups return Found(value) or NOT_FOUND, never raise

Called by: services/comparison_service.py, services/quotation_service.py,
           services/price_list_service.py, services/dashboard_service.py,
           services/permissions.py, dependencies.py
Depends on: models, services/pricing.py (records), services/permissions.py
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from ..config import settings
from ..models import (
    KitchenPeriodDemand,
    PriceHistory,
    Product,
    Quotation,
    QuoteItem,
    Supplier,
    SupplierServiceScope,
    Team,
    TeamMember,
    User,
)
from ..utils import safe_decimal
from ..utils.periods import InvalidPeriodError, validate_period
from .permissions import Membership
from .pricing import Demand, ProductRecord, QuoteLine

log = logging.getLogger("quotemaster.storage")

OPEN_STATUSES = ("pending", "negotiation")
PRICE_TYPE_APPROVED = "approved"

WRITE_OK = "ok"
WRITE_CONFLICT = "conflict"


class StorageRowError(ValueError):
    """A stored row failed validation at the storage boundary."""


# ── Result types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Found:
    value: object


class _NotFound:
    def __bool__(self):
        return False

    def __repr__(self):
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


@dataclass(frozen=True)
class QuotationHeader:
    id: int
    quotation_code: str
    period: str
    region: str
    status: str
    supplier_id: int
    supplier_code: str
    supplier_name: str
    updated_at: datetime | None = None


@dataclass(frozen=True)
class TeamRecord:
    id: int
    name: str
    region: str | None
    team_type: str
    team_code: str | None = None


@dataclass
class PreviousPrices:
    """Approved prices from the latest prior period (empty when none)."""

    period: str | None = None
    by_pair: dict = field(default_factory=dict)  # (product_id, supplier_id) → Decimal
    best_by_product: dict = field(default_factory=dict)  # product_id → Decimal

    @property
    def has_data(self) -> bool:
        return bool(self.by_pair)


# ── Row parsing ──────────────────────────────────────────────────────


def _dec(value, name, row_ref):
    if value is None:
        return None
    d = safe_decimal(value)
    if d is None:
        raise StorageRowError(f"{row_ref}: {name} is not a number: {value!r}")
    return d


def _parse_line(item: QuoteItem, quotation: Quotation, supplier: Supplier) -> QuoteLine:
    ref = f"quote_items#{item.id}"
    if item.product_id is None or supplier.id is None:
        raise StorageRowError(f"{ref}: missing product or supplier id")
    try:
        return QuoteLine(
            item_id=item.id,
            quotation_id=quotation.id,
            product_id=item.product_id,
            supplier_id=supplier.id,
            supplier_code=supplier.supplier_code,
            supplier_name=supplier.name or "",
            initial_price=_dec(item.initial_price, "initial_price", ref),
            negotiated_price=_dec(item.negotiated_price, "negotiated_price", ref),
            approved_price=_dec(item.approved_price, "approved_price", ref),
            vat_rate=_dec(item.vat_percentage, "vat_percentage", ref) or Decimal("0"),
            quotation_status=quotation.status,
            region=quotation.region,
            period=quotation.period,
            currency=item.currency or settings.default_currency,
            quotation_updated_at=quotation.updated_at,
        )
    except StorageRowError:
        raise
    except (ValueError, TypeError, InvalidOperation) as e:
        raise StorageRowError(f"{ref}: {e}") from e


def _parse_product(p: Product) -> ProductRecord:
    ref = f"products#{p.id}"
    if not p.product_code:
        raise StorageRowError(f"{ref}: missing product_code")
    return ProductRecord(
        id=p.id,
        product_code=p.product_code,
        name=p.name,
        unit=p.unit,
        category=p.category,
        specification=p.specification,
        region=p.region,
        base_price=_dec(p.base_price, "base_price", ref),
        base_quantity=_dec(p.base_quantity, "base_quantity", ref),
    )


def _parse_demand(d: KitchenPeriodDemand) -> Demand:
    ref = f"kitchen_period_demands#{d.id}"
    try:
        return Demand(
            team_id=d.team_id,
            product_id=d.product_id,
            period=validate_period(d.period),
            quantity=_dec(d.quantity, "quantity", ref),
        )
    except StorageRowError:
        raise
    except (InvalidPeriodError, ValueError) as e:
        raise StorageRowError(f"{ref}: {e}") from e


def _header(q: Quotation, s: Supplier) -> QuotationHeader:
    return QuotationHeader(
        id=q.id,
        quotation_code=q.quotation_code,
        period=q.period,
        region=q.region,
        status=q.status,
        supplier_id=s.id,
        supplier_code=s.supplier_code,
        supplier_name=s.name or "",
        updated_at=q.updated_at,
    )


def _active_supplier():
    return (Supplier.status == "active", Supplier.deleted_at.is_(None))


def _product_in_region(region):
    return or_(Product.region.is_(None), Product.region == region)


# ── Repository ───────────────────────────────────────────────────────


class QuotationRepository:
    def __init__(self, db: Session):
        self.db = db

    # -- catalog --

    def fetch_products(self, categories=None, region: str | None = None) -> list[ProductRecord]:
        q = self.db.query(Product).filter(Product.deleted_at.is_(None), Product.status == "active")
        if categories:
            q = q.filter(Product.category.in_(categories))
        if region is not None:
            q = q.filter(_product_in_region(region))
        return [_parse_product(p) for p in q.order_by(Product.product_code).all()]

    def fetch_product_base_quantities(self, product_ids) -> dict:
        ids = list(product_ids)
        if not ids:
            return {}
        rows = self.db.query(Product.id, Product.base_quantity).filter(Product.id.in_(ids)).all()
        return {pid: _dec(bq, "base_quantity", f"products#{pid}") for pid, bq in rows}

    def fetch_categories(self) -> list[str]:
        rows = (
            self.db.query(Product.category)
            .filter(Product.deleted_at.is_(None), Product.category.isnot(None))
            .distinct()
            .all()
        )
        return sorted(r[0] for r in rows)

    # -- quotations --

    def fetch_quote_items(self, period: str, region: str | None, categories=None) -> list[QuoteLine]:
        """Non-cancelled quote lines of active suppliers for a period (and region, if given)."""
        q = (
            self.db.query(QuoteItem, Quotation, Supplier)
            .join(Quotation, QuoteItem.quotation_id == Quotation.id)
            .join(Supplier, Quotation.supplier_id == Supplier.id)
            .join(Product, QuoteItem.product_id == Product.id)
            .filter(
                Quotation.period == period,
                Quotation.status != "cancelled",
                Product.deleted_at.is_(None),
                *_active_supplier(),
            )
        )
        if region is not None:
            q = q.filter(Quotation.region == region, _product_in_region(region))
        if categories:
            q = q.filter(Product.category.in_(categories))
        rows = q.order_by(Supplier.supplier_code, QuoteItem.id).all()
        return [_parse_line(item, quotation, supplier) for item, quotation, supplier in rows]

    def fetch_quotation_headers(self, period: str, region: str | None = None) -> list[QuotationHeader]:
        q = (
            self.db.query(Quotation, Supplier)
            .join(Supplier, Quotation.supplier_id == Supplier.id)
            .filter(Quotation.period == period, *_active_supplier())
        )
        if region is not None:
            q = q.filter(Quotation.region == region)
        return [_header(qt, s) for qt, s in q.order_by(Supplier.supplier_code, Quotation.id).all()]

    def get_quotation(self, quotation_id: int):
        row = (
            self.db.query(Quotation, Supplier)
            .join(Supplier, Quotation.supplier_id == Supplier.id)
            .filter(Quotation.id == quotation_id)
            .first()
        )
        if row is None:
            return NOT_FOUND
        return Found(_header(*row))

    def fetch_quotation_lines(self, quotation_id: int) -> list[QuoteLine]:
        rows = (
            self.db.query(QuoteItem, Quotation, Supplier)
            .join(Quotation, QuoteItem.quotation_id == Quotation.id)
            .join(Supplier, Quotation.supplier_id == Supplier.id)
            .filter(Quotation.id == quotation_id)
            .order_by(QuoteItem.id)
            .all()
        )
        return [_parse_line(item, quotation, supplier) for item, quotation, supplier in rows]

    def list_quotations(
        self,
        period: str | None = None,
        region: str | None = None,
        supplier_id: int | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict], int]:
        """One page of quotations, newest first, with the total match count."""
        item_count = (
            select(func.count(QuoteItem.id))
            .where(QuoteItem.quotation_id == Quotation.id)
            .correlate(Quotation)
            .scalar_subquery()
        )
        q = (
            self.db.query(Quotation, Supplier, User, item_count)
            .join(Supplier, Quotation.supplier_id == Supplier.id)
            .outerjoin(User, Quotation.created_by == User.id)
        )
        if period is not None:
            q = q.filter(Quotation.period == period)
        if region is not None:
            q = q.filter(Quotation.region == region)
        if supplier_id is not None:
            q = q.filter(Quotation.supplier_id == supplier_id)
        if status is not None:
            q = q.filter(Quotation.status == status)
        total = q.count()
        rows = (
            q.order_by(Quotation.created_at.desc(), Quotation.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return [
            {
                "id": qt.id,
                "quotation_code": qt.quotation_code,
                "period": qt.period,
                "region": qt.region,
                "status": qt.status,
                "quote_date": qt.quote_date,
                "created_at": qt.created_at,
                "updated_at": qt.updated_at,
                "supplier": {
                    "id": s.id,
                    "supplier_code": s.supplier_code,
                    "name": s.name,
                    "contact_person": s.contact_person,
                    "phone": s.phone,
                    "email": s.email,
                },
                "creator": {"id": u.id, "name": u.name, "email": u.email} if u else None,
                "item_count": count or 0,
            }
            for qt, s, u, count in rows
        ], total

    def fetch_regions_for_period(self, period: str) -> list[str]:
        rows = (
            self.db.query(Quotation.region)
            .filter(Quotation.period == period, Quotation.status != "cancelled")
            .distinct()
            .all()
        )
        return sorted(r[0] for r in rows if r[0])

    def fetch_categories_for_period(self, period: str, region: str | None) -> list[str]:
        q = (
            self.db.query(Product.category)
            .join(QuoteItem, QuoteItem.product_id == Product.id)
            .join(Quotation, QuoteItem.quotation_id == Quotation.id)
            .filter(
                Quotation.period == period,
                Quotation.status != "cancelled",
                Product.category.isnot(None),
            )
        )
        if region is not None:
            q = q.filter(Quotation.region == region, _product_in_region(region))
        return sorted(r[0] for r in q.distinct().all())

    # -- demand --

    def fetch_kitchen_demands(self, period: str, team_id: int | None = None) -> list[Demand]:
        q = self.db.query(KitchenPeriodDemand).filter(
            KitchenPeriodDemand.period == period,
            KitchenPeriodDemand.status == "active",
        )
        if team_id is not None:
            q = q.filter(KitchenPeriodDemand.team_id == team_id)
        return [_parse_demand(d) for d in q.order_by(KitchenPeriodDemand.id).all()]

    # -- price history --

    def find_previous_approved_period(self, period: str, region: str | None) -> str | None:
        q = self.db.query(func.max(PriceHistory.period)).filter(
            PriceHistory.price_type == PRICE_TYPE_APPROVED,
            PriceHistory.period < period,
        )
        if region is not None:
            q = q.filter(PriceHistory.region == region)
        return q.scalar()

    def fetch_previous_approved_price(
        self, product_id: int, supplier_id: int, period_before: str, region: str | None = None
    ) -> Decimal | None:
        """Latest approved price for the pair strictly before ``period_before``."""
        q = self.db.query(PriceHistory.price).filter(
            PriceHistory.product_id == product_id,
            PriceHistory.supplier_id == supplier_id,
            PriceHistory.price_type == PRICE_TYPE_APPROVED,
            PriceHistory.period < period_before,
        )
        if region is not None:
            q = q.filter(PriceHistory.region == region)
        row = q.order_by(PriceHistory.period.desc(), PriceHistory.recorded_at.desc()).first()
        if row is None:
            return None
        return _dec(row[0], "price", "price_history")

    def fetch_previous_approved_prices(self, period: str, region: str | None, product_ids=None) -> PreviousPrices:
        """Batch form: every approved price of the latest prior period.

        Without a region, prices from several regions may share a pair; the
        lowest one is kept.
        """
        prev = self.find_previous_approved_period(period, region)
        if prev is None:
            return PreviousPrices()
        q = self.db.query(PriceHistory.product_id, PriceHistory.supplier_id, PriceHistory.price).filter(
            PriceHistory.price_type == PRICE_TYPE_APPROVED,
            PriceHistory.period == prev,
        )
        if region is not None:
            q = q.filter(PriceHistory.region == region)
        if product_ids is not None:
            q = q.filter(PriceHistory.product_id.in_(list(product_ids)))
        result = PreviousPrices(period=prev)
        for pid, sid, price in q.all():
            price = _dec(price, "price", f"price_history product={pid}")
            if price is None or price <= 0:
                continue
            key = (pid, sid)
            if key not in result.by_pair or price < result.by_pair[key]:
                result.by_pair[key] = price
            if pid not in result.best_by_product or price < result.best_by_product[pid]:
                result.best_by_product[pid] = price
        return result

    # -- teams & memberships --

    def get_team(self, team_id: int):
        team = self.db.query(Team).filter(Team.id == team_id, Team.deleted_at.is_(None)).first()
        if team is None:
            return NOT_FOUND
        return Found(TeamRecord(team.id, team.name, team.region, team.team_type, team.team_code))

    def get_user_team_memberships(self, user_id: int) -> list[Membership]:
        rows = (
            self.db.query(TeamMember, Team)
            .join(Team, TeamMember.team_id == Team.id)
            .filter(
                TeamMember.user_id == user_id,
                TeamMember.left_at.is_(None),
                Team.deleted_at.is_(None),
            )
            .order_by(TeamMember.id)
            .all()
        )
        return [Membership(m.team_id, m.role, t.region, t.name) for m, t in rows]

    # -- price list --

    def _scoped_supplier_ids(self, team_id: int):
        return select(SupplierServiceScope.supplier_id).where(
            SupplierServiceScope.team_id == team_id,
            SupplierServiceScope.is_active.is_(True),
        )

    def fetch_approved_lines_for_team(
        self, team_id: int, region: str, period: str, product_id: int | None = None
    ) -> list[QuoteLine]:
        """Approved, positively priced lines from active suppliers serving the team."""
        q = (
            self.db.query(QuoteItem, Quotation, Supplier)
            .join(Quotation, QuoteItem.quotation_id == Quotation.id)
            .join(Supplier, Quotation.supplier_id == Supplier.id)
            .join(Product, QuoteItem.product_id == Product.id)
            .filter(
                Quotation.period == period,
                Quotation.region == region,
                Quotation.status == "approved",
                QuoteItem.approved_price > 0,
                Supplier.id.in_(self._scoped_supplier_ids(team_id)),
                *_active_supplier(),
                Product.deleted_at.is_(None),
                _product_in_region(region),
            )
        )
        if product_id is not None:
            q = q.filter(QuoteItem.product_id == product_id)
        rows = q.order_by(Supplier.supplier_code, QuoteItem.id).all()
        return [_parse_line(item, quotation, supplier) for item, quotation, supplier in rows]

    def fetch_team_supplier_scopes(self, team_id: int) -> list[dict]:
        """Every service-scope row of a team, active or not, by supplier code."""
        rows = (
            self.db.query(SupplierServiceScope, Supplier)
            .join(Supplier, SupplierServiceScope.supplier_id == Supplier.id)
            .filter(SupplierServiceScope.team_id == team_id, Supplier.deleted_at.is_(None))
            .order_by(Supplier.supplier_code)
            .all()
        )
        return [
            {
                "supplier_id": s.id,
                "supplier_code": s.supplier_code,
                "supplier_name": s.name,
                "supplier_status": s.status,
                "is_active": bool(scope.is_active),
                "created_at": scope.created_at,
            }
            for scope, s in rows
        ]

    def get_product(self, product_id: int):
        product = self.db.query(Product).filter(Product.id == product_id, Product.deleted_at.is_(None)).first()
        if product is None:
            return NOT_FOUND
        return Found(_parse_product(product))

    def fetch_products_by_ids(self, product_ids) -> list[ProductRecord]:
        ids = list(product_ids)
        if not ids:
            return []
        rows = self.db.query(Product).filter(Product.id.in_(ids)).order_by(Product.product_code).all()
        return [_parse_product(p) for p in rows]

    def fetch_approved_periods_for_team(self, team_id: int, region: str) -> list[dict]:
        rows = (
            self.db.query(
                Quotation.period,
                func.count(func.distinct(Quotation.supplier_id)),
                func.count(QuoteItem.id),
                func.max(Quotation.updated_at),
            )
            .join(QuoteItem, QuoteItem.quotation_id == Quotation.id)
            .join(Supplier, Quotation.supplier_id == Supplier.id)
            .filter(
                Quotation.region == region,
                Quotation.status == "approved",
                QuoteItem.approved_price > 0,
                Quotation.supplier_id.in_(self._scoped_supplier_ids(team_id)),
                *_active_supplier(),
            )
            .group_by(Quotation.period)
            .order_by(Quotation.period.desc())
            .all()
        )
        return [
            {"period": period, "supplier_count": suppliers, "item_count": items, "last_updated": updated}
            for period, suppliers, items, updated in rows
        ]

    # -- dashboard --

    def count_dashboard_entities(self) -> dict:
        kitchens = (
            self.db.query(func.count(Team.id))
            .filter(Team.team_type == "KITCHEN", Team.deleted_at.is_(None))
            .scalar()
        )
        products = (
            self.db.query(func.count(Product.id))
            .filter(Product.status == "active", Product.deleted_at.is_(None))
            .scalar()
        )
        suppliers = (
            self.db.query(func.count(Supplier.id))
            .filter(Supplier.status == "active", Supplier.deleted_at.is_(None))
            .scalar()
        )
        return {"total_kitchens": kitchens or 0, "total_products": products or 0, "total_suppliers": suppliers or 0}

    def count_quotations(self, region: str | None = None) -> int:
        q = self.db.query(func.count(Quotation.id))
        if region is not None:
            q = q.filter(Quotation.region == region)
        return q.scalar() or 0

    def fetch_latest_approved_periods(self, region: str | None, limit: int = 2) -> list[str]:
        q = self.db.query(PriceHistory.period).filter(PriceHistory.price_type == PRICE_TYPE_APPROVED)
        if region is not None:
            q = q.filter(PriceHistory.region == region)
        rows = q.distinct().order_by(PriceHistory.period.desc()).limit(limit).all()
        return [r[0] for r in rows]

    def fetch_best_approved_prices(self, period: str, region: str | None) -> dict:
        """product_id → (best price, supplier_id, supplier_code) for one period."""
        q = (
            self.db.query(PriceHistory.product_id, PriceHistory.price, Supplier.id, Supplier.supplier_code)
            .join(Supplier, PriceHistory.supplier_id == Supplier.id)
            .filter(PriceHistory.price_type == PRICE_TYPE_APPROVED, PriceHistory.period == period)
        )
        if region is not None:
            q = q.filter(PriceHistory.region == region)
        best = {}
        for pid, price, sid, code in q.all():
            price = _dec(price, "price", f"price_history product={pid}")
            if price is None or price <= 0:
                continue
            current = best.get(pid)
            if current is None or (price, code, sid) < (current[0], current[2], current[1]):
                best[pid] = (price, sid, code)
        return best

    # -- commands --

    def transition_status(self, quotation_id: int, from_statuses, to_status: str) -> bool:
        """Conditional status update. Caller commits. False when precondition failed."""
        res = self.db.execute(
            update(Quotation)
            .where(Quotation.id == quotation_id, Quotation.status.in_(tuple(from_statuses)))
            .values(status=to_status, updated_at=datetime.now(timezone.utc))
        )
        return res.rowcount == 1

    def record_negotiated_prices(self, quotation_id: int, prices: dict) -> int:
        """Set negotiated prices on items; caller commits. Returns items touched."""
        now = datetime.now(timezone.utc)
        items = {
            i.id: i for i in self.db.query(QuoteItem).filter(QuoteItem.quotation_id == quotation_id).all()
        }
        for item_id, price in prices.items():
            item = items.get(item_id)
            if item is None:
                raise StorageRowError(f"quote_items#{item_id} is not part of quotation {quotation_id}")
            item.negotiated_price = price
            item.negotiation_rounds = (item.negotiation_rounds or 0) + 1
            item.last_negotiated_at = now
        return len(prices)

    def approve_quotation_batch(self, quotation_id: int, resolved_prices: dict, approver_id: int) -> str:
        """Atomically approve one quotation. Returns WRITE_OK or WRITE_CONFLICT.

        The caller commits on WRITE_OK. Raises (after rollback) when any item
        fails mid-batch, leaving the quotation and its items untouched.
        """
        now = datetime.now(timezone.utc)
        try:
            header = self.db.get(Quotation, quotation_id)
            if header is None or not self.transition_status(quotation_id, OPEN_STATUSES, "approved"):
                self.db.rollback()
                return WRITE_CONFLICT
            items = {
                i.id: i
                for i in self.db.query(QuoteItem).filter(QuoteItem.quotation_id == quotation_id).all()
            }
            for item_id, price in resolved_prices.items():
                item = items.get(item_id)
                if item is None:
                    raise StorageRowError(f"quote_items#{item_id} is not part of quotation {quotation_id}")
                if price is None or price < 0:
                    raise StorageRowError(f"quote_items#{item_id}: invalid approved price {price!r}")
                item.approved_price = price
                item.approved_at = now
                item.approved_by = approver_id
                self.db.add(
                    PriceHistory(
                        product_id=item.product_id,
                        supplier_id=header.supplier_id,
                        period=header.period,
                        price=price,
                        price_type=PRICE_TYPE_APPROVED,
                        region=header.region,
                        recorded_at=now,
                    )
                )
            self.db.flush()
            return WRITE_OK
        except Exception:
            self.db.rollback()
            raise
