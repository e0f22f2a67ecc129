# Overview: Filtering and summary figures over the full list of sale records.

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping

from ..models import SaleRecord
from ..models.ledger import SETTLEMENT_UNPAID, SETTLEMENT_PAID, SETTLEMENT_VOIDED
from ..time_utils import parse_day, start_of_day, end_of_day
from ..validation import ValidationError


STATUS_PAID = "paid"
STATUS_UNPAID = "unpaid"
STATUS_VOIDED = "voided"

STATUS_FILTERS = {
    STATUS_PAID: SETTLEMENT_PAID,
    STATUS_UNPAID: SETTLEMENT_UNPAID,
    STATUS_VOIDED: SETTLEMENT_VOIDED,
}

MOST_SOLD_LIMIT = 3


@dataclass(frozen=True)
class LedgerFilter:
    """
    Active filters of the sales list. Every set field must match (AND).

    status is one of "paid", "unpaid", "voided"; each selects exactly one
    settlement state.
    """
    date_from: date | None = None
    date_to: date | None = None
    customer: str | None = None
    product: str | None = None
    status: str | None = None
    search: str | None = None

    def __post_init__(self):
        if self.status is not None and self.status not in STATUS_FILTERS:
            raise ValidationError(
                f"status must be one of {', '.join(STATUS_FILTERS)}"
            )

    @classmethod
    def from_args(cls, args: Mapping[str, str]) -> "LedgerFilter":
        def _text(key: str) -> str | None:
            value = args.get(key)
            if value is None:
                return None
            value = value.strip()
            return value or None

        try:
            date_from = parse_day(args.get("date_from"))
            date_to = parse_day(args.get("date_to"))
        except ValueError:
            raise ValidationError("date_from and date_to must be YYYY-MM-DD")

        status = _text("status")
        return cls(
            date_from=date_from,
            date_to=date_to,
            customer=_text("customer"),
            product=_text("product"),
            status=status.lower() if status else None,
            search=_text("search"),
        )

    def matches(self, record: SaleRecord) -> bool:
        if self.date_from and record.created_at < start_of_day(self.date_from):
            return False
        if self.date_to and record.created_at > end_of_day(self.date_to):
            return False
        if self.customer and record.customer_name != self.customer:
            return False
        if self.product and self.product not in record.product_names():
            return False
        if self.status and record.settlement_state != STATUS_FILTERS[self.status]:
            return False
        if self.search and self.search.lower() not in (record.customer_name or "").lower():
            return False
        return True


def filter_records(records: Iterable[SaleRecord], flt: LedgerFilter) -> list[SaleRecord]:
    return [r for r in records if flt.matches(r)]


def compute_stats(records: Iterable[SaleRecord]) -> dict:
    """
    Summary cards, always over the unfiltered set.

    total_unpaid counts every record that is not PAID (VOIDED included);
    total_deferred and total_voided split it.
    """
    total = 0
    paid = 0
    deferred = 0
    voided = 0
    sales_cents = 0
    for r in records:
        total += 1
        if r.settlement_state == SETTLEMENT_PAID:
            paid += 1
            sales_cents += r.total_price_cents or 0
        elif r.settlement_state == SETTLEMENT_VOIDED:
            voided += 1
        else:
            deferred += 1

    return {
        "total_transactions": total,
        "total_paid": paid,
        "total_unpaid": total - paid,
        "total_deferred": deferred,
        "total_voided": voided,
        "total_sales_cents": sales_cents,
    }


def filter_options(records: Iterable[SaleRecord]) -> dict:
    """Distinct customer and product names for the filter dropdowns, in first-seen order."""
    customers: list[str] = []
    products: list[str] = []
    for r in records:
        if r.customer_name and r.customer_name not in customers:
            customers.append(r.customer_name)
        for name in r.product_names():
            if name not in products:
                products.append(name)
    return {"customers": customers, "products": products}


def most_sold_products(records: Iterable[SaleRecord], limit: int = MOST_SOLD_LIMIT) -> list[dict]:
    """Product names ranked by how many records include them; ties break by name."""
    counts: Counter[str] = Counter()
    for r in records:
        counts.update(r.product_names())
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [{"product_name": name, "count": count} for name, count in ranked[:limit]]
