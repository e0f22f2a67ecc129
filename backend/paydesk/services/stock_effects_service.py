# Overview: Pending stock effects written with each settlement and applied idempotently.

"""
Stock Effects (settlement saga)

WHY: A settlement writes one sale record and then decrements stock once per
product. Those writes cannot share one transaction with an external stock
adjuster, so the decrements are persisted as PENDING rows together with the
sale record and applied afterwards.

RULES:
- One row per (sale record, product, settlement key); the unique constraint
  makes re-recording the same settlement a no-op.
- Applying a row and calling the adjuster happen in one transaction; a row
  that is already APPLIED is skipped, so each decrement happens once.
- Failures leave the row PENDING with attempts/last_error; reconcile
  retries them on the next ledger load or from the CLI.
"""

from __future__ import annotations

from typing import Callable, Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import StockEffect
from ..models.ledger import EFFECT_PENDING, EFFECT_APPLIED
from ..time_utils import utcnow
from . import catalog_service
from .concurrency import lock_for_update, run_with_retry
from .document_store import PersistenceError


StockAdjuster = Callable[[int, int], object]

SETTLEMENT_KEY_CREATE = "create"
SETTLEMENT_KEY_RESUME = "resume"


def default_stock_adjuster(product_id: int, quantity: int) -> None:
    catalog_service.decrement_stock(product_id, quantity, commit=False)


def record_effects(
    sale_record_id: int,
    lines: Iterable[dict],
    settlement_key: str,
) -> list[StockEffect]:
    """
    Add PENDING effects for every line with quantity > 0.

    Does not commit; the caller commits together with the sale record.
    Database errors are raised as PersistenceError after a rollback.
    """
    quantities: dict[int, int] = {}
    for line in lines:
        product_id = line.get("product_id")
        quantity = line.get("quantity") or 0
        if product_id is None or quantity <= 0:
            continue
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    effects = []
    try:
        existing = {
            e.product_id
            for e in db.session.query(StockEffect).filter_by(
                sale_record_id=sale_record_id, settlement_key=settlement_key
            )
        }

        for product_id, quantity in quantities.items():
            if product_id in existing:
                continue
            effect = StockEffect(
                sale_record_id=sale_record_id,
                product_id=product_id,
                quantity=quantity,
                settlement_key=settlement_key,
                status=EFFECT_PENDING,
                attempts=0,
                created_at=utcnow(),
            )
            db.session.add(effect)
            effects.append(effect)
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(
            "Failed to write stock effects", details={"cause": type(exc).__name__}
        ) from exc
    return effects


def apply_effect(effect_id: int, adjuster: StockAdjuster | None = None) -> bool:
    """
    Apply one effect. Returns True when the effect is APPLIED afterwards.

    The adjuster's exception is recorded on the row rather than raised; the
    sale itself already succeeded.
    """
    adjuster = adjuster or default_stock_adjuster

    def _op():
        effect = lock_for_update(db.session.query(StockEffect).filter_by(id=effect_id)).first()
        if effect is None:
            return False
        if effect.status == EFFECT_APPLIED:
            return True

        adjuster(effect.product_id, effect.quantity)

        effect.status = EFFECT_APPLIED
        effect.attempts = (effect.attempts or 0) + 1
        effect.applied_at = utcnow()
        effect.last_error = None
        db.session.commit()
        return True

    try:
        return run_with_retry(_op)
    except Exception as exc:
        db.session.rollback()
        _mark_failed(effect_id, exc)
        return False


def _mark_failed(effect_id: int, exc: Exception) -> None:
    effect = db.session.get(StockEffect, effect_id)
    if effect is None or effect.status == EFFECT_APPLIED:
        return
    effect.attempts = (effect.attempts or 0) + 1
    effect.last_error = f"{type(exc).__name__}: {exc}"[:255]
    db.session.commit()
    current_app.logger.warning(
        "Stock effect %s (sale record %s, product %s, qty %s) left pending: %s",
        effect.id, effect.sale_record_id, effect.product_id, effect.quantity, effect.last_error,
    )


def apply_effects(effect_ids: Iterable[int], adjuster: StockAdjuster | None = None) -> dict:
    applied = 0
    pending = 0
    for effect_id in effect_ids:
        if apply_effect(effect_id, adjuster):
            applied += 1
        else:
            pending += 1
    return {"applied": applied, "pending": pending}


def reconcile_pending_effects(adjuster: StockAdjuster | None = None, limit: int | None = None) -> dict:
    """Retry every PENDING effect, oldest first."""
    query = (
        db.session.query(StockEffect.id)
        .filter(StockEffect.status == EFFECT_PENDING)
        .order_by(StockEffect.id.asc())
    )
    if limit:
        query = query.limit(limit)
    effect_ids = [row.id for row in query.all()]
    if not effect_ids:
        return {"applied": 0, "pending": 0}

    result = apply_effects(effect_ids, adjuster)
    if result["applied"]:
        current_app.logger.info("Reconciled %d pending stock effect(s)", result["applied"])
    return result


def pending_effects_for(sale_record_id: int) -> list[StockEffect]:
    return (
        db.session.query(StockEffect)
        .filter_by(sale_record_id=sale_record_id, status=EFFECT_PENDING)
        .order_by(StockEffect.id.asc())
        .all()
    )
