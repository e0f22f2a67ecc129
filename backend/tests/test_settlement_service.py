"""
Settlement engine tests.

Cover the fresh-cart and resume paths, validation gates, customer
resolution and the behaviour when the ledger write fails.
"""

from datetime import datetime

import pytest

from paydesk.models import SaleRecord
from paydesk.models.ledger import SETTLEMENT_PAID, SETTLEMENT_UNPAID, SETTLEMENT_VOIDED
from paydesk.services import document_store
from paydesk.services.document_store import PersistenceError
from paydesk.services.settlement_service import (
    SettlementSession,
    SettlementError,
    OperatorContext,
    void_sale_record,
    STATE_BUILDING,
    STATE_AWAITING_MODE,
    STATE_IMMEDIATE,
    STATE_SETTLED,
    NO_CUSTOMER,
)
from paydesk.validation import ValidationError


def _session(adjuster=None):
    return SettlementSession(document_store.list_products(), stock_adjuster=adjuster)


def _two_line_session(catalog, adjuster=None):
    session = _session(adjuster)
    session.add_product(catalog["p1"].id)
    session.set_quantity(catalog["p1"].id, 2)
    session.add_product(catalog["p2"].id)
    return session


def _deferred_record(catalog, operator, adjuster):
    session = _two_line_session(catalog, adjuster)
    session.set_customer_input("Juan")
    session.choose_deferred()
    return session.confirm(operator).record


class TestImmediateSettlement:

    def test_two_lines_paid_with_change(self, db_session, catalog, operator, adjuster):
        p1, p2 = catalog["p1"], catalog["p2"]
        session = _two_line_session(catalog, adjuster)

        assert session.total_cents() == 13000

        session.choose_immediate("cash", 20000)
        assert session.change_cents == 7000

        result = session.confirm(operator)
        record = result.record

        assert result.created is True
        assert record.settlement_state == SETTLEMENT_PAID
        assert record.total_price_cents == 13000
        assert len(record.line_items) == 2
        assert record.amount_tendered_cents == 20000
        assert record.change_given_cents == 7000
        assert record.payment_method == "cash"
        assert record.paid_at is not None
        assert record.cashier_id == "cashier1"
        assert record.cashier_display_name == "Ana Reyes"

        assert adjuster.calls == [(p1.id, 2), (p2.id, 1)]
        assert result.stock_applied == 2
        assert result.stock_pending == 0
        assert result.message == "Payment recorded!"

    def test_line_items_freeze_prices_at_settlement(self, db_session, catalog, operator, adjuster):
        session = _two_line_session(catalog, adjuster)
        session.choose_immediate("gcash", None)
        record = session.confirm(operator).record

        catalog["p1"].unit_price_cents = 9900
        db_session.commit()

        db_session.expire_all()
        stored = db_session.get(SaleRecord, record.id)
        assert stored.total_price_cents == 13000
        assert stored.line_items[0] == {
            "product_id": catalog["p1"].id,
            "product_name": "Car Shampoo",
            "unit_price_cents": 5000,
            "quantity": 2,
        }

    def test_tender_defaults_to_total(self, db_session, catalog, operator, adjuster):
        session = _two_line_session(catalog, adjuster)
        session.begin_payment()

        assert session.state == STATE_AWAITING_MODE
        assert session.amount_tendered_cents == 13000

        session.choose_immediate()
        record = session.confirm(operator).record
        assert record.change_given_cents == 0

    def test_short_tender_blocks_confirmation(self, db_session, catalog, operator, adjuster):
        session = _two_line_session(catalog, adjuster)
        session.choose_immediate("cash", 10000)

        assert session.can_confirm() is False
        assert session.change_cents == -3000
        with pytest.raises(ValidationError):
            session.confirm(operator)

        assert db_session.query(SaleRecord).count() == 0
        assert adjuster.calls == []

    def test_invalid_payment_method_rejected(self, db_session, catalog, adjuster):
        session = _two_line_session(catalog, adjuster)

        with pytest.raises(ValidationError):
            session.choose_immediate("bitcoin", 20000)

    def test_quick_amount_sets_tendered(self, db_session, catalog, adjuster):
        session = _two_line_session(catalog, adjuster)
        session.choose_immediate("cash")
        session.apply_quick_amount(50000)

        assert session.change_cents == 37000


class TestDeferredSettlement:

    def test_pay_later_writes_no_payment_fields(self, db_session, catalog, operator, adjuster):
        session = _two_line_session(catalog, adjuster)
        session.choose_deferred()
        result = session.confirm(operator)
        record = result.record

        assert record.settlement_state == SETTLEMENT_UNPAID
        assert record.payment_method is None
        assert record.amount_tendered_cents is None
        assert record.change_given_cents is None
        assert record.paid_at is None
        assert record.total_price_cents == 13000
        assert result.message == "Products recorded as unpaid."
        # Stock leaves the shelf when the products are taken, paid or not
        assert len(adjuster.calls) == 2


class TestValidation:

    def test_empty_cart_cannot_open_payment(self, db_session, catalog):
        session = _session()

        with pytest.raises(ValidationError, match="at least one product"):
            session.begin_payment()
        assert session.state == STATE_BUILDING

    def test_empty_cart_cannot_confirm(self, db_session, catalog, operator):
        session = _session()

        with pytest.raises(ValidationError):
            session.confirm(operator)
        assert db_session.query(SaleRecord).count() == 0

    def test_unavailable_product_rejected(self, db_session, catalog):
        session = _session()

        with pytest.raises(ValidationError):
            session.add_product(catalog["hidden"].id)

    def test_unknown_product_rejected(self, db_session, catalog):
        session = _session()

        with pytest.raises(ValidationError):
            session.add_product(987654)

    def test_operator_requires_cashier_id(self):
        with pytest.raises(ValidationError):
            OperatorContext(cashier_id="  ")


class TestCustomerResolution:

    def test_no_input_resolves_to_na(self, db_session, catalog):
        assert _session().resolve_customer_name() == NO_CUSTOMER

    def test_typed_name_is_trimmed(self, db_session, catalog):
        session = _session()
        session.set_customer_input("  Juan  ")

        assert session.resolve_customer_name() == "Juan"

    def test_loyalty_selection_wins_over_typed_name(self, db_session, catalog):
        session = _session()
        session.set_customer_input("Juan")
        session.select_customer("Maria Santos")

        assert session.resolve_customer_name() == "Maria Santos"

    def test_na_written_to_record(self, db_session, catalog, operator, adjuster):
        session = _two_line_session(catalog, adjuster)
        session.choose_immediate("cash", 13000)

        assert session.confirm(operator).record.customer_name == NO_CUSTOMER


class TestPersistenceFailure:

    def test_failed_write_keeps_session_for_retry(self, db_session, catalog, operator, adjuster, monkeypatch):
        session = _two_line_session(catalog, adjuster)
        session.select_customer("Maria Santos")
        session.choose_immediate("card", 20000)

        def failing_commit():
            raise PersistenceError("Failed to write sale record")

        monkeypatch.setattr(document_store, "commit_ledger_write", failing_commit)

        with pytest.raises(PersistenceError):
            session.confirm(operator)

        assert session.state == STATE_IMMEDIATE
        assert len(session.cart) == 2
        assert session.selected_customer == "Maria Santos"
        assert session.payment_method == "card"
        assert session.amount_tendered_cents == 20000
        assert db_session.query(SaleRecord).count() == 0
        assert adjuster.calls == []

        monkeypatch.undo()
        result = session.confirm(operator)

        assert result.record.customer_name == "Maria Santos"
        assert db_session.query(SaleRecord).count() == 1
        assert session.state == STATE_SETTLED
        assert session.cart.is_empty


class TestResume:

    def test_resume_marks_paid_and_keeps_created_at(self, db_session, catalog, operator, adjuster):
        record = _deferred_record(catalog, operator, adjuster)
        original_created = datetime(2024, 3, 1, 9, 30, 0)
        record.created_at = original_created
        db_session.commit()
        record_id = record.id

        session = SettlementSession.resume(record, document_store.list_products(), stock_adjuster=adjuster)
        assert session.state == STATE_AWAITING_MODE
        assert session.cart.quantity_of(catalog["p1"].id) == 2
        assert session.resolve_customer_name() == "Juan"

        session.choose_immediate("gcash", 15000)
        result = session.confirm(operator)

        assert result.created is False
        db_session.expire_all()
        stored = db_session.get(SaleRecord, record_id)
        assert stored.settlement_state == SETTLEMENT_PAID
        assert stored.created_at == original_created
        assert stored.payment_method == "gcash"
        assert stored.change_given_cents == 2000
        assert db_session.query(SaleRecord).count() == 1

    def test_resume_uses_live_prices(self, db_session, catalog, operator, adjuster):
        record = _deferred_record(catalog, operator, adjuster)
        catalog["p2"].unit_price_cents = 4000
        db_session.commit()

        session = SettlementSession.resume(record, document_store.list_products())
        assert session.total_cents() == 14000
        assert session.amount_tendered_cents == 14000

    def test_resume_keeps_lines_for_removed_products(self, db_session, catalog, operator, adjuster):
        record = _deferred_record(catalog, operator, adjuster)
        remaining = [p for p in document_store.list_products() if p.id != catalog["p2"].id]

        session = SettlementSession.resume(record, remaining, stock_adjuster=adjuster)
        assert session.total_cents() == 13000

        session.choose_immediate("cash", None)
        stored = session.confirm(operator).record
        assert [item["product_name"] for item in stored.line_items] == ["Car Shampoo", "Tire Black"]

    def test_resume_cannot_defer(self, db_session, catalog, operator, adjuster):
        record = _deferred_record(catalog, operator, adjuster)
        session = SettlementSession.resume(record, document_store.list_products())

        with pytest.raises(SettlementError):
            session.choose_deferred()

    def test_paid_record_cannot_be_resumed(self, db_session, catalog, operator, adjuster):
        session = _two_line_session(catalog, adjuster)
        session.choose_immediate("cash", None)
        record = session.confirm(operator).record

        with pytest.raises(SettlementError) as exc:
            SettlementSession.resume(record, document_store.list_products())
        assert exc.value.status_code == 409

    def test_second_resume_loses_race(self, db_session, catalog, operator, adjuster):
        record = _deferred_record(catalog, operator, adjuster)
        products = document_store.list_products()
        first = SettlementSession.resume(record, products, stock_adjuster=adjuster)
        second = SettlementSession.resume(record, products, stock_adjuster=adjuster)

        first.choose_immediate("cash", None)
        first.confirm(operator)

        second.choose_immediate("gcash", None)
        with pytest.raises(SettlementError) as exc:
            second.confirm(OperatorContext(cashier_id="cashier2"))
        assert exc.value.status_code == 409

        db_session.expire_all()
        stored = db_session.get(SaleRecord, record.id)
        assert stored.payment_method == "cash"
        assert stored.cashier_id == "cashier1"

    def test_legacy_single_service_record(self, db_session, catalog, operator, adjuster):
        p1 = catalog["p1"]
        legacy = document_store.create_sale_record({
            "customer_name": "Pedro",
            "line_items": [],
            "total_price_cents": 15000,
            "cashier_id": "old-screen",
            "settlement_state": SETTLEMENT_UNPAID,
            "legacy_service_id": p1.id,
            "legacy_service_name": "Car Shampoo",
            "legacy_quantity": 3,
        })

        session = SettlementSession.resume(legacy, document_store.list_products(), stock_adjuster=adjuster)
        assert session.cart.to_list() == [{"product_id": p1.id, "quantity": 3}]

        session.choose_immediate("cash", None)
        stored = session.confirm(operator).record
        assert stored.settlement_state == SETTLEMENT_PAID
        assert stored.line_items[0]["quantity"] == 3
        assert stored.total_price_cents == 15000


class TestVoid:

    def test_void_unpaid_record(self, db_session, catalog, operator, adjuster):
        record = _deferred_record(catalog, operator, adjuster)

        voided = void_sale_record(record.id, operator, "Customer left")
        assert voided.settlement_state == SETTLEMENT_VOIDED
        assert voided.voided_by == "cashier1"
        assert voided.void_reason == "Customer left"

        with pytest.raises(SettlementError) as exc:
            SettlementSession.resume(voided, document_store.list_products())
        assert exc.value.status_code == 409

    def test_void_twice_conflicts(self, db_session, catalog, operator, adjuster):
        record = _deferred_record(catalog, operator, adjuster)
        void_sale_record(record.id, operator, "Duplicate")

        with pytest.raises(SettlementError) as exc:
            void_sale_record(record.id, operator, "Again")
        assert exc.value.status_code == 409

    def test_void_requires_reason(self, db_session, catalog, operator, adjuster):
        record = _deferred_record(catalog, operator, adjuster)

        with pytest.raises(ValidationError):
            void_sale_record(record.id, operator, "   ")
