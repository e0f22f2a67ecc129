"""Flask CLI commands: seeding, listing and ledger maintenance."""

from paydesk.models import Product, LoyaltyCustomer, StockEffect
from paydesk.models.ledger import EFFECT_PENDING
from paydesk.services import document_store
from paydesk.services.settlement_service import SettlementSession


def test_seed_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["catalog", "seed"])
    assert first.exit_code == 0
    assert "Created 5 products" in first.output
    assert db_session.query(Product).count() == 5
    assert db_session.query(LoyaltyCustomer).count() == 2

    second = runner.invoke(args=["catalog", "seed"])
    assert second.exit_code == 0
    assert "skipping" in second.output
    assert db_session.query(Product).count() == 5


def test_catalog_list_hides_unavailable(app, db_session, catalog):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["catalog", "list"])
    assert "Car Shampoo" in result.output
    assert "₱50.00" in result.output
    assert "Discontinued Wax" not in result.output

    result = runner.invoke(args=["catalog", "list", "--all"])
    assert "Discontinued Wax" in result.output
    assert "(unavailable)" in result.output


def test_reconcile_stock(app, db_session, catalog, operator, make_adjuster):
    session = SettlementSession(
        document_store.list_products(),
        stock_adjuster=make_adjuster(fail_on={catalog["p2"].id}),
    )
    session.add_product(catalog["p2"].id)
    session.choose_immediate("cash", None)
    session.confirm(operator)
    assert db_session.query(StockEffect).filter_by(status=EFFECT_PENDING).count() == 1

    result = app.test_cli_runner().invoke(args=["sales", "reconcile-stock"])

    assert result.exit_code == 0
    assert "Applied 1 stock effect(s), 0 still pending" in result.output
    db_session.expire_all()
    assert db_session.query(StockEffect).filter_by(status=EFFECT_PENDING).count() == 0
    assert db_session.get(Product, catalog["p2"].id).stock_quantity == 9


def test_sales_summary(app, db_session, catalog, operator, adjuster):
    session = SettlementSession(document_store.list_products(), stock_adjuster=adjuster)
    session.add_product(catalog["p1"].id)
    session.choose_immediate("cash", None)
    session.confirm(operator)

    result = app.test_cli_runner().invoke(args=["sales", "summary"])

    assert result.exit_code == 0
    assert "Total Transactions: 1" in result.output
    assert "₱50.00" in result.output
