"""
Catalog service, reporting and CLI tests.
"""

import pytest

from app.extensions import db
from app.models import Brand, CartItem, Order, Product, User
from app.services import cart_service, catalog_service, checkout_service, reporting_service
from app.services.errors import NotFoundError
from app.validation import ConflictError, ValidationError
from conftest import PASSWORD, stock_of


def test_create_product_applies_initial_stock(db_session, brand):
    product = catalog_service.create_product({
        "name": "Diver", "model": "D-200", "price_cents": "45000", "stock": 3, "brand_id": brand.id,
    })

    assert product.is_active is True
    assert product.price_cents == 45000
    assert stock_of(product.id) == 3


def test_create_product_rejects_unknown_fields_and_brand(db_session):
    with pytest.raises(ValidationError):
        catalog_service.create_product({"name": "X", "price_cents": 1, "is_active": False})
    with pytest.raises(ValidationError):
        catalog_service.create_product({"name": "X", "price_cents": 1, "brand_id": 9999})
    with pytest.raises(ValidationError):
        catalog_service.create_product({"name": "X", "price_cents": 1, "stock": -2})


def test_update_product_price_does_not_touch_orders(db_session, buyer, make_product):
    p = make_product(stock=5, price_cents=100)
    cart_service.add_line(buyer.id, p.id, 1)
    order = checkout_service.materialize(buyer.id)

    catalog_service.update_product(p.id, {"price_cents": 150})

    db.session.expire_all()
    assert db.session.get(Product, p.id).price_cents == 150
    assert db.session.get(Order, order.id).total_cents == 100


def test_update_missing_product(db_session):
    with pytest.raises(NotFoundError):
        catalog_service.update_product(9999, {"name": "Ghost"})


def test_archive_removes_from_carts_and_catalog(db_session, buyer, other_buyer, make_product):
    p = make_product(stock=5)
    cart_service.add_line(buyer.id, p.id, 1)
    cart_service.add_line(other_buyer.id, p.id, 2)

    catalog_service.archive_product(p.id)

    assert db.session.query(CartItem).count() == 0
    assert stock_of(p.id) == 0
    assert catalog_service.browse_products() == []
    with pytest.raises(NotFoundError):
        catalog_service.get_active_product(p.id)

    restored = catalog_service.restore_product(p.id)
    assert restored.is_active is True
    assert restored.stock == 0


def test_delete_product_only_when_unreferenced(db_session, buyer, make_product):
    spare = make_product("Spare")
    sold = make_product("Sold", stock=5)
    cart_service.add_line(buyer.id, sold.id, 1)
    checkout_service.materialize(buyer.id)

    catalog_service.delete_product(spare.id)
    assert db.session.query(Product).filter_by(id=spare.id).count() == 0

    with pytest.raises(ConflictError) as exc:
        catalog_service.delete_product(sold.id)
    assert exc.value.details["order_items"] == 1
    assert stock_of(sold.id) == 4

    with pytest.raises(NotFoundError):
        catalog_service.delete_product(spare.id)


def test_browse_filters_new_arrivals(db_session, make_product):
    make_product("Old")
    fresh = catalog_service.create_product({"name": "Fresh", "price_cents": 10, "is_new": True})

    assert [p.id for p in catalog_service.browse_products(is_new=True)] == [fresh.id]


def test_duplicate_brand_conflicts(db_session, brand):
    with pytest.raises(ConflictError):
        catalog_service.create_brand("Acme")
    with pytest.raises(ValidationError):
        catalog_service.create_brand("  ")


def test_report_range_validation(db_session):
    with pytest.raises(ValidationError):
        reporting_service.resolve_range("2026-13-01", "2026-12-31")

    start, end = reporting_service.resolve_range("2026-01-01", "2026-01-31")
    assert (start.isoformat(), end.isoformat()) == ("2026-01-01", "2026-01-31")


def test_report_excludes_canceled_orders(db_session, buyer, make_product):
    p = make_product(stock=5, price_cents=100)
    cart_service.add_line(buyer.id, p.id, 1)
    order = checkout_service.materialize(buyer.id)
    order.status = "canceled"
    db.session.commit()

    report = reporting_service.sales_report(start=None, end=None, include_pending=True)
    assert report["summary"]["orders"] == 0
    assert reporting_service.top_products(start=None, end=None, include_pending=True) == []


# =============================================================================
# CLI
# =============================================================================

def test_cli_system_init_seeds_brand_and_admin(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'system', 'init', '--brand', 'Orbit', '--admin-email', 'root@shop.test', '--admin-password', PASSWORD,
    ])

    assert result.exit_code == 0, result.output
    assert db.session.query(Brand).filter_by(name='Orbit').count() == 1
    assert db.session.query(User).filter_by(email='root@shop.test').one().role == 'admin'

    again = runner.invoke(args=['system', 'init', '--brand', 'Orbit'])
    assert 'already exists' in again.output


def test_cli_users_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'users', 'create', '--full-name', 'Cli Buyer', '--email', 'cli@shop.test', '--password', PASSWORD,
    ])
    assert 'PASS' in result.output

    listed = runner.invoke(args=['users', 'list'])
    assert 'cli@shop.test' in listed.output


def test_cli_catalog_commands(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'catalog', 'add-product', '--name', 'Pilot', '--price-cents', '9900', '--stock', '2', '--brand', 'Orbit',
    ])
    assert 'PASS Created product' in result.output
    product = db.session.query(Product).filter_by(name='Pilot').one()

    result = runner.invoke(args=['catalog', 'set-stock', str(product.id), '9'])
    assert 'stock is now 9' in result.output
    assert stock_of(product.id) == 9

    result = runner.invoke(args=['catalog', 'set-stock', '999999', '1'])
    assert 'FAIL' in result.output
