"""
Pytest fixtures for storefront backend tests.

Provides test database setup, account/product factories, and an
authenticated test client helper.
"""

import pytest
from app import create_app
from app.extensions import db
from app.models import Brand, Product
from app.services import auth_service
from app.services.inventory_service import set_stock


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': 'test-uploads',
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user("a@shop.test") -> customer account."""
    def _make(email, full_name="Test Buyer", password=PASSWORD):
        return auth_service.register_user(full_name, email, password)
    return _make


@pytest.fixture(scope='function')
def buyer(make_user):
    return make_user("buyer@shop.test")


@pytest.fixture(scope='function')
def other_buyer(make_user):
    return make_user("other@shop.test", full_name="Other Buyer")


@pytest.fixture(scope='function')
def admin(db_session):
    return auth_service.create_admin("Shop Admin", "admin@shop.test", PASSWORD)


@pytest.fixture(scope='function')
def brand(db_session):
    brand = Brand(name="Acme")
    db_session.add(brand)
    db_session.commit()
    return brand


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(stock=5, price_cents=1000) -> committed active product."""
    def _make(name="Widget", price_cents=1000, stock=5, is_active=True, brand_id=None):
        product = Product(
            name=name,
            model=f"{name.upper()}-1",
            price_cents=price_cents,
            stock=0,
            is_active=is_active,
            brand_id=brand_id,
        )
        db_session.add(product)
        db_session.flush()
        if stock:
            set_stock(product.id, stock)
        db_session.commit()
        return product
    return _make


def stock_of(product_id: int) -> int:
    """Fresh read of a product's stock, bypassing the identity map."""
    db.session.expire_all()
    return db.session.get(Product, product_id).stock


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
