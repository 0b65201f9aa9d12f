"""
Pytest fixtures for storefront backend tests.

Provides test database setup, users for each role, catalog factories and the test client.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Category, Product, ProductImage, ProductSizeStock
from storefront.services.auth_service import create_user


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
def admin_user(db_session):
    return create_user(name="Admin User", email="admin@shop.test", password=PASSWORD, role="admin")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return create_user(name="Staff User", email="staff@shop.test", password=PASSWORD, role="staff")


@pytest.fixture(scope='function')
def customer_user(db_session):
    return create_user(
        name="Customer User",
        email="customer@shop.test",
        password=PASSWORD,
        phone="770000001",
        role="customer",
    )


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email, PASSWORD))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.email, PASSWORD))


@pytest.fixture(scope='function')
def customer_headers(client, customer_user):
    return auth_headers(get_auth_token(client, customer_user.email, PASSWORD))


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Shoes", slug="shoes")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name=..., price=..., stock=..., stock_by_size={...}, ...)."""

    def _make(
        name="Test Product",
        price=1000,
        purchase_price=600,
        stock=10,
        discount=None,
        discount_end_time=None,
        stock_by_size=None,
        **fields,
    ):
        product = Product(
            name=name,
            price=price,
            purchase_price=purchase_price,
            discount=discount,
            discount_end_time=discount_end_time,
            stock=stock,
            features=[],
            **fields,
        )
        product.images = [ProductImage(url="https://img.test/p.jpg", public_id="p", is_primary=True)]
        if stock_by_size:
            product.sizes = [ProductSizeStock(size=size, quantity=qty) for size, qty in stock_by_size.items()]
            product.stock = sum(stock_by_size.values())
        db_session.add(product)
        db_session.commit()
        return product

    return _make


def get_auth_token(client, email: str, password: str) -> str:
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
