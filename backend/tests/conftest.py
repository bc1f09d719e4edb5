"""
Pytest fixtures for POS backend tests.

Provides test database setup, tenant fixtures (two organizations with
owners, a manager and a cashier), and the test client.
"""

import pytest
from app import create_app
from app.extensions import db
from app.models import Organization, Membership, User, Product
from app.roles import Role
from app.services.auth_service import hash_password


PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'JWT_SECRET': 'test-jwt-secret-with-enough-length-for-hs256',
    # Minimum bcrypt cost keeps the suite fast
    'BCRYPT_ROUNDS': 4,
    'ALLOW_NEGATIVE_STOCK': False,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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


def make_member(session, org, username: str, role: Role, *, name: str | None = None,
                is_active: bool = True, current: bool = True) -> User:
    """Create a user with a membership in org."""
    user = User(
        name=name or username.title(),
        username=username,
        password_hash=hash_password(PASSWORD),
        current_org_id=org.id if current else None,
    )
    session.add(user)
    session.flush()
    session.add(Membership(org_id=org.id, user_id=user.id, role=role.value, is_active=is_active))
    session.commit()
    return user


def make_product(session, org, name: str, *, price_cents: int = 1000, stock: int = 100,
                 sku: str | None = None) -> Product:
    product = Product(org_id=org.id, name=name, sku=sku, price_cents=price_cents, stock_quantity=stock)
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def owner_a(db_session, org_a):
    return make_member(db_session, org_a, "owner_a", Role.OWNER)


@pytest.fixture(scope='function')
def manager_a(db_session, org_a):
    return make_member(db_session, org_a, "manager_a", Role.MANAGER)


@pytest.fixture(scope='function')
def cashier_a(db_session, org_a):
    return make_member(db_session, org_a, "cashier_a", Role.CASHIER)


@pytest.fixture(scope='function')
def owner_b(db_session, org_b):
    return make_member(db_session, org_b, "owner_b", Role.OWNER)


@pytest.fixture(scope='function')
def product_a(db_session, org_a):
    """Create Product in Organization A."""
    return make_product(db_session, org_a, "Product A", price_cents=1000, stock=100, sku="PROD-A-001")


@pytest.fixture(scope='function')
def product_b(db_session, org_b):
    """Create Product in Organization B."""
    return make_product(db_session, org_b, "Product B", price_cents=2000, stock=50, sku="PROD-B-001")


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/v1/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def login_headers(client, username: str, password: str = PASSWORD) -> dict:
    token = get_auth_token(client, username, password)
    assert token, f"login failed for {username}"
    return auth_headers(token)


@pytest.fixture(scope='function')
def owner_headers(client, owner_a):
    return login_headers(client, "owner_a")


@pytest.fixture(scope='function')
def manager_headers(client, manager_a):
    return login_headers(client, "manager_a")


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_a):
    return login_headers(client, "cashier_a")


@pytest.fixture(scope='function')
def owner_b_headers(client, owner_b):
    return login_headers(client, "owner_b")
