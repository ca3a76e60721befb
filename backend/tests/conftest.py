"""
Pytest fixtures for the group-buy backend tests.

Provides an in-memory app, per-test table wipe, role users with bearer
tokens and small builders for catalog, region and batch rows.
"""

import pytest
from groupbuy import create_app
from groupbuy.extensions import db
from groupbuy.models import Product, Region
from groupbuy.models.auth import ROLE_ADMIN, ROLE_HOST, ROLE_CUSTOMER
from groupbuy.services.auth_service import create_user
from groupbuy.services import session_service, batch_service


TEST_PASSWORD = "Passw0rd!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_CONTACT_NUMBER': '639170000000',
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
    return create_user(email="admin@groupbuy.test", password=TEST_PASSWORD, first_name="Ada", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def host_user(db_session):
    return create_user(email="host@groupbuy.test", password=TEST_PASSWORD, first_name="Hana", role=ROLE_HOST)


@pytest.fixture(scope='function')
def other_host(db_session):
    return create_user(email="host2@groupbuy.test", password=TEST_PASSWORD, first_name="Hugo", role=ROLE_HOST)


@pytest.fixture(scope='function')
def customer_user(db_session):
    return create_user(email="buyer@groupbuy.test", password=TEST_PASSWORD, first_name="Bea", role=ROLE_CUSTOMER)


def token_for(user) -> str:
    _, token = session_service.create_session(user.id)
    return token


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(token_for(admin_user))


@pytest.fixture(scope='function')
def host_headers(host_user):
    return auth_headers(token_for(host_user))


@pytest.fixture(scope='function')
def customer_headers(customer_user):
    return auth_headers(token_for(customer_user))


def make_product(name="BPC-157", vial_cents=100_000, box_cents=900_000, category="Healing & Recovery", **extra):
    product = Product(
        name=name,
        category=category,
        description=extra.pop("description", "5mg"),
        price_per_vial_cents=vial_cents,
        price_per_box_cents=box_cents,
        vials_per_box=extra.pop("vials_per_box", 10),
        is_active=extra.pop("is_active", True),
        **extra,
    )
    db.session.add(product)
    db.session.commit()
    return product


def make_region(host=None, name="Cebu Peptide Circle", city="Cebu City", contact="+63 917 555 0101"):
    region = Region(
        name=name,
        region="Central Visayas",
        city=city,
        host_user_id=host.id if host else None,
        contact_handle=contact,
        join_fee_cents=0,
        is_active=True,
    )
    db.session.add(region)
    db.session.commit()
    return region


def make_batch(actor, products, *, batch_type="group_buy", region=None, status="active", name="Batch 1", **patch):
    """products: list of (product, target_vials[, price_per_vial_cents])."""
    entries = []
    for entry in products:
        product, target = entry[0], entry[1]
        row = {"product_id": product.id, "target_vials": target}
        if len(entry) > 2:
            row["price_per_vial_cents"] = entry[2]
        entries.append(row)
    patch.setdefault("name", name)
    return batch_service.create_batch(
        actor=actor,
        batch_type=batch_type,
        patch=patch,
        products=entries,
        region_id=region.id if region else None,
        status=status,
    )


def cart_line(batch, product, quantity, mode=None):
    """JSON cart line for a batch membership."""
    membership = next(m for m in batch.memberships if m.product_id == product.id)
    line = {
        "mode": mode or batch.batch_type,
        "product_id": product.id,
        "batch_id": batch.id,
        "batch_product_id": membership.id,
        "quantity": quantity,
        "name": product.name,
        "unit_price_cents": membership.price_per_vial_cents,
        "max_quantity": membership.remaining_vials,
    }
    if line["mode"] == "sub_group":
        line["region_id"] = batch.region_id
    return line


CUSTOMER_FIELDS = {
    "customer_name": "Juan Dela Cruz",
    "contact_handle": "+63 917 123 4567",
    "customer_email": "juan@example.com",
}

SHIPPING_FIELDS = {
    "shipping_address": "12 Mango St",
    "shipping_city": "Makati",
    "shipping_province": "Metro Manila",
    "shipping_zip_code": "1200",
}


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
