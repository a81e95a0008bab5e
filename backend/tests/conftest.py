"""
Pytest fixtures for the SyncPOS backend tests.

Provides an in-memory local store, tenant/user/product fixtures and a
FakeRemote: an in-memory PostgREST emulation served to the real
RemoteGateway through httpx.MockTransport (no network).
"""

import json
from collections import defaultdict

import bcrypt
import httpx
import pytest

from syncpos import create_app
from syncpos.extensions import db
from syncpos.models import Tenant, User, Product, Customer, Supplier
from syncpos.services.tenant_service import TenantContext
from syncpos.sync.remote import RemoteGateway
from syncpos.sync.scheduler import get_scheduler
from syncpos.time_utils import utcnow


TENANT_UUID = "11111111-1111-4111-8111-111111111111"
OTHER_TENANT_UUID = "22222222-2222-4222-8222-222222222222"
API_KEY = "test-key"
REMOTE_URL = "https://remote.test"
PASSWORD = "secret123"


class FakeRemote:
    """
    In-memory stand-in for the remote collection API.

    GET  /rest/v1/<entity>?tenant_id=eq.<uuid>
    POST /rest/v1/<entity>?on_conflict=uuid   (merge by uuid)
    GET  /rest/v1/tenants?license_key=eq.<key>&limit=1
    """

    PREFIX = "/rest/v1/"

    def __init__(self):
        self.reset()

    def reset(self):
        self.tables = defaultdict(dict)
        self.tenants = []
        self.requests = []
        self.posts = []
        self.fail_posts = set()
        self.fail_fetch = set()
        self.offline = False
        self.on_post = None

    def seed(self, entity: str, *rows: dict):
        for row in rows:
            self.tables[entity][row["uuid"]] = dict(row)

    def rows(self, entity: str) -> list[dict]:
        return list(self.tables[entity].values())

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("remote unreachable", request=request)
        if request.headers.get("apikey") != API_KEY or request.headers.get("authorization") != f"Bearer {API_KEY}":
            return httpx.Response(401, json={"message": "invalid api key"})

        entity = request.url.path[len(self.PREFIX):]
        params = request.url.params

        if request.method == "GET":
            if entity == "tenants":
                key = params.get("license_key", "")[len("eq."):]
                return httpx.Response(200, json=[t for t in self.tenants if t["license_key"] == key][:1])
            if entity in self.fail_fetch:
                return httpx.Response(503, text="unavailable")
            tenant_id = params.get("tenant_id", "")[len("eq."):]
            return httpx.Response(
                200,
                json=[row for row in self.tables[entity].values() if row.get("tenant_id") == tenant_id],
            )

        if request.method == "POST":
            payload = json.loads(request.content)
            if params.get("on_conflict") != "uuid" or "merge-duplicates" not in request.headers.get("prefer", ""):
                return httpx.Response(409, json={"message": "duplicate key"})
            if payload.get("uuid") in self.fail_posts:
                return httpx.Response(500, text="boom")
            if self.on_post is not None:
                self.on_post(entity, payload)
            current = self.tables[entity].get(payload["uuid"], {})
            self.tables[entity][payload["uuid"]] = {**current, **payload}
            self.posts.append((entity, payload["uuid"]))
            return httpx.Response(201)

        return httpx.Response(405)


@pytest.fixture(scope='session')
def fake_remote():
    return FakeRemote()


@pytest.fixture(scope='session')
def app(fake_remote):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SYNCPOS_REMOTE_URL': REMOTE_URL,
        'SYNCPOS_REMOTE_API_KEY': API_KEY,
        'SYNCPOS_REMOTE_TRANSPORT': httpx.MockTransport(fake_remote.handle),
        'SYNC_SCHEDULER_ENABLED': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        get_scheduler(app).shutdown()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, fake_remote):
    """Fresh tables and a fresh remote for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        fake_remote.reset()
        scheduler = get_scheduler(app)
        scheduler.last_results.clear()
        scheduler.last_message = None

        yield db.session

        db.session.rollback()


@pytest.fixture
def remote(app, fake_remote):
    gateway = RemoteGateway.from_config(app.config)
    yield gateway
    gateway.close()


def make_hash(password: str = PASSWORD) -> str:
    # Low cost factor keeps the suite fast
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=4)).decode('utf-8')


@pytest.fixture
def tenant(db_session):
    """An ACTIVE tenant this installation is activated for."""
    t = Tenant(
        uuid=TENANT_UUID,
        license_key="LIC-TEST-0001",
        owner_email="owner@shop.test",
        status="ACTIVE",
        activated_at=utcnow(),
    )
    db_session.add(t)
    db_session.commit()
    return t


@pytest.fixture
def user(db_session, tenant):
    u = User(
        tenant_id=tenant.uuid,
        username="cashier",
        firstname="Cash",
        lastname="Ier",
        password_hash=make_hash(),
        role="cashier",
        is_active=True,
    )
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture
def ctx(user):
    return TenantContext(tenant_id=user.tenant_id, user_id=user.id, username=user.username, role=user.role)


@pytest.fixture
def auth_headers(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def product(db_session, tenant):
    p = Product(
        tenant_id=tenant.uuid,
        sku="WID-1",
        name="Widget",
        purchase_price=4.0,
        selling_price=10.0,
        tax_rate=19.0,
        min_stock_level=5.0,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def second_product(db_session, tenant):
    p = Product(
        tenant_id=tenant.uuid,
        sku="GAD-1",
        name="Gadget",
        purchase_price=20.0,
        selling_price=50.0,
        tax_rate=0.0,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def customer(db_session, tenant):
    c = Customer(tenant_id=tenant.uuid, name="Jane Buyer", email="jane@example.test")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def supplier(db_session, tenant):
    s = Supplier(tenant_id=tenant.uuid, name="Acme Wholesale", credit_limit=1000.0)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture
def stocked_product(ctx, product):
    """Widget with 20 units of opening stock."""
    from syncpos.services.stock_service import record_adjustment
    record_adjustment(ctx, product.id, 20, reason="opening")
    return product
