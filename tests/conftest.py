import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import create_tables, get_db
from core import config as core_config
from services import auth as auth_service
from services import email as email_service
from services import local_store


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.TESTING = True
    core_config.settings.EMAIL_USE_CELERY = False
    yield


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    server = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(local_store, "redis_client", server)
    return server


@pytest.fixture()
def db_session_override():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    create_tables(bind=engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()
        engine.dispose()


@pytest.fixture(autouse=True)
def mock_email_send(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db_session_override):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def test_user(db_session_override):
    """Create a test user."""
    return auth_service.create_account(
        db_session_override,
        full_name="Nadia Rahman",
        email="nadia@example.com",
        password="testpass123",
        phone="01712345678",
    )


@pytest.fixture
def auth_token(db_session_override, test_user):
    """Signed session token for the test user."""
    token, _ = auth_service.issue_session(db_session_override, test_user)
    return token


@pytest.fixture
def auth_headers(auth_token):
    """Return authorization headers with valid token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def shipping_form():
    return {
        "full_name": "Nadia Rahman",
        "email": "nadia@example.com",
        "phone": "01712345678",
        "city": "Dhaka",
        "postal_code": "1205",
        "address_line1": "House 12, Road 7",
        "apartment": "Flat 4B",
        "road_no": "",
        "additional_info": "Call before delivery",
    }


@pytest.fixture
def guest_form(shipping_form):
    return {
        **shipping_form,
        "email": "guest.buyer@example.com",
        "password": "secret123",
        "confirm_password": "secret123",
    }


@pytest.fixture
def cart_item():
    return {
        "product_id": 101,
        "name": "Linen Panjabi",
        "price": 100,
        "quantity": 2,
        "discount": {"percentage": 20, "amount": 0},
        "size": "M",
        "color": "Beige",
    }


@pytest.fixture
def filled_cart(client, cart_item):
    """Cart token of a cart holding one discounted line (2 x 80)."""
    response = client.post("/cart/items", json=cart_item)
    assert response.status_code == 201
    return response.json()["token"]
