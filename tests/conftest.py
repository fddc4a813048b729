import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app
from schemas import AuthUser, Product, TokenData
from storage import MemoryStorage


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient()["ecommerce_test"]
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def token_data(clock):
    return TokenData(
        access_token="access-1",
        refresh_token="refresh-1",
        expires_at=clock.now + 3600,
        user=AuthUser(id="u1", email="jane@example.com", roles=["USER", "ADMIN"]),
    )


@pytest.fixture
def new_user():
    return {
        "email": "jane@example.com",
        "username": "jane",
        "password": "S3cret!pass",
        "firstName": "Jane",
        "lastName": "Doe",
    }


@pytest.fixture
def mouse():
    return Product(
        id="p1",
        name="Wireless Mouse",
        price=19.99,
        category="Electronics",
        images=["/products/Electronics/Wireless+Mouse/1.jpg"],
        stock=5,
    )


@pytest.fixture
def keyboard():
    return Product(
        id="p2",
        name="Mechanical Keyboard",
        price=89.5,
        category="Electronics",
        stock=2,
    )
