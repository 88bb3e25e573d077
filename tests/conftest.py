"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional, Tuple

import mongomock
import pytest
from fastapi import Header
from fastapi.testclient import TestClient

import main
from errors import UnauthorizedError
from service import TenancyService

ADMIN_EMAIL = "admin@example.com"


class FakePaymentProvider:
    """Records payment intents instead of calling Stripe."""

    def __init__(self) -> None:
        self.calls: List[Tuple[int, str]] = []

    def create_payment_intent(self, amount: int, currency: str) -> str:
        self.calls.append((amount, currency))
        return f"pi_{amount}_secret"


def fake_verify_token(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    """Treat the bearer token as the caller's email."""
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Missing Authorization header")
    email = authorization[len("Bearer "):]
    return {"uid": f"uid-{email}", "email": email}


@pytest.fixture
def db():
    """Fresh in-memory database for each test."""
    return mongomock.MongoClient().db


@pytest.fixture
def payments() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def service(db, payments) -> TenancyService:
    return TenancyService(db, payments)


@pytest.fixture
def client(service):
    main.app.dependency_overrides[main.get_service] = lambda: service
    main.app.dependency_overrides[main.verify_token] = fake_verify_token
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Build Authorization headers for an email."""

    def headers(email: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {email}"}

    return headers


@pytest.fixture
def admin(db) -> str:
    db.users.insert_one({"email": ADMIN_EMAIL, "role": "admin"})
    return ADMIN_EMAIL


@pytest.fixture
def apartments(db) -> None:
    """Ten apartments with rents 1000, 1100, ... 1900; every third is featured."""
    db.apartments.insert_many(
        [
            {
                "floor": i // 4 + 1,
                "block": "A" if i < 5 else "B",
                "apartmentNo": f"{i + 101}",
                "rent": 1000 + i * 100,
                "featured": i % 3 == 0,
            }
            for i in range(10)
        ]
    )
