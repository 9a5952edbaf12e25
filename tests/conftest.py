import os
import random
import tempfile
from pathlib import Path
from typing import Callable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Bind the engine to a throwaway file before any application module is imported.
os.environ.setdefault("DB_PATH", str(Path(tempfile.mkdtemp(prefix="macai_")) / "bootstrap.db"))

from macai.core.security import aadhaar_digest, encrypt_identifier  # noqa: E402
from macai.core.triage import RuleTable, get_rule_table  # noqa: E402
from macai.db.models import User  # noqa: E402
from macai.db.session import SessionLocal, configure_database, create_tables  # noqa: E402


def random_aadhaar() -> str:
    return "".join(random.choice("0123456789") for _ in range(12))


def random_phone() -> str:
    return random.choice("6789") + "".join(random.choice("0123456789") for _ in range(9))


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    db_path = tmp_path_factory.mktemp("db") / "macai_test.db"
    configure_database(str(db_path))
    create_tables()
    return db_path


@pytest.fixture(scope="session")
def app(test_db_path: Path):
    from macai.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    app.dependency_overrides = {}
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}


@pytest.fixture
def db_session(test_db_path: Path):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    def _create_user(aadhaar_id: Optional[str] = None, phone: Optional[str] = None) -> User:
        aadhaar = aadhaar_id or random_aadhaar()
        user = User(
            aadhaar_digest=aadhaar_digest(aadhaar),
            aadhaar_encrypted=encrypt_identifier(aadhaar),
            phone=phone or random_phone(),
            name="Test Patient",
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def registration_payload() -> Callable[..., dict]:
    def _payload(**overrides) -> dict:
        payload = {
            "aadhaar_id": random_aadhaar(),
            "phone": random_phone(),
            "name": "Asha Verma",
            "email": "asha@example.com",
            "age": 34,
            "gender": "female",
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def auth_token(client: TestClient, registration_payload) -> str:
    payload = registration_payload()
    signup = client.post("/api/auth/register", json=payload)
    assert signup.status_code == 201
    login = client.post(
        "/api/auth/login",
        json={"aadhaar_id": payload["aadhaar_id"], "phone": payload["phone"]},
    )
    assert login.status_code == 200
    return login.json()["token"]


@pytest.fixture
def auth_headers(auth_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def start_session(client: TestClient, auth_headers: dict[str, str]) -> Callable[[], str]:
    def _start() -> str:
        response = client.post("/api/chat/start", headers=auth_headers)
        assert response.status_code == 201
        return response.json()["session_id"]

    return _start


@pytest.fixture
def override_rules(app):
    def _override(table: RuleTable) -> None:
        app.dependency_overrides[get_rule_table] = lambda: table

    return _override
