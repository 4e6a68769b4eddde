from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from empleos.api.routes import auth as auth_routes
from empleos.core.security import hash_opaque_token, hash_password, verify_password
from empleos.main import app
from empleos.services.repository import (
    RepositoryDuplicateError,
    RepositoryValidationError,
    get_repository,
)


class FakeAuthRepository:
    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.tokens: dict[str, tuple[str, str]] = {}
        self.settings: dict[str, Any] = {"require_email_verification": False}
        self.organizations: list[dict[str, Any]] = []

    def add_user(self, email: str, password: str, user_type: str, account_status: str = "active") -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        user = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password_hash": hash_password(password),
            "first_name": "Ana",
            "last_name": "Rojas",
            "phone": None,
            "user_type": user_type,
            "account_status": account_status,
            "email_verified_at": None,
            "token_version": 0,
            "last_login_at": None,
            "created_at": now,
            "updated_at": now,
        }
        self.users[user["id"]] = user
        return user

    def _public(self, user: dict[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in user.items() if key != "password_hash"}

    async def register_user(self, **kwargs: Any) -> dict[str, Any]:
        email = kwargs["email"].lower()
        if any(user["email"] == email for user in self.users.values()):
            raise RepositoryDuplicateError("Email is already registered")
        user = self.add_user(email, "placeholder", kwargs["user_type"], account_status="pending_verification")
        user["password_hash"] = kwargs["password_hash"]
        if kwargs["organization"]:
            self.organizations.append({"status": "pending_approval", **kwargs["organization"]})
        self.tokens[kwargs["verification_token_hash"]] = ("email_verification", user["id"])
        return self._public(user)

    async def get_user_credentials(self, email: str) -> dict[str, Any] | None:
        for user in self.users.values():
            if user["email"] == email.lower():
                return dict(user)
        return None

    async def get_auth_user(self, user_id: str) -> dict[str, Any] | None:
        user = self.users.get(user_id)
        return self._public(user) if user else None

    async def get_setting_value(self, key: str) -> Any:
        return self.settings.get(key)

    async def record_login(self, user_id: str) -> None:
        self.users[user_id]["last_login_at"] = datetime.now(timezone.utc)

    async def revoke_user_tokens(self, user_id: str) -> int:
        self.users[user_id]["token_version"] += 1
        return self.users[user_id]["token_version"]

    async def create_password_reset_token(self, *, email: str, token_hash: str, expires_at: datetime):
        user = await self.get_user_credentials(email)
        if user is None:
            return None
        self.tokens[token_hash] = ("password_reset", user["id"])
        return self._public(user)

    async def reset_password(self, *, token_hash: str, password_hash: str) -> dict[str, Any]:
        purpose, user_id = self.tokens.pop(token_hash, (None, None))
        if purpose != "password_reset":
            raise RepositoryValidationError("Invalid or expired token")
        user = self.users[user_id]
        user["password_hash"] = password_hash
        user["token_version"] += 1
        return self._public(user)

    async def verify_email(self, *, token_hash: str) -> dict[str, Any]:
        purpose, user_id = self.tokens.pop(token_hash, (None, None))
        if purpose != "email_verification":
            raise RepositoryValidationError("Invalid or expired token")
        user = self.users[user_id]
        user["account_status"] = "active"
        user["email_verified_at"] = datetime.now(timezone.utc)
        return self._public(user)


@pytest.fixture
def fake_repo() -> FakeAuthRepository:
    return FakeAuthRepository()


@pytest.fixture
def client(fake_repo: FakeAuthRepository) -> TestClient:
    app.dependency_overrides[get_repository] = lambda: fake_repo

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _register_payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "email": "Seeker@Example.cl",
        "password": "a-long-password",
        "first_name": "Ana",
        "last_name": "Rojas",
    }
    payload.update(overrides)
    return payload


def test_register_job_seeker_returns_tokens(client: TestClient) -> None:
    response = client.post("/api/auth/register", json=_register_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["token_type"] == "Bearer"
    assert body["access_token"] and body["refresh_token"]
    assert body["user"]["email"] == "seeker@example.cl"
    assert body["user"]["account_status"] == "pending_verification"
    assert "password_hash" not in body["user"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == body["user"]["id"]


def test_register_rejects_duplicates_and_short_passwords(client: TestClient) -> None:
    assert client.post("/api/auth/register", json=_register_payload()).status_code == 201

    duplicate = client.post("/api/auth/register", json=_register_payload(email="seeker@example.cl"))
    assert duplicate.status_code == 409
    assert "already registered" in duplicate.json()["detail"]

    short = client.post("/api/auth/register", json=_register_payload(email="other@example.cl", password="short"))
    assert short.status_code == 400


def test_register_company_creates_pending_organization(client: TestClient, fake_repo: FakeAuthRepository) -> None:
    response = client.post(
        "/api/auth/register/company",
        json=_register_payload(email="rrhh@inclusiva.cl", company={"company_name": "Inclusiva SpA"}),
    )

    assert response.status_code == 201
    assert response.json()["user"]["user_type"] == "company"
    assert fake_repo.organizations == [{"status": "pending_approval", "company_name": "Inclusiva SpA"}]


def test_login_checks_credentials_and_account_state(client: TestClient, fake_repo: FakeAuthRepository) -> None:
    fake_repo.add_user("seeker@example.cl", "a-long-password", "job_seeker")
    fake_repo.add_user("blocked@example.cl", "a-long-password", "job_seeker", account_status="suspended")

    ok = client.post("/api/auth/login", json={"email": "seeker@example.cl", "password": "a-long-password"})
    assert ok.status_code == 200
    assert ok.json()["user"]["last_login_at"] is not None

    wrong = client.post("/api/auth/login", json={"email": "seeker@example.cl", "password": "nope-nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid email or password"

    unknown = client.post("/api/auth/login", json={"email": "ghost@example.cl", "password": "a-long-password"})
    assert unknown.status_code == 401

    blocked = client.post("/api/auth/login", json={"email": "blocked@example.cl", "password": "a-long-password"})
    assert blocked.status_code == 403


def test_login_requires_verified_email_when_enabled(client: TestClient, fake_repo: FakeAuthRepository) -> None:
    fake_repo.add_user("new@example.cl", "a-long-password", "job_seeker", account_status="pending_verification")
    credentials = {"email": "new@example.cl", "password": "a-long-password"}

    assert client.post("/api/auth/login", json=credentials).status_code == 200

    fake_repo.settings["require_email_verification"] = True
    response = client.post("/api/auth/login", json=credentials)
    assert response.status_code == 403
    assert response.json()["detail"] == "email address has not been verified"


def test_company_login_only_accepts_company_accounts(client: TestClient, fake_repo: FakeAuthRepository) -> None:
    fake_repo.add_user("seeker@example.cl", "a-long-password", "job_seeker")
    fake_repo.add_user("rrhh@inclusiva.cl", "a-long-password", "company")

    denied = client.post("/api/auth/login/company", json={"email": "seeker@example.cl", "password": "a-long-password"})
    assert denied.status_code == 403

    allowed = client.post("/api/auth/login/company", json={"email": "rrhh@inclusiva.cl", "password": "a-long-password"})
    assert allowed.status_code == 200


def test_refresh_and_logout_revocation(client: TestClient, fake_repo: FakeAuthRepository) -> None:
    fake_repo.add_user("seeker@example.cl", "a-long-password", "job_seeker")
    tokens = client.post("/api/auth/login", json={"email": "seeker@example.cl", "password": "a-long-password"}).json()

    refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    access_token = refreshed.json()["access_token"]

    wrong_type = client.post("/api/auth/refresh", json={"refresh_token": access_token})
    assert wrong_type.status_code == 401

    headers = {"Authorization": f"Bearer {access_token}"}
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/me", headers=headers).status_code == 401
    assert client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401


def test_forgot_password_is_generic_and_reset_consumes_token(
    client: TestClient,
    fake_repo: FakeAuthRepository,
) -> None:
    user = fake_repo.add_user("seeker@example.cl", "a-long-password", "job_seeker")

    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@example.cl"})
    known = client.post("/api/auth/forgot-password", json={"email": "seeker@example.cl"})
    assert unknown.status_code == known.status_code == 200
    assert unknown.json() == known.json()

    fake_repo.tokens[hash_opaque_token("reset-token")] = ("password_reset", user["id"])
    reset = client.post("/api/auth/reset-password", json={"token": "reset-token", "new_password": "brand-new-pass"})
    assert reset.status_code == 200
    assert fake_repo.users[user["id"]]["token_version"] == 1

    reused = client.post("/api/auth/reset-password", json={"token": "reset-token", "new_password": "brand-new-pass"})
    assert reused.status_code == 400
    assert reused.json()["detail"] == "Invalid or expired token"

    login = client.post("/api/auth/login", json={"email": "seeker@example.cl", "password": "brand-new-pass"})
    assert login.status_code == 200


def test_verify_email_activates_account(client: TestClient, fake_repo: FakeAuthRepository) -> None:
    user = fake_repo.add_user("new@example.cl", "a-long-password", "job_seeker", account_status="pending_verification")
    fake_repo.tokens[hash_opaque_token("verify-token")] = ("email_verification", user["id"])

    response = client.post("/api/auth/verify-email", json={"token": "verify-token"})
    assert response.status_code == 200
    assert response.json()["account_status"] == "active"

    again = client.post("/api/auth/verify-email", json={"token": "verify-token"})
    assert again.status_code == 400


def test_register_rejects_passwords_longer_than_bcrypt_accepts(
    client: TestClient,
    fake_repo: FakeAuthRepository,
) -> None:
    response = client.post("/api/auth/register", json=_register_payload(password="p" * 100))
    assert response.status_code == 400
    assert "72 bytes" in str(response.json()["detail"])
    assert fake_repo.users == {}

    # 37 two-byte characters pass the character limit but encode to 74 bytes.
    multibyte = client.post("/api/auth/register", json=_register_payload(password="ñ" * 37))
    assert multibyte.status_code == 400

    at_limit = client.post("/api/auth/register", json=_register_payload(password="p" * 72))
    assert at_limit.status_code == 201


def test_reset_password_rejects_passwords_longer_than_bcrypt_accepts(
    client: TestClient,
    fake_repo: FakeAuthRepository,
) -> None:
    user = fake_repo.add_user("seeker@example.cl", "a-long-password", "job_seeker")
    fake_repo.tokens[hash_opaque_token("reset-token")] = ("password_reset", user["id"])

    response = client.post("/api/auth/reset-password", json={"token": "reset-token", "new_password": "p" * 100})

    assert response.status_code == 400
    assert hash_opaque_token("reset-token") in fake_repo.tokens
    assert fake_repo.users[user["id"]]["token_version"] == 0


def test_login_with_overlong_password_is_rejected_as_invalid(client: TestClient, fake_repo: FakeAuthRepository) -> None:
    fake_repo.add_user("seeker@example.cl", "a-long-password", "job_seeker")

    response = client.post("/api/auth/login", json={"email": "seeker@example.cl", "password": "p" * 100})

    assert response.status_code == 401


def test_password_hashing_runs_off_the_event_loop_thread(
    client: TestClient,
    fake_repo: FakeAuthRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    threads: dict[str, int] = {}

    def recording_hash(password: str) -> str:
        threads["hash"] = threading.get_ident()
        return hash_password(password)

    def recording_verify(password: str, password_hash: str | None) -> bool:
        threads["verify"] = threading.get_ident()
        return verify_password(password, password_hash)

    original_register = fake_repo.register_user

    async def recording_register(**kwargs: Any) -> dict[str, Any]:
        threads["loop"] = threading.get_ident()
        return await original_register(**kwargs)

    monkeypatch.setattr(auth_routes, "hash_password", recording_hash)
    monkeypatch.setattr(auth_routes, "verify_password", recording_verify)
    monkeypatch.setattr(fake_repo, "register_user", recording_register)

    assert client.post("/api/auth/register", json=_register_payload()).status_code == 201
    assert client.post(
        "/api/auth/login",
        json={"email": "seeker@example.cl", "password": "a-long-password"},
    ).status_code == 200

    assert threads["hash"] != threads["loop"]
    assert threads["verify"] != threads["loop"]
