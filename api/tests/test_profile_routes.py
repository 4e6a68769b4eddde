from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from empleos.core.config import get_settings
from empleos.core.security import issue_token_pair
from empleos.main import app
from empleos.services.repository import RepositoryNotFoundError, get_repository

SEEKER = "00000000-0000-0000-0000-0000000000a1"
OTHER_SEEKER = "00000000-0000-0000-0000-0000000000a2"
COMPANY_USER = "00000000-0000-0000-0000-0000000000c1"


class FakeProfileRepository:
    def __init__(self) -> None:
        now = datetime.now(timezone.utc)
        self.users = {
            user_id: {
                "id": user_id,
                "email": f"{user_id[-2:]}@example.cl",
                "first_name": "Ana",
                "last_name": "Rojas",
                "user_type": user_type,
                "account_status": "active",
                "token_version": 0,
                "created_at": now,
                "updated_at": now,
            }
            for user_id, user_type in [(SEEKER, "job_seeker"), (OTHER_SEEKER, "job_seeker"), (COMPANY_USER, "company")]
        }
        self.profiles: dict[str, dict[str, Any]] = {}
        self.items: dict[str, list[dict[str, Any]]] = {}

    async def get_auth_user(self, user_id: str) -> dict[str, Any] | None:
        return self.users.get(user_id)

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        user = self.users[user_id]
        profile = self.profiles.setdefault(user_id, {"has_disability_certificate": False})
        return {
            "user_id": user_id,
            "email": user["email"],
            "first_name": user["first_name"],
            "last_name": user["last_name"],
            "created_at": user["created_at"],
            "updated_at": user["updated_at"],
            **profile,
        }

    async def update_profile(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        for key in ("first_name", "last_name"):
            if key in fields:
                self.users[user_id][key] = fields.pop(key)
        self.profiles.setdefault(user_id, {"has_disability_certificate": False}).update(fields)
        return await self.get_profile(user_id)

    async def list_profile_items(self, user_id: str, section: str) -> list[dict[str, Any]]:
        return [item for item in self.items.get(section, []) if item["user_id"] == user_id]

    async def create_profile_item(self, user_id: str, section: str, fields: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        item = {**fields, "id": str(uuid.uuid4()), "user_id": user_id, "created_at": now, "updated_at": now}
        self.items.setdefault(section, []).append(item)
        return item

    def _find(self, user_id: str, section: str, item_id: str) -> dict[str, Any]:
        for item in self.items.get(section, []):
            if item["id"] == item_id and item["user_id"] == user_id:
                return item
        raise RepositoryNotFoundError(f"{section} entry not found")

    async def update_profile_item(
        self,
        user_id: str,
        section: str,
        item_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        item = self._find(user_id, section, item_id)
        item.update(fields)
        return item

    async def delete_profile_item(self, user_id: str, section: str, item_id: str) -> None:
        self.items[section].remove(self._find(user_id, section, item_id))


@pytest.fixture
def fake_repo() -> FakeProfileRepository:
    return FakeProfileRepository()


@pytest.fixture
def client(fake_repo: FakeProfileRepository) -> TestClient:
    app.dependency_overrides[get_repository] = lambda: fake_repo

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _auth(repo: FakeProfileRepository, user_id: str) -> dict[str, str]:
    tokens = issue_token_pair(repo.users[user_id], get_settings())
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def test_profile_update_keeps_required_fields(client: TestClient, fake_repo: FakeProfileRepository) -> None:
    headers = _auth(fake_repo, SEEKER)

    updated = client.put(
        "/api/me/profile",
        json={"region": "Biobío", "accessibility_needs": "Lector de pantalla"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["region"] == "Biobío"
    assert updated.json()["first_name"] == "Ana"

    assert client.put("/api/me/profile", json={"first_name": None}, headers=headers).status_code == 400


def test_experience_entries_are_validated_and_owned(client: TestClient, fake_repo: FakeProfileRepository) -> None:
    headers = _auth(fake_repo, SEEKER)
    entry = {
        "company_name": "Municipalidad de Talca",
        "position_title": "Asistente",
        "start_date": "2021-03-01",
        "end_date": "2023-02-28",
    }

    backwards = client.post(
        "/api/me/experience",
        json={**entry, "start_date": "2024-01-01"},
        headers=headers,
    )
    assert backwards.status_code == 400

    current_with_end = client.post("/api/me/experience", json={**entry, "is_current": True}, headers=headers)
    assert current_with_end.status_code == 400

    created = client.post("/api/me/experience", json=entry, headers=headers)
    assert created.status_code == 201
    item_id = created.json()["id"]

    assert [row["id"] for row in client.get("/api/me/experience", headers=headers).json()] == [item_id]

    other = _auth(fake_repo, OTHER_SEEKER)
    assert client.get("/api/me/experience", headers=other).json() == []
    assert client.delete(f"/api/me/experience/{item_id}", headers=other).status_code == 404

    assert client.delete(f"/api/me/experience/{item_id}", headers=headers).status_code == 204
    assert client.get("/api/me/experience", headers=headers).json() == []


def test_skill_proficiency_bounds(client: TestClient, fake_repo: FakeProfileRepository) -> None:
    headers = _auth(fake_repo, SEEKER)

    assert client.post("/api/me/skills", json={"skill_name": "Excel", "proficiency_level": 6}, headers=headers).status_code == 400

    created = client.post("/api/me/skills", json={"skill_name": "Excel"}, headers=headers)
    assert created.status_code == 201
    assert created.json()["proficiency_level"] == 3


def test_profile_endpoints_are_for_job_seekers(client: TestClient, fake_repo: FakeProfileRepository) -> None:
    headers = _auth(fake_repo, COMPANY_USER)

    assert client.get("/api/me/profile", headers=headers).status_code == 403
    assert client.get("/api/me/education", headers=headers).status_code == 403
    assert client.get("/api/me/profile").status_code == 401
