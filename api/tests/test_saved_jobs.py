from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from empleos.core.config import get_settings
from empleos.core.security import issue_token_pair
from empleos.main import app
from empleos.services.repository import RepositoryConflictError, RepositoryNotFoundError, get_repository

SEEKER_A = "00000000-0000-0000-0000-0000000000a1"
SEEKER_B = "00000000-0000-0000-0000-0000000000b2"
COMPANY_USER = "00000000-0000-0000-0000-0000000000c3"
COMPANY_ID = "11111111-1111-1111-1111-111111111111"
ACTIVE_JOB = "22222222-2222-2222-2222-222222222222"
SECOND_JOB = "33333333-3333-3333-3333-333333333333"
DRAFT_JOB = "44444444-4444-4444-4444-444444444444"


def _job(job_id: str, title: str, status: str) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "id": job_id,
        "company_id": COMPANY_ID,
        "company_name": "Inclusiva SpA",
        "posted_by": COMPANY_USER,
        "title": title,
        "description": "Rol inclusivo con apoyo de accesibilidad en el puesto.",
        "job_type": "full_time",
        "work_modality": "hybrid",
        "status": status,
        "created_at": now,
        "updated_at": now,
    }


class FakeSavedJobsRepository:
    def __init__(self) -> None:
        now = datetime.now(timezone.utc)
        self.users = {
            user_id: {
                "id": user_id,
                "email": f"{user_id[-2:]}@example.cl",
                "user_type": user_type,
                "account_status": "active",
                "token_version": 0,
                "created_at": now,
                "updated_at": now,
            }
            for user_id, user_type in [
                (SEEKER_A, "job_seeker"),
                (SEEKER_B, "job_seeker"),
                (COMPANY_USER, "company"),
            ]
        }
        self.jobs = {
            ACTIVE_JOB: _job(ACTIVE_JOB, "Analista de datos", "active"),
            SECOND_JOB: _job(SECOND_JOB, "Asistente administrativo", "active"),
            DRAFT_JOB: _job(DRAFT_JOB, "Borrador de oferta", "draft"),
        }
        self.saved: list[dict[str, Any]] = []

    async def get_auth_user(self, user_id: str) -> dict[str, Any] | None:
        return self.users.get(user_id)

    async def list_saved_jobs(self, user_id: str, *, limit: int, offset: int):
        rows = [
            row
            for row in reversed(self.saved)
            if row["user_id"] == user_id and self.jobs[row["job_id"]]["status"] == "active"
        ]
        page = [
            {"saved_job": row, "job": self.jobs[row["job_id"]], "company_name": self.jobs[row["job_id"]]["company_name"]}
            for row in rows[offset : offset + limit]
        ]
        return page, len(rows)

    async def save_job(self, user_id: str, job_id: str) -> dict[str, Any]:
        job = self.jobs.get(job_id)
        if job is None or job["status"] != "active":
            raise RepositoryNotFoundError("Job not found or not active")
        if any(row["user_id"] == user_id and row["job_id"] == job_id for row in self.saved):
            raise RepositoryConflictError("Job already saved")
        row = {
            "id": f"saved-{len(self.saved) + 1}",
            "user_id": user_id,
            "job_id": job_id,
            "created_at": datetime.now(timezone.utc),
        }
        self.saved.append(row)
        return {"saved_job_id": row["id"], "job_id": job_id}

    async def unsave_job(self, user_id: str, job_id: str) -> None:
        for row in self.saved:
            if row["user_id"] == user_id and row["job_id"] == job_id:
                self.saved.remove(row)
                return
        raise RepositoryNotFoundError("Saved job not found")

    async def is_job_saved(self, user_id: str, job_id: str) -> bool:
        return any(row["user_id"] == user_id and row["job_id"] == job_id for row in self.saved)


@pytest.fixture
def fake_repo() -> FakeSavedJobsRepository:
    return FakeSavedJobsRepository()


@pytest.fixture
def client(fake_repo: FakeSavedJobsRepository) -> TestClient:
    app.dependency_overrides[get_repository] = lambda: fake_repo

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _auth(repo: FakeSavedJobsRepository, user_id: str) -> dict[str, str]:
    tokens = issue_token_pair(repo.users[user_id], get_settings())
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def test_save_twice_is_rejected(client: TestClient, fake_repo: FakeSavedJobsRepository) -> None:
    headers = _auth(fake_repo, SEEKER_A)

    first = client.post(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers)
    assert first.status_code == 201
    body = first.json()
    assert body["job_id"] == ACTIVE_JOB
    assert body["saved_job_id"]
    assert body["message"]

    second = client.post(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers)
    assert second.status_code == 400
    assert second.json()["detail"] == "Job already saved"


def test_saving_inactive_or_missing_job_returns_404(client: TestClient, fake_repo: FakeSavedJobsRepository) -> None:
    headers = _auth(fake_repo, SEEKER_A)
    assert client.post(f"/api/me/saved-jobs/{DRAFT_JOB}", headers=headers).status_code == 404
    assert client.post("/api/me/saved-jobs/99999999-9999-9999-9999-999999999999", headers=headers).status_code == 404


def test_unsave_requires_existing_save(client: TestClient, fake_repo: FakeSavedJobsRepository) -> None:
    headers = _auth(fake_repo, SEEKER_A)

    missing = client.delete(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers)
    assert missing.status_code == 404

    client.post(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers)
    removed = client.delete(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers)
    assert removed.status_code == 200
    assert client.delete(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers).status_code == 404


def test_check_is_idempotent(client: TestClient, fake_repo: FakeSavedJobsRepository) -> None:
    headers = _auth(fake_repo, SEEKER_A)
    check_path = f"/api/me/saved-jobs/{ACTIVE_JOB}/check"

    for _ in range(2):
        assert client.get(check_path, headers=headers).json() == {"job_id": ACTIVE_JOB, "is_saved": False}

    client.post(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers)

    for _ in range(2):
        assert client.get(check_path, headers=headers).json() == {"job_id": ACTIVE_JOB, "is_saved": True}


def test_saves_are_scoped_per_user(client: TestClient, fake_repo: FakeSavedJobsRepository) -> None:
    headers_a = _auth(fake_repo, SEEKER_A)
    headers_b = _auth(fake_repo, SEEKER_B)

    assert client.post(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers_a).status_code == 201
    assert client.post(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers_b).status_code == 201
    assert client.post(f"/api/me/saved-jobs/{SECOND_JOB}", headers=headers_b).status_code == 201

    list_a = client.get("/api/me/saved-jobs", headers=headers_a).json()
    list_b = client.get("/api/me/saved-jobs", headers=headers_b).json()

    assert list_a["total"] == 1
    assert [item["saved_job"]["user_id"] for item in list_a["data"]] == [SEEKER_A]
    assert list_b["total"] == 2
    assert {item["job"]["id"] for item in list_b["data"]} == {ACTIVE_JOB, SECOND_JOB}
    assert all(item["company_name"] == "Inclusiva SpA" for item in list_b["data"])


def test_total_is_independent_of_page_size(client: TestClient, fake_repo: FakeSavedJobsRepository) -> None:
    headers = _auth(fake_repo, SEEKER_B)
    client.post(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers)
    client.post(f"/api/me/saved-jobs/{SECOND_JOB}", headers=headers)

    page = client.get("/api/me/saved-jobs", params={"limit": 1, "offset": 1}, headers=headers).json()
    assert page["total"] == 2
    assert page["limit"] == 1
    assert page["offset"] == 1
    assert len(page["data"]) == 1
    assert page["data"][0]["job"]["id"] == ACTIVE_JOB


def test_non_job_seekers_are_forbidden(client: TestClient, fake_repo: FakeSavedJobsRepository) -> None:
    headers = _auth(fake_repo, COMPANY_USER)
    assert client.get("/api/me/saved-jobs", headers=headers).status_code == 403
    assert client.post(f"/api/me/saved-jobs/{ACTIVE_JOB}", headers=headers).status_code == 403
    assert client.get(f"/api/me/saved-jobs/{ACTIVE_JOB}/check", headers=headers).status_code == 403


def test_saved_jobs_require_authentication(client: TestClient) -> None:
    assert client.get("/api/me/saved-jobs").status_code == 401
