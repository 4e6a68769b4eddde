from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest
from fastapi.testclient import TestClient

from empleos.core.config import get_settings
from empleos.core.security import hash_password
from empleos.main import app
from empleos.services.repository import get_repository

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "schema.sql"

INTEGRATION_TABLES = (
    "saved_jobs",
    "job_applications",
    "jobs",
    "company_members",
    "company_profiles",
    "omil_members",
    "omil_organizations",
    "profile_education",
    "profile_experience",
    "profile_skills",
    "profile_languages",
    "profile_portfolio",
    "job_seeker_profiles",
    "auth_tokens",
    "admin_audit_logs",
    "users",
)

ADMIN_EMAIL = "admin@empleos.cl"
ADMIN_PASSWORD = "admin-password"

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("EI_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require EI_DATABASE_URL or DATABASE_URL")
    _run(_apply_schema(url))
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_truncate_integration_tables(database_url))
    _run(_create_admin(database_url))


@pytest.fixture
def api_client(database_url: str) -> TestClient:
    os.environ["EI_DATABASE_URL"] = database_url
    get_settings.cache_clear()
    get_repository.cache_clear()

    with TestClient(app) as client:
        yield client

    get_repository.cache_clear()
    get_settings.cache_clear()


def test_company_job_moves_from_draft_to_public_listing(api_client: TestClient, database_url: str) -> None:
    admin = _login(api_client, ADMIN_EMAIL, ADMIN_PASSWORD)
    company = _register(
        api_client,
        "/api/auth/register/company",
        email="rrhh@inclusiva.cl",
        company={"company_name": "Inclusiva SpA", "region": "Valparaíso"},
    )

    profile = api_client.get("/api/me/company/profile", headers=company)
    assert profile.status_code == 200
    assert profile.json()["status"] == "pending_approval"
    assert profile.json()["member_role"] == "owner"
    company_id = profile.json()["id"]

    job_payload = {
        "title": "Analista de datos",
        "description": "Análisis de indicadores con ajustes razonables y apoyo de accesibilidad.",
        "job_type": "full_time",
        "work_modality": "hybrid",
        "region": "Valparaíso",
    }
    blocked = api_client.post("/api/me/company/jobs", json=job_payload, headers=company)
    assert blocked.status_code == 403

    pending = api_client.get("/api/admin/companies/pending", headers=admin).json()
    assert [row["id"] for row in pending["data"]] == [company_id]

    approved_company = api_client.patch(
        f"/api/admin/companies/{company_id}/approve",
        json={"approval_notes": "Documentación verificada"},
        headers=admin,
    )
    assert approved_company.status_code == 200
    assert approved_company.json()["status"] == "active"

    created = api_client.post("/api/me/company/jobs", json=job_payload, headers=company)
    assert created.status_code == 201
    job_id = created.json()["id"]
    assert created.json()["status"] == "draft"
    assert api_client.get("/api/jobs").json()["total"] == 0

    submitted = api_client.patch(
        f"/api/me/company/jobs/{job_id}/status",
        json={"status": "pending_approval"},
        headers=company,
    )
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "pending_approval"

    approved_job = api_client.patch(f"/api/admin/jobs/{job_id}/approve", headers=admin)
    assert approved_job.status_code == 200
    assert approved_job.json()["status"] == "active"
    assert approved_job.json()["approved_at"] is not None

    second_approval = api_client.patch(f"/api/admin/jobs/{job_id}/approve", headers=admin)
    assert second_approval.status_code == 400

    listing = api_client.get("/api/jobs", params={"search": "datos"}).json()
    assert listing["total"] == 1
    assert listing["data"][0]["id"] == job_id
    assert listing["data"][0]["company_name"] == "Inclusiva SpA"

    detail = api_client.get(f"/api/jobs/{job_id}")
    assert detail.status_code == 200

    audit_actions = _run(
        _fetch_column(
            database_url,
            "select action_type from admin_audit_logs where entity_id in ($1::uuid, $2::uuid) order by created_at",
            company_id,
            job_id,
        )
    )
    assert audit_actions == ["approve_company", "approve_job"]

    views = _run(_fetch_column(database_url, "select views_count from jobs where id = $1::uuid", job_id))
    assert views == [1]


def test_job_seekers_save_and_apply_independently(api_client: TestClient, database_url: str) -> None:
    job_id = _seed_active_job(database_url)
    seeker_a = _register(api_client, "/api/auth/register", email="ana@example.cl")
    seeker_b = _register(api_client, "/api/auth/register", email="bruno@example.cl")

    assert api_client.post(f"/api/me/saved-jobs/{job_id}", headers=seeker_a).status_code == 201
    assert api_client.post(f"/api/me/saved-jobs/{job_id}", headers=seeker_a).status_code == 400
    assert api_client.get(f"/api/me/saved-jobs/{job_id}/check", headers=seeker_b).json()["is_saved"] is False

    saved_a = api_client.get("/api/me/saved-jobs", headers=seeker_a).json()
    assert saved_a["total"] == 1
    assert saved_a["data"][0]["job"]["id"] == job_id
    assert api_client.get("/api/me/saved-jobs", headers=seeker_b).json()["total"] == 0

    application = api_client.post(
        "/api/me/applications",
        json={"job_id": job_id, "cover_letter": "Me interesa mucho el puesto."},
        headers=seeker_b,
    )
    assert application.status_code == 201
    assert application.json()["status"] == "submitted"

    duplicate = api_client.post("/api/me/applications", json={"job_id": job_id}, headers=seeker_b)
    assert duplicate.status_code == 400

    applications_count = _run(
        _fetch_column(database_url, "select applications_count from jobs where id = $1::uuid", job_id)
    )
    assert applications_count == [1]

    withdrawn = api_client.patch(f"/api/me/applications/{application.json()['id']}/withdraw", headers=seeker_b)
    assert withdrawn.status_code == 200
    assert withdrawn.json()["status"] == "withdrawn"

    foreign = api_client.get(f"/api/me/applications/{application.json()['id']}", headers=seeker_a)
    assert foreign.status_code == 404


def test_rejections_are_audited_and_final(api_client: TestClient, database_url: str) -> None:
    admin = _login(api_client, ADMIN_EMAIL, ADMIN_PASSWORD)
    company = _register(
        api_client,
        "/api/auth/register/company",
        email="rrhh@inclusiva.cl",
        company={"company_name": "Inclusiva SpA"},
    )
    company_id = api_client.get("/api/me/company/profile", headers=company).json()["id"]
    assert api_client.patch(f"/api/admin/companies/{company_id}/approve", headers=admin).status_code == 200

    created = api_client.post(
        "/api/me/company/jobs",
        json={
            "title": "Operario de bodega",
            "description": "Preparación de pedidos en turno de mañana, solo menores de 30 años.",
            "job_type": "full_time",
            "work_modality": "on_site",
        },
        headers=company,
    )
    job_id = created.json()["id"]
    api_client.patch(f"/api/me/company/jobs/{job_id}/status", json={"status": "pending_approval"}, headers=company)

    rejected_job = api_client.patch(
        f"/api/admin/jobs/{job_id}/reject",
        json={"rejection_reason": "La oferta discrimina por edad"},
        headers=admin,
    )
    assert rejected_job.status_code == 200
    assert rejected_job.json()["status"] == "rejected"
    assert rejected_job.json()["rejection_reason"] == "La oferta discrimina por edad"
    assert rejected_job.json()["approved_at"] is None
    assert api_client.patch(f"/api/admin/jobs/{job_id}/approve", headers=admin).status_code == 400
    assert api_client.get(f"/api/jobs/{job_id}").status_code == 404

    omil = _register(
        api_client,
        "/api/auth/register/omil",
        email="omil@valparaiso.cl",
        omil={"organization_name": "OMIL Valparaíso", "municipality": "Valparaíso"},
    )
    omil_profile = api_client.get("/api/me/omil/profile", headers=omil)
    assert omil_profile.status_code == 200
    assert omil_profile.json()["member_role"] == "director"
    omil_id = omil_profile.json()["id"]

    short = api_client.patch(f"/api/admin/omils/{omil_id}/reject", json={"rejection_reason": "no"}, headers=admin)
    assert short.status_code == 400

    rejected_omil = api_client.patch(
        f"/api/admin/omils/{omil_id}/reject",
        json={"rejection_reason": "Decreto municipal no adjunto"},
        headers=admin,
    )
    assert rejected_omil.status_code == 200
    assert rejected_omil.json()["status"] == "rejected"

    again = api_client.patch(f"/api/admin/omils/{omil_id}/approve", headers=admin)
    assert again.status_code == 400
    assert again.json()["detail"] == "OMIL organization is not pending approval"

    missing = api_client.patch(f"/api/admin/omils/urn:uuid:{omil_id}/approve", headers=admin)
    assert missing.status_code == 404

    audit_rows = _run(
        _fetch_column(
            database_url,
            "select action_type || ':' || entity_type from admin_audit_logs "
            "where entity_id in ($1::uuid, $2::uuid) order by created_at",
            job_id,
            omil_id,
        )
    )
    assert audit_rows == ["reject_job:job", "reject_omil:omil"]


def _register(client: TestClient, path: str, *, email: str, **extra: Any) -> dict[str, str]:
    payload = {
        "email": email,
        "password": "a-long-password",
        "first_name": "Prueba",
        "last_name": "Integración",
        **extra,
    }
    response = client.post(path, json=payload)
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _login(client: TestClient, email: str, password: str) -> dict[str, str]:
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _apply_schema(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    finally:
        await conn.close()


async def _truncate_integration_tables(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(f"truncate table {', '.join(INTEGRATION_TABLES)} restart identity cascade")
    finally:
        await conn.close()


async def _create_admin(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(
            """
            insert into users (email, password_hash, first_name, last_name, user_type, account_status, email_verified_at)
            values ($1, $2, 'Admin', 'Empleos', 'admin', 'active', now())
            """,
            ADMIN_EMAIL,
            hash_password(ADMIN_PASSWORD),
        )
    finally:
        await conn.close()


async def _fetch_column(database_url: str, query: str, *args: Any) -> list[Any]:
    conn = await asyncpg.connect(database_url)
    try:
        rows = await conn.fetch(query, *args)
    finally:
        await conn.close()
    return [row[0] for row in rows]


def _seed_active_job(database_url: str) -> str:
    async def seed() -> str:
        conn = await asyncpg.connect(database_url)
        try:
            company_id = await conn.fetchval(
                """
                insert into company_profiles (company_name, status, approved_at, approved_by)
                select 'Accesible Ltda', 'active', now(), id from users where email = $1
                returning id
                """,
                ADMIN_EMAIL,
            )
            job_id = await conn.fetchval(
                """
                insert into jobs (company_id, title, description, job_type, work_modality, status)
                values ($1, 'Asistente administrativo', 'Apoyo administrativo con puesto adaptado.',
                        'part_time', 'remote', 'active')
                returning id
                """,
                company_id,
            )
        finally:
            await conn.close()
        return str(job_id)

    return _run(seed())
