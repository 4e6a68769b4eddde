from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Awaitable, Callable

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from empleos.core.config import get_settings
from empleos.services import moderation
from empleos.services.reports import ReportWindow, fill_trend


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryDuplicateError(RepositoryError):
    """Raised when a unique identity (such as an email) is already taken."""


class RepositoryForbiddenError(RepositoryError):
    """Raised when an operation is not permitted for the actor."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


@dataclass(frozen=True, slots=True)
class ProfileSection:
    table: str
    columns: tuple[str, ...]
    order_by: str


@dataclass(frozen=True, slots=True)
class ReportSource:
    table: str
    timestamp_column: str
    breakdown_column: str
    breakdown_key: str


USER_COLUMNS = """
  u.id,
  u.email,
  u.first_name,
  u.last_name,
  u.phone,
  u.user_type::text as user_type,
  u.account_status::text as account_status,
  u.email_verified_at,
  u.token_version,
  u.last_login_at,
  u.created_at,
  u.updated_at
"""

COMPANY_COLUMNS = """
  c.id,
  c.company_name,
  c.legal_name,
  c.tax_id,
  c.industry,
  c.company_size,
  c.founded_year,
  c.region,
  c.municipality,
  c.address,
  c.phone,
  c.website_url,
  c.description,
  c.status::text as status,
  c.approved_at,
  c.approved_by,
  c.rejection_reason,
  c.created_at,
  c.updated_at
"""

OMIL_COLUMNS = """
  o.id,
  o.organization_name,
  o.municipality,
  o.region,
  o.address,
  o.phone,
  o.email,
  o.website_url,
  o.status::text as status,
  o.approved_at,
  o.approved_by,
  o.rejection_reason,
  o.created_at,
  o.updated_at
"""

JOB_COLUMNS = """
  j.id,
  j.company_id,
  c.company_name,
  j.posted_by,
  j.title,
  j.description,
  j.responsibilities,
  j.requirements,
  j.job_type::text as job_type,
  j.work_modality::text as work_modality,
  j.region,
  j.municipality,
  j.salary_min,
  j.salary_max,
  j.salary_currency,
  j.years_experience_min,
  j.years_experience_max,
  j.age_min,
  j.age_max,
  j.benefits,
  j.application_deadline,
  j.vacancies,
  j.applications_count,
  j.views_count,
  j.is_featured,
  j.status::text as status,
  j.approved_at,
  j.approved_by,
  j.rejection_reason,
  j.created_at,
  j.updated_at
"""

APPLICATION_COLUMNS = """
  a.id,
  a.job_id,
  j.title as job_title,
  c.company_name,
  a.applicant_id,
  a.cover_letter,
  a.status::text as status,
  a.company_notes,
  a.applied_at,
  a.updated_at
"""

PROFILE_FIELDS = (
    "rut",
    "birth_date",
    "gender",
    "region",
    "municipality",
    "address",
    "bio",
    "professional_headline",
    "disability_category",
    "has_disability_certificate",
    "accessibility_needs",
)
USER_PROFILE_FIELDS = ("first_name", "last_name", "phone")

PROFILE_SECTIONS: dict[str, ProfileSection] = {
    "education": ProfileSection(
        table="profile_education",
        columns=(
            "institution_name",
            "degree",
            "field_of_study",
            "education_level",
            "start_date",
            "end_date",
            "is_current",
            "description",
        ),
        order_by="start_date desc nulls last, created_at desc",
    ),
    "experience": ProfileSection(
        table="profile_experience",
        columns=(
            "company_name",
            "position_title",
            "employment_type",
            "region",
            "start_date",
            "end_date",
            "is_current",
            "description",
        ),
        order_by="start_date desc, created_at desc",
    ),
    "skills": ProfileSection(
        table="profile_skills",
        columns=("skill_name", "proficiency_level", "years_experience"),
        order_by="skill_name asc",
    ),
    "languages": ProfileSection(
        table="profile_languages",
        columns=("language", "proficiency"),
        order_by="language asc",
    ),
    "portfolio": ProfileSection(
        table="profile_portfolio",
        columns=("title", "description", "url", "completed_at"),
        order_by="created_at desc",
    ),
}

COMPANY_PROFILE_FIELDS = (
    "company_name",
    "legal_name",
    "industry",
    "company_size",
    "founded_year",
    "region",
    "municipality",
    "address",
    "phone",
    "website_url",
    "description",
)
COMPANY_REGISTRATION_FIELDS = COMPANY_PROFILE_FIELDS + ("tax_id",)
OMIL_REGISTRATION_FIELDS = ("organization_name", "municipality", "region", "address", "phone", "email", "website_url")

JOB_FIELDS = (
    "title",
    "description",
    "responsibilities",
    "requirements",
    "job_type",
    "work_modality",
    "region",
    "municipality",
    "salary_min",
    "salary_max",
    "salary_currency",
    "years_experience_min",
    "years_experience_max",
    "age_min",
    "age_max",
    "benefits",
    "application_deadline",
    "vacancies",
)
JOB_FIELD_CASTS = {"job_type": "job_type", "work_modality": "work_modality"}

REPORT_SOURCES: dict[str, ReportSource] = {
    "users": ReportSource(
        table="users",
        timestamp_column="created_at",
        breakdown_column="user_type",
        breakdown_key="user_type",
    ),
    "companies": ReportSource(
        table="company_profiles",
        timestamp_column="created_at",
        breakdown_column="status",
        breakdown_key="status",
    ),
    "jobs": ReportSource(
        table="jobs",
        timestamp_column="created_at",
        breakdown_column="status",
        breakdown_key="status",
    ),
    "applications": ReportSource(
        table="job_applications",
        timestamp_column="applied_at",
        breakdown_column="status",
        breakdown_key="status",
    ),
}

OPEN_APPLICATION_FILTER = "a.status not in ('hired', 'rejected', 'withdrawn')"


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ping(self) -> bool:
        pool = await self._get_pool()
        try:
            return await pool.fetchval("select true") is True
        except (OSError, asyncpg.PostgresError) as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    # Accounts and authentication

    async def get_auth_user(self, user_id: str) -> dict[str, Any] | None:
        if not self._is_uuid(user_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(f"select {USER_COLUMNS} from users u where u.id = $1::uuid", user_id)
        return self._row_to_dict(row) if row else None

    async def get_user_credentials(self, email: str) -> dict[str, Any] | None:
        normalized_email = self._normalize_email(email)
        if not normalized_email:
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {USER_COLUMNS}, u.password_hash from users u where u.email = $1",
            normalized_email,
        )
        return self._row_to_dict(row) if row else None

    async def register_user(
        self,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        phone: str | None,
        user_type: str,
        organization: dict[str, Any] | None,
        verification_token_hash: str,
        verification_expires_at: datetime,
    ) -> dict[str, Any]:
        normalized_email = self._normalize_email(email)
        if not normalized_email:
            raise RepositoryValidationError("email must be a non-empty string")
        if user_type in {"company", "omil"} and not organization:
            raise RepositoryValidationError(f"{user_type} registration requires organization details")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                try:
                    user_id = await conn.fetchval(
                        """
                        insert into users (email, password_hash, first_name, last_name, phone, user_type)
                        values ($1, $2, $3, $4, $5, $6::user_type)
                        returning id
                        """,
                        normalized_email,
                        password_hash,
                        first_name.strip(),
                        last_name.strip(),
                        self._coerce_text(phone),
                        user_type,
                    )
                except pg_exc.UniqueViolationError as exc:
                    raise RepositoryDuplicateError("Email is already registered") from exc

                if user_type == "job_seeker":
                    await conn.execute("insert into job_seeker_profiles (user_id) values ($1)", user_id)
                elif user_type == "company":
                    await self._create_company_for_owner(conn, user_id=user_id, fields=organization or {})
                elif user_type == "omil":
                    await self._create_omil_for_director(conn, user_id=user_id, fields=organization or {})

                await conn.execute(
                    """
                    insert into auth_tokens (user_id, purpose, token_hash, expires_at)
                    values ($1, 'email_verification', $2, $3)
                    """,
                    user_id,
                    verification_token_hash,
                    verification_expires_at,
                )
                row = await conn.fetchrow(f"select {USER_COLUMNS} from users u where u.id = $1", user_id)
        return self._row_to_dict(row)

    async def record_login(self, user_id: str) -> None:
        pool = await self._get_pool()
        await pool.execute("update users set last_login_at = now() where id = $1::uuid", user_id)

    async def revoke_user_tokens(self, user_id: str) -> int:
        pool = await self._get_pool()
        version = await pool.fetchval(
            """
            update users
            set token_version = token_version + 1, updated_at = now()
            where id = $1::uuid
            returning token_version
            """,
            user_id,
        )
        if version is None:
            raise RepositoryNotFoundError("User not found")
        return int(version)

    async def create_password_reset_token(
        self,
        *,
        email: str,
        token_hash: str,
        expires_at: datetime,
    ) -> dict[str, Any] | None:
        normalized_email = self._normalize_email(email)
        if not normalized_email:
            return None
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    select {USER_COLUMNS}
                    from users u
                    where u.email = $1
                      and u.account_status not in ('suspended', 'closed')
                    """,
                    normalized_email,
                )
                if not row:
                    return None
                await conn.execute(
                    """
                    update auth_tokens
                    set used_at = now()
                    where user_id = $1 and purpose = 'password_reset' and used_at is null
                    """,
                    row["id"],
                )
                await conn.execute(
                    """
                    insert into auth_tokens (user_id, purpose, token_hash, expires_at)
                    values ($1, 'password_reset', $2, $3)
                    """,
                    row["id"],
                    token_hash,
                    expires_at,
                )
        return self._row_to_dict(row)

    async def reset_password(self, *, token_hash: str, password_hash: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                user_id = await self._consume_auth_token(conn, purpose="password_reset", token_hash=token_hash)
                row = await conn.fetchrow(
                    f"""
                    update users u
                    set
                      password_hash = $2,
                      token_version = token_version + 1,
                      updated_at = now()
                    where u.id = $1
                    returning {USER_COLUMNS}
                    """,
                    user_id,
                    password_hash,
                )
        return self._row_to_dict(row)

    async def verify_email(self, *, token_hash: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                user_id = await self._consume_auth_token(conn, purpose="email_verification", token_hash=token_hash)
                row = await conn.fetchrow(
                    f"""
                    update users u
                    set
                      email_verified_at = coalesce(email_verified_at, now()),
                      account_status = case
                        when account_status = 'pending_verification' then 'active'::account_status
                        else account_status
                      end,
                      updated_at = now()
                    where u.id = $1
                    returning {USER_COLUMNS}
                    """,
                    user_id,
                )
        return self._row_to_dict(row)

    async def _consume_auth_token(self, conn: asyncpg.Connection, *, purpose: str, token_hash: str) -> Any:
        row = await conn.fetchrow(
            """
            select id, user_id
            from auth_tokens
            where token_hash = $1
              and purpose = $2::auth_token_purpose
              and used_at is null
              and expires_at > now()
            for update
            """,
            token_hash,
            purpose,
        )
        if not row:
            raise RepositoryValidationError("Invalid or expired token")
        await conn.execute("update auth_tokens set used_at = now() where id = $1", row["id"])
        return row["user_id"]

    async def _create_company_for_owner(
        self,
        conn: asyncpg.Connection,
        *,
        user_id: Any,
        fields: dict[str, Any],
    ) -> None:
        values = {key: fields.get(key) for key in COMPANY_REGISTRATION_FIELDS if fields.get(key) is not None}
        if not self._coerce_text(values.get("company_name")):
            raise RepositoryValidationError("company_name must be a non-empty string")
        columns = list(values)
        placeholders = [f"${index}" for index in range(1, len(columns) + 1)]
        try:
            company_id = await conn.fetchval(
                f"""
                insert into company_profiles ({", ".join(columns)})
                values ({", ".join(placeholders)})
                returning id
                """,
                *values.values(),
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryDuplicateError("Company tax id is already registered") from exc
        await conn.execute(
            "insert into company_members (company_id, user_id, role) values ($1, $2, 'owner')",
            company_id,
            user_id,
        )

    async def _create_omil_for_director(
        self,
        conn: asyncpg.Connection,
        *,
        user_id: Any,
        fields: dict[str, Any],
    ) -> None:
        values = {key: fields.get(key) for key in OMIL_REGISTRATION_FIELDS if fields.get(key) is not None}
        if not self._coerce_text(values.get("organization_name")) or not self._coerce_text(values.get("municipality")):
            raise RepositoryValidationError("organization_name and municipality are required")
        columns = list(values)
        placeholders = [f"${index}" for index in range(1, len(columns) + 1)]
        omil_id = await conn.fetchval(
            f"""
            insert into omil_organizations ({", ".join(columns)})
            values ({", ".join(placeholders)})
            returning id
            """,
            *values.values(),
        )
        await conn.execute(
            "insert into omil_members (omil_id, user_id, role) values ($1, $2, 'director')",
            omil_id,
            user_id,
        )

    # Job seeker profile

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                "insert into job_seeker_profiles (user_id) values ($1::uuid) on conflict (user_id) do nothing",
                user_id,
            )
            row = await self._fetch_profile_row(conn, user_id=user_id)
        if not row:
            raise RepositoryNotFoundError("Profile not found")
        return self._row_to_dict(row)

    async def update_profile(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        user_fields = {key: value for key, value in fields.items() if key in USER_PROFILE_FIELDS}
        profile_fields = {key: value for key, value in fields.items() if key in PROFILE_FIELDS}
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "insert into job_seeker_profiles (user_id) values ($1::uuid) on conflict (user_id) do nothing",
                    user_id,
                )
                if user_fields:
                    params: list[Any] = [user_id]
                    assignments = self._build_assignments(user_fields, params)
                    await conn.execute(
                        f"update users set {assignments}, updated_at = now() where id = $1::uuid",
                        *params,
                    )
                if profile_fields:
                    params = [user_id]
                    assignments = self._build_assignments(profile_fields, params)
                    await conn.execute(
                        f"update job_seeker_profiles set {assignments}, updated_at = now() where user_id = $1::uuid",
                        *params,
                    )
                row = await self._fetch_profile_row(conn, user_id=user_id)
        if not row:
            raise RepositoryNotFoundError("Profile not found")
        return self._row_to_dict(row)

    async def _fetch_profile_row(self, conn: asyncpg.Connection, *, user_id: str) -> asyncpg.Record | None:
        profile_columns = ", ".join(f"p.{column}" for column in PROFILE_FIELDS)
        return await conn.fetchrow(
            f"""
            select
              u.id as user_id,
              u.email,
              u.first_name,
              u.last_name,
              u.phone,
              {profile_columns},
              p.created_at,
              p.updated_at
            from users u
            join job_seeker_profiles p on p.user_id = u.id
            where u.id = $1::uuid
            """,
            user_id,
        )

    async def list_profile_items(self, user_id: str, section: str) -> list[dict[str, Any]]:
        section_def = self._get_profile_section(section)
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select id, user_id, {", ".join(section_def.columns)}, created_at, updated_at
            from {section_def.table}
            where user_id = $1::uuid
            order by {section_def.order_by}
            """,
            user_id,
        )
        return [self._row_to_dict(row) for row in rows]

    async def create_profile_item(self, user_id: str, section: str, fields: dict[str, Any]) -> dict[str, Any]:
        section_def = self._get_profile_section(section)
        values = {key: value for key, value in fields.items() if key in section_def.columns}
        columns = ["user_id", *values]
        placeholders = ["$1::uuid", *[f"${index}" for index in range(2, len(values) + 2)]]
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into {section_def.table} ({", ".join(columns)})
            values ({", ".join(placeholders)})
            returning id, user_id, {", ".join(section_def.columns)}, created_at, updated_at
            """,
            user_id,
            *values.values(),
        )
        return self._row_to_dict(row)

    async def update_profile_item(
        self,
        user_id: str,
        section: str,
        item_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        section_def = self._get_profile_section(section)
        self._require_uuid(item_id, "Profile item not found")
        values = {key: value for key, value in fields.items() if key in section_def.columns}
        params: list[Any] = [item_id, user_id]
        assignments = self._build_assignments(values, params)
        set_sql = f"{assignments}, updated_at = now()" if assignments else "updated_at = now()"
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            update {section_def.table}
            set {set_sql}
            where id = $1::uuid and user_id = $2::uuid
            returning id, user_id, {", ".join(section_def.columns)}, created_at, updated_at
            """,
            *params,
        )
        if not row:
            raise RepositoryNotFoundError("Profile item not found")
        return self._row_to_dict(row)

    async def delete_profile_item(self, user_id: str, section: str, item_id: str) -> None:
        section_def = self._get_profile_section(section)
        self._require_uuid(item_id, "Profile item not found")
        pool = await self._get_pool()
        deleted = await pool.fetchval(
            f"delete from {section_def.table} where id = $1::uuid and user_id = $2::uuid returning id",
            item_id,
            user_id,
        )
        if deleted is None:
            raise RepositoryNotFoundError("Profile item not found")

    # Company self-service

    async def get_member_company(self, user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await self._fetch_member_company_row(conn, user_id=user_id)
        return self._row_to_dict(row)

    async def update_member_company(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        values = {key: value for key, value in fields.items() if key in COMPANY_PROFILE_FIELDS}
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                company = await self._fetch_member_company_row(conn, user_id=user_id, for_update=True)
                if company["member_role"] not in {"owner", "admin"}:
                    raise RepositoryForbiddenError("only company owners and admins can edit the company profile")
                if values:
                    params: list[Any] = [company["id"]]
                    assignments = self._build_assignments(values, params)
                    await conn.execute(
                        f"update company_profiles set {assignments}, updated_at = now() where id = $1",
                        *params,
                    )
                row = await self._fetch_member_company_row(conn, user_id=user_id)
        return self._row_to_dict(row)

    async def get_company_dashboard(self, user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            company = await self._fetch_member_company_row(conn, user_id=user_id)
            job_rows = await conn.fetch(
                """
                select status::text as status, count(*)::int as count
                from jobs
                where company_id = $1
                group by status
                """,
                company["id"],
            )
            application_rows = await conn.fetch(
                """
                select a.status::text as status, count(*)::int as count
                from job_applications a
                join jobs j on j.id = a.job_id
                where j.company_id = $1
                group by a.status
                """,
                company["id"],
            )
            new_applications = await conn.fetchval(
                """
                select count(*)::int
                from job_applications a
                join jobs j on j.id = a.job_id
                where j.company_id = $1
                  and a.applied_at >= now() - interval '7 days'
                """,
                company["id"],
            )
            total_views = await conn.fetchval(
                "select coalesce(sum(views_count), 0)::int from jobs where company_id = $1",
                company["id"],
            )

        jobs_by_status = {row["status"]: row["count"] for row in job_rows}
        applications_by_status = {row["status"]: row["count"] for row in application_rows}
        return {
            "company_id": str(company["id"]),
            "company_name": company["company_name"],
            "company_status": company["status"],
            "total_jobs": sum(jobs_by_status.values()),
            "active_jobs": jobs_by_status.get("active", 0),
            "jobs_by_status": jobs_by_status,
            "total_applications": sum(applications_by_status.values()),
            "new_applications_last_7_days": int(new_applications or 0),
            "applications_by_status": applications_by_status,
            "total_views": int(total_views or 0),
        }

    async def list_company_jobs(
        self,
        user_id: str,
        *,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            company = await self._fetch_member_company_row(conn, user_id=user_id)
            conditions = ["j.company_id = $1"]
            params: list[Any] = [company["id"]]
            if status:
                params.append(status)
                conditions.append(f"j.status = ${len(params)}::job_status")
            where_sql = " and ".join(conditions)
            total = await conn.fetchval(f"select count(*) from jobs j where {where_sql}", *params)
            rows = await conn.fetch(
                f"""
                select {JOB_COLUMNS}
                from jobs j
                join company_profiles c on c.id = j.company_id
                where {where_sql}
                order by j.created_at desc, j.id asc
                limit ${len(params) + 1}
                offset ${len(params) + 2}
                """,
                *params,
                limit,
                offset,
            )
        return [self._row_to_dict(row) for row in rows], int(total or 0)

    async def create_company_job(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        values = {key: value for key, value in fields.items() if key in JOB_FIELDS and value is not None}
        self._validate_job_ranges(values)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                company = await self._fetch_member_company_row(conn, user_id=user_id)
                if company["status"] != "active":
                    raise RepositoryForbiddenError("Company must be approved before posting jobs")

                params: list[Any] = [company["id"], user_id]
                columns = ["company_id", "posted_by"]
                placeholders = ["$1", "$2::uuid"]
                for key, value in values.items():
                    params.append(value)
                    cast = JOB_FIELD_CASTS.get(key)
                    placeholders.append(f"${len(params)}::{cast}" if cast else f"${len(params)}")
                    columns.append(key)
                job_id = await conn.fetchval(
                    f"""
                    insert into jobs ({", ".join(columns)})
                    values ({", ".join(placeholders)})
                    returning id
                    """,
                    *params,
                )
                row = await self._fetch_job_row(conn, job_id=str(job_id))
        return self._row_to_dict(row)

    async def get_company_job(self, user_id: str, job_id: str) -> dict[str, Any]:
        self._require_uuid(job_id, "Job not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            company = await self._fetch_member_company_row(conn, user_id=user_id)
            row = await self._fetch_job_row(conn, job_id=job_id)
        if not row or row["company_id"] != company["id"]:
            raise RepositoryNotFoundError("Job not found")
        return self._row_to_dict(row)

    async def update_company_job(self, user_id: str, job_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self._require_uuid(job_id, "Job not found")
        values = {key: value for key, value in fields.items() if key in JOB_FIELDS}
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await self._lock_company_job(conn, user_id=user_id, job_id=job_id)
                self._apply_transition_rule(moderation.ensure_job_editable, current["status"])
                merged = {key: current[key] for key in JOB_FIELDS if key in current}
                merged.update(values)
                self._validate_job_ranges(merged)
                if values:
                    params: list[Any] = [job_id]
                    assignments = self._build_assignments(values, params, casts=JOB_FIELD_CASTS)
                    await conn.execute(
                        f"update jobs set {assignments}, updated_at = now() where id = $1::uuid",
                        *params,
                    )
                row = await self._fetch_job_row(conn, job_id=job_id)
        return self._row_to_dict(row)

    async def delete_company_job(self, user_id: str, job_id: str) -> None:
        self._require_uuid(job_id, "Job not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await self._lock_company_job(conn, user_id=user_id, job_id=job_id)
                self._apply_transition_rule(moderation.ensure_job_deletable, current["status"])
                await conn.execute("delete from jobs where id = $1::uuid", job_id)

    async def update_company_job_status(self, user_id: str, job_id: str, status: str) -> dict[str, Any]:
        self._require_uuid(job_id, "Job not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await self._lock_company_job(conn, user_id=user_id, job_id=job_id)
                try:
                    moderation.validate_company_job_transition(current_status=current["status"], target_status=status)
                except moderation.InvalidTransitionError as exc:
                    raise RepositoryConflictError(str(exc)) from exc
                await conn.execute(
                    "update jobs set status = $2::job_status, updated_at = now() where id = $1::uuid",
                    job_id,
                    status,
                )
                row = await self._fetch_job_row(conn, job_id=job_id)
        return self._row_to_dict(row)

    async def _lock_company_job(self, conn: asyncpg.Connection, *, user_id: str, job_id: str) -> dict[str, Any]:
        company = await self._fetch_member_company_row(conn, user_id=user_id)
        row = await conn.fetchrow(
            f"""
            select {JOB_COLUMNS}
            from jobs j
            join company_profiles c on c.id = j.company_id
            where j.id = $1::uuid
            for update of j
            """,
            job_id,
        )
        if not row or row["company_id"] != company["id"]:
            raise RepositoryNotFoundError("Job not found")
        return dict(row)

    async def list_company_applicants(
        self,
        user_id: str,
        *,
        job_id: str | None,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        if job_id is not None:
            self._require_uuid(job_id, "Job not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            company = await self._fetch_member_company_row(conn, user_id=user_id)
            conditions = ["j.company_id = $1"]
            params: list[Any] = [company["id"]]
            if job_id:
                params.append(job_id)
                conditions.append(f"a.job_id = ${len(params)}::uuid")
            if status:
                params.append(status)
                conditions.append(f"a.status = ${len(params)}::application_status")
            where_sql = " and ".join(conditions)
            total = await conn.fetchval(
                f"""
                select count(*)
                from job_applications a
                join jobs j on j.id = a.job_id
                where {where_sql}
                """,
                *params,
            )
            rows = await conn.fetch(
                f"""
                select
                  {APPLICATION_COLUMNS},
                  u.email as applicant_email,
                  u.first_name as applicant_first_name,
                  u.last_name as applicant_last_name
                from job_applications a
                join jobs j on j.id = a.job_id
                join company_profiles c on c.id = j.company_id
                join users u on u.id = a.applicant_id
                where {where_sql}
                order by a.applied_at desc, a.id asc
                limit ${len(params) + 1}
                offset ${len(params) + 2}
                """,
                *params,
                limit,
                offset,
            )
        return [self._row_to_dict(row) for row in rows], int(total or 0)

    async def update_applicant_status(
        self,
        user_id: str,
        application_id: str,
        *,
        status: str,
        company_notes: str | None,
    ) -> dict[str, Any]:
        self._require_uuid(application_id, "Application not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                company = await self._fetch_member_company_row(conn, user_id=user_id)
                current = await conn.fetchrow(
                    """
                    select a.status::text as status, j.company_id
                    from job_applications a
                    join jobs j on j.id = a.job_id
                    where a.id = $1::uuid
                    for update of a
                    """,
                    application_id,
                )
                if not current or current["company_id"] != company["id"]:
                    raise RepositoryNotFoundError("Application not found")
                try:
                    moderation.validate_application_transition(current_status=current["status"], target_status=status)
                except moderation.InvalidTransitionError as exc:
                    raise RepositoryConflictError(str(exc)) from exc
                await conn.execute(
                    """
                    update job_applications
                    set
                      status = $2::application_status,
                      company_notes = coalesce($3, company_notes),
                      updated_at = now()
                    where id = $1::uuid
                    """,
                    application_id,
                    status,
                    self._coerce_text(company_notes),
                )
                row = await self._fetch_application_row(conn, application_id=application_id)
        return self._row_to_dict(row)

    async def _fetch_member_company_row(
        self,
        conn: asyncpg.Connection,
        *,
        user_id: str,
        for_update: bool = False,
    ) -> asyncpg.Record:
        lock_sql = "for update of c" if for_update else ""
        row = await conn.fetchrow(
            f"""
            select {COMPANY_COLUMNS}, m.role::text as member_role
            from company_members m
            join company_profiles c on c.id = m.company_id
            where m.user_id = $1::uuid
            {lock_sql}
            """,
            user_id,
        )
        if not row:
            raise RepositoryForbiddenError("user is not a member of any company")
        return row

    # OMIL self-service

    async def get_member_omil(self, user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await self._fetch_member_omil_row(conn, user_id=user_id)
        return self._row_to_dict(row)

    async def update_member_omil(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        values = {key: value for key, value in fields.items() if key in OMIL_REGISTRATION_FIELDS}
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                omil = await self._fetch_member_omil_row(conn, user_id=user_id, for_update=True)
                if omil["member_role"] != "director":
                    raise RepositoryForbiddenError("only OMIL directors can edit the organization profile")
                if values:
                    params: list[Any] = [omil["id"]]
                    assignments = self._build_assignments(values, params)
                    await conn.execute(
                        f"update omil_organizations set {assignments}, updated_at = now() where id = $1",
                        *params,
                    )
                row = await self._fetch_member_omil_row(conn, user_id=user_id)
        return self._row_to_dict(row)

    async def get_omil_dashboard(self, user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            omil = await self._fetch_member_omil_row(conn, user_id=user_id)
            member_count = await conn.fetchval(
                "select count(*)::int from omil_members where omil_id = $1",
                omil["id"],
            )
            seekers = await conn.fetchrow(
                """
                select
                  count(*)::int as total,
                  count(*) filter (where p.has_disability_certificate)::int as with_certificate
                from job_seeker_profiles p
                join users u on u.id = p.user_id
                where lower(p.municipality) = lower($1)
                  and u.account_status not in ('suspended', 'closed')
                """,
                omil["municipality"],
            )
            active_jobs = await conn.fetchval(
                "select count(*)::int from jobs where status = 'active' and lower(municipality) = lower($1)",
                omil["municipality"],
            )
            applications = await conn.fetchrow(
                """
                select
                  count(*)::int as total,
                  count(*) filter (where a.status = 'hired')::int as hired
                from job_applications a
                join job_seeker_profiles p on p.user_id = a.applicant_id
                where lower(p.municipality) = lower($1)
                """,
                omil["municipality"],
            )

        return {
            "omil_id": str(omil["id"]),
            "organization_name": omil["organization_name"],
            "municipality": omil["municipality"],
            "omil_status": omil["status"],
            "member_count": int(member_count or 0),
            "local_job_seekers": seekers["total"],
            "local_job_seekers_with_certificate": seekers["with_certificate"],
            "local_active_jobs": int(active_jobs or 0),
            "local_applications": applications["total"],
            "local_hires": applications["hired"],
        }

    async def list_omil_members(self, user_id: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            omil = await self._fetch_member_omil_row(conn, user_id=user_id)
            rows = await conn.fetch(
                """
                select m.id, m.user_id, u.email, u.first_name, u.last_name, m.role, m.created_at
                from omil_members m
                join users u on u.id = m.user_id
                where m.omil_id = $1
                order by m.created_at
                """,
                omil["id"],
            )
        return [self._row_to_dict(row) for row in rows]

    async def _fetch_member_omil_row(
        self,
        conn: asyncpg.Connection,
        *,
        user_id: str,
        for_update: bool = False,
    ) -> asyncpg.Record:
        lock_sql = "for update of o" if for_update else ""
        row = await conn.fetchrow(
            f"""
            select {OMIL_COLUMNS}, m.role as member_role
            from omil_members m
            join omil_organizations o on o.id = m.omil_id
            where m.user_id = $1::uuid
            {lock_sql}
            """,
            user_id,
        )
        if not row:
            raise RepositoryForbiddenError("user is not a member of any OMIL")
        return row

    # Public job board

    async def list_public_jobs(
        self,
        *,
        search: str | None,
        job_type: str | None,
        work_modality: str | None,
        region: str | None,
        company_id: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions = ["j.status = 'active'", "c.status = 'active'"]
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        normalized_search = self._coerce_text(search)
        if normalized_search:
            token = bind(f"%{normalized_search}%")
            conditions.append(
                f"(j.title ilike {token} or j.description ilike {token} or c.company_name ilike {token})"
            )
        if job_type:
            conditions.append(f"j.job_type = {bind(job_type)}::job_type")
        if work_modality:
            conditions.append(f"j.work_modality = {bind(work_modality)}::work_modality")
        normalized_region = self._coerce_text(region)
        if normalized_region:
            conditions.append(f"j.region ilike {bind(normalized_region)}")
        if company_id:
            if not self._is_uuid(company_id):
                return [], 0
            conditions.append(f"j.company_id = {bind(company_id)}::uuid")

        where_sql = " and ".join(conditions)
        pool = await self._get_pool()
        total = await pool.fetchval(
            f"""
            select count(*)
            from jobs j
            join company_profiles c on c.id = j.company_id
            where {where_sql}
            """,
            *params,
        )
        limit_token = bind(limit)
        offset_token = bind(offset)
        rows = await pool.fetch(
            f"""
            select {JOB_COLUMNS}
            from jobs j
            join company_profiles c on c.id = j.company_id
            where {where_sql}
            order by j.is_featured desc, j.approved_at desc nulls last, j.created_at desc, j.id asc
            limit {limit_token}
            offset {offset_token}
            """,
            *params,
        )
        return [self._row_to_dict(row) for row in rows], int(total or 0)

    async def get_public_job(self, job_id: str) -> dict[str, Any]:
        self._require_uuid(job_id, "Job not found")
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            with j as (
              update jobs
              set views_count = views_count + 1
              where id = $1::uuid and status = 'active'
              returning *
            )
            select {JOB_COLUMNS}
            from j
            join company_profiles c on c.id = j.company_id
            """,
            job_id,
        )
        if not row:
            raise RepositoryNotFoundError("Job not found")
        return self._row_to_dict(row)

    # Applications

    async def create_application(
        self,
        user_id: str,
        *,
        job_id: str,
        cover_letter: str | None,
    ) -> dict[str, Any]:
        self._require_uuid(job_id, "Job not found or not active")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                job = await conn.fetchrow(
                    """
                    select id, status::text as status, application_deadline
                    from jobs
                    where id = $1::uuid
                    for update
                    """,
                    job_id,
                )
                if not job or job["status"] != "active":
                    raise RepositoryNotFoundError("Job not found or not active")
                deadline = job["application_deadline"]
                if deadline is not None and deadline < datetime.now(timezone.utc).date():
                    raise RepositoryConflictError("The application deadline for this job has passed")

                max_open = self._coerce_int(await self._fetch_setting_value(conn, "max_applications_per_seeker"))
                if max_open is not None and max_open > 0:
                    open_count = await conn.fetchval(
                        f"""
                        select count(*)
                        from job_applications a
                        where a.applicant_id = $1::uuid and {OPEN_APPLICATION_FILTER}
                        """,
                        user_id,
                    )
                    if int(open_count or 0) >= max_open:
                        raise RepositoryConflictError(
                            f"Maximum number of open applications reached ({max_open})",
                        )

                application_id = await conn.fetchval(
                    """
                    insert into job_applications (job_id, applicant_id, cover_letter)
                    values ($1::uuid, $2::uuid, $3)
                    on conflict (job_id, applicant_id) do nothing
                    returning id
                    """,
                    job_id,
                    user_id,
                    self._coerce_text(cover_letter),
                )
                if application_id is None:
                    raise RepositoryConflictError("You have already applied to this job")
                await conn.execute(
                    "update jobs set applications_count = applications_count + 1 where id = $1::uuid",
                    job_id,
                )
                row = await self._fetch_application_row(conn, application_id=str(application_id))
        return self._row_to_dict(row)

    async def list_applications(
        self,
        user_id: str,
        *,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions = ["a.applicant_id = $1::uuid"]
        params: list[Any] = [user_id]
        if status:
            params.append(status)
            conditions.append(f"a.status = ${len(params)}::application_status")
        where_sql = " and ".join(conditions)
        pool = await self._get_pool()
        total = await pool.fetchval(f"select count(*) from job_applications a where {where_sql}", *params)
        rows = await pool.fetch(
            f"""
            select {APPLICATION_COLUMNS}
            from job_applications a
            join jobs j on j.id = a.job_id
            join company_profiles c on c.id = j.company_id
            where {where_sql}
            order by a.applied_at desc, a.id asc
            limit ${len(params) + 1}
            offset ${len(params) + 2}
            """,
            *params,
            limit,
            offset,
        )
        return [self._row_to_dict(row) for row in rows], int(total or 0)

    async def get_application(self, user_id: str, application_id: str) -> dict[str, Any]:
        self._require_uuid(application_id, "Application not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await self._fetch_application_row(conn, application_id=application_id)
        if not row or str(row["applicant_id"]) != str(user_id):
            raise RepositoryNotFoundError("Application not found")
        return self._row_to_dict(row)

    async def withdraw_application(self, user_id: str, application_id: str) -> dict[str, Any]:
        self._require_uuid(application_id, "Application not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    """
                    select status::text as status
                    from job_applications
                    where id = $1::uuid and applicant_id = $2::uuid
                    for update
                    """,
                    application_id,
                    user_id,
                )
                if not current:
                    raise RepositoryNotFoundError("Application not found")
                self._apply_transition_rule(moderation.ensure_application_withdrawable, current["status"])
                await conn.execute(
                    """
                    update job_applications
                    set status = 'withdrawn', updated_at = now()
                    where id = $1::uuid
                    """,
                    application_id,
                )
                row = await self._fetch_application_row(conn, application_id=application_id)
        return self._row_to_dict(row)

    async def _fetch_application_row(
        self,
        conn: asyncpg.Connection,
        *,
        application_id: str,
    ) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select
              {APPLICATION_COLUMNS},
              u.email as applicant_email,
              u.first_name as applicant_first_name,
              u.last_name as applicant_last_name
            from job_applications a
            join jobs j on j.id = a.job_id
            join company_profiles c on c.id = j.company_id
            join users u on u.id = a.applicant_id
            where a.id = $1::uuid
            """,
            application_id,
        )

    # Saved jobs

    async def list_saved_jobs(self, user_id: str, *, limit: int, offset: int) -> tuple[list[dict[str, Any]], int]:
        pool = await self._get_pool()
        total = await pool.fetchval(
            """
            select count(*)
            from saved_jobs s
            join jobs j on j.id = s.job_id
            where s.user_id = $1::uuid and j.status = 'active'
            """,
            user_id,
        )
        rows = await pool.fetch(
            f"""
            select
              s.id as saved_job_id,
              s.user_id as saved_user_id,
              s.created_at as saved_at,
              {JOB_COLUMNS}
            from saved_jobs s
            join jobs j on j.id = s.job_id
            join company_profiles c on c.id = j.company_id
            where s.user_id = $1::uuid and j.status = 'active'
            order by s.created_at desc, s.id asc
            limit $2
            offset $3
            """,
            user_id,
            limit,
            offset,
        )
        return [self._saved_job_row_to_dict(row) for row in rows], int(total or 0)

    async def save_job(self, user_id: str, job_id: str) -> dict[str, Any]:
        self._require_uuid(job_id, "Job not found or not active")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                job_exists = await conn.fetchval(
                    "select exists(select 1 from jobs where id = $1::uuid and status = 'active')",
                    job_id,
                )
                if not job_exists:
                    raise RepositoryNotFoundError("Job not found or not active")
                saved_job_id = await conn.fetchval(
                    """
                    insert into saved_jobs (user_id, job_id)
                    values ($1::uuid, $2::uuid)
                    on conflict (user_id, job_id) do nothing
                    returning id
                    """,
                    user_id,
                    job_id,
                )
        if saved_job_id is None:
            raise RepositoryConflictError("Job already saved")
        return {"saved_job_id": str(saved_job_id), "job_id": job_id}

    async def unsave_job(self, user_id: str, job_id: str) -> None:
        self._require_uuid(job_id, "Saved job not found")
        pool = await self._get_pool()
        deleted = await pool.fetchval(
            "delete from saved_jobs where user_id = $1::uuid and job_id = $2::uuid returning id",
            user_id,
            job_id,
        )
        if deleted is None:
            raise RepositoryNotFoundError("Saved job not found")

    async def is_job_saved(self, user_id: str, job_id: str) -> bool:
        if not self._is_uuid(job_id):
            return False
        pool = await self._get_pool()
        saved = await pool.fetchval(
            "select exists(select 1 from saved_jobs where user_id = $1::uuid and job_id = $2::uuid)",
            user_id,
            job_id,
        )
        return bool(saved)

    # Administration

    async def get_dashboard_stats(self) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select
              (select count(*) from users)::int as total_users,
              (select count(*) from users where created_at >= current_date)::int as new_users_today,
              (select count(*) from users where created_at >= current_date - interval '7 days')::int
                as new_users_this_week,
              (select count(*) from users where created_at >= date_trunc('month', current_date))::int
                as new_users_this_month,
              (select count(*) from company_profiles)::int as total_companies,
              (select count(*) from company_profiles where status = 'pending_approval')::int as pending_companies,
              (select count(*) from company_profiles where status = 'active')::int as active_companies,
              (select count(*) from jobs)::int as total_jobs,
              (select count(*) from jobs where status = 'active')::int as active_jobs,
              (select count(*) from jobs where status = 'pending_approval')::int as pending_jobs,
              (select count(*) from omil_organizations where status = 'pending_approval')::int as pending_omils,
              (select count(*) from job_applications)::int as total_applications
            """
        )
        return dict(row)

    async def list_users(
        self,
        *,
        user_type: str | None,
        status: str | None,
        search: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if user_type:
            conditions.append(f"u.user_type = {bind(user_type)}::user_type")
        if status:
            conditions.append(f"u.account_status = {bind(status)}::account_status")
        normalized_search = self._coerce_text(search)
        if normalized_search:
            token = bind(f"%{normalized_search}%")
            conditions.append(
                f"(u.email ilike {token} or u.first_name ilike {token} or u.last_name ilike {token})"
            )

        where_sql = " and ".join(conditions) if conditions else "true"
        pool = await self._get_pool()
        total = await pool.fetchval(f"select count(*) from users u where {where_sql}", *params)
        limit_token = bind(limit)
        offset_token = bind(offset)
        rows = await pool.fetch(
            f"""
            select {USER_COLUMNS}
            from users u
            where {where_sql}
            order by u.created_at desc, u.id asc
            limit {limit_token}
            offset {offset_token}
            """,
            *params,
        )
        return [self._row_to_dict(row) for row in rows], int(total or 0)

    async def get_user_detail(self, user_id: str) -> dict[str, Any]:
        self._require_uuid(user_id, "User not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(f"select {USER_COLUMNS} from users u where u.id = $1::uuid", user_id)
            if not row:
                raise RepositoryNotFoundError("User not found")
            company = await conn.fetchrow(
                """
                select c.id, c.company_name as name, c.status::text as status, m.role::text as role
                from company_members m
                join company_profiles c on c.id = m.company_id
                where m.user_id = $1::uuid
                """,
                user_id,
            )
            omil = await conn.fetchrow(
                """
                select o.id, o.organization_name as name, o.status::text as status, m.role
                from omil_members m
                join omil_organizations o on o.id = m.omil_id
                where m.user_id = $1::uuid
                """,
                user_id,
            )
            application_count = await conn.fetchval(
                "select count(*)::int from job_applications where applicant_id = $1::uuid",
                user_id,
            )
        detail = self._row_to_dict(row)
        detail["company"] = self._row_to_dict(company) if company else None
        detail["omil"] = self._row_to_dict(omil) if omil else None
        detail["application_count"] = int(application_count or 0)
        return detail

    async def update_user_status(
        self,
        *,
        admin_id: str,
        user_id: str,
        status: str,
        reason: str | None,
        ip_address: str | None,
    ) -> dict[str, Any]:
        self._require_uuid(user_id, "User not found")
        if str(user_id) == str(admin_id):
            raise RepositoryConflictError("admins cannot change their own account status")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    """
                    select email, user_type::text as user_type, account_status::text as account_status
                    from users
                    where id = $1::uuid
                    for update
                    """,
                    user_id,
                )
                if not current:
                    raise RepositoryNotFoundError("User not found")
                try:
                    action = moderation.resolve_user_status_action(
                        current_status=current["account_status"],
                        target_status=status,
                    )
                except moderation.InvalidTransitionError as exc:
                    raise RepositoryConflictError(str(exc)) from exc

                row = await conn.fetchrow(
                    f"""
                    update users u
                    set account_status = $2::account_status, updated_at = now()
                    where u.id = $1::uuid
                    returning {USER_COLUMNS}
                    """,
                    user_id,
                    status,
                )
                await self._insert_audit_log(
                    conn,
                    admin_id=admin_id,
                    action_type=action,
                    entity_type="user",
                    entity_id=user_id,
                    details={
                        "email": current["email"],
                        "previous_status": current["account_status"],
                        "new_status": status,
                        "reason": self._coerce_text(reason),
                    },
                    ip_address=ip_address,
                )
        return self._row_to_dict(row)

    async def record_impersonation(
        self,
        *,
        admin_id: str,
        user_id: str,
        ip_address: str | None,
    ) -> dict[str, Any]:
        self._require_uuid(user_id, "User not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(f"select {USER_COLUMNS} from users u where u.id = $1::uuid", user_id)
                if not row:
                    raise RepositoryNotFoundError("User not found")
                if row["user_type"] == "admin":
                    raise RepositoryForbiddenError("admin accounts cannot be impersonated")
                if row["account_status"] in {"suspended", "closed"}:
                    raise RepositoryConflictError(f"cannot impersonate a {row['account_status']} account")
                await self._insert_audit_log(
                    conn,
                    admin_id=admin_id,
                    action_type="impersonate_user",
                    entity_type="user",
                    entity_id=user_id,
                    details={"email": row["email"], "user_type": row["user_type"]},
                    ip_address=ip_address,
                )
        return self._row_to_dict(row)

    async def list_companies(
        self,
        *,
        status: str | None,
        search: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions: list[str] = []
        params: list[Any] = []
        if status:
            params.append(status)
            conditions.append(f"c.status = ${len(params)}::organization_status")
        normalized_search = self._coerce_text(search)
        if normalized_search:
            params.append(f"%{normalized_search}%")
            token = f"${len(params)}"
            conditions.append(
                f"(c.company_name ilike {token} or c.legal_name ilike {token} or c.tax_id ilike {token})"
            )
        where_sql = " and ".join(conditions) if conditions else "true"
        pool = await self._get_pool()
        total = await pool.fetchval(f"select count(*) from company_profiles c where {where_sql}", *params)
        rows = await pool.fetch(
            f"""
            select
              {COMPANY_COLUMNS},
              (select count(*)::int from jobs j where j.company_id = c.id) as job_count
            from company_profiles c
            where {where_sql}
            order by c.created_at desc, c.id asc
            limit ${len(params) + 1}
            offset ${len(params) + 2}
            """,
            *params,
            limit,
            offset,
        )
        return [self._row_to_dict(row) for row in rows], int(total or 0)

    async def list_admin_jobs(
        self,
        *,
        status: str | None,
        company_id: str | None,
        search: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions: list[str] = []
        params: list[Any] = []
        if status:
            params.append(status)
            conditions.append(f"j.status = ${len(params)}::job_status")
        if company_id:
            if not self._is_uuid(company_id):
                return [], 0
            params.append(company_id)
            conditions.append(f"j.company_id = ${len(params)}::uuid")
        normalized_search = self._coerce_text(search)
        if normalized_search:
            params.append(f"%{normalized_search}%")
            token = f"${len(params)}"
            conditions.append(f"(j.title ilike {token} or c.company_name ilike {token})")
        where_sql = " and ".join(conditions) if conditions else "true"
        pool = await self._get_pool()
        total = await pool.fetchval(
            f"""
            select count(*)
            from jobs j
            join company_profiles c on c.id = j.company_id
            where {where_sql}
            """,
            *params,
        )
        rows = await pool.fetch(
            f"""
            select {JOB_COLUMNS}
            from jobs j
            join company_profiles c on c.id = j.company_id
            where {where_sql}
            order by j.created_at desc, j.id asc
            limit ${len(params) + 1}
            offset ${len(params) + 2}
            """,
            *params,
            limit,
            offset,
        )
        return [self._row_to_dict(row) for row in rows], int(total or 0)

    async def list_omils(
        self,
        *,
        status: str | None,
        search: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions: list[str] = []
        params: list[Any] = []
        if status:
            params.append(status)
            conditions.append(f"o.status = ${len(params)}::organization_status")
        normalized_search = self._coerce_text(search)
        if normalized_search:
            params.append(f"%{normalized_search}%")
            token = f"${len(params)}"
            conditions.append(f"(o.organization_name ilike {token} or o.municipality ilike {token})")
        where_sql = " and ".join(conditions) if conditions else "true"
        pool = await self._get_pool()
        total = await pool.fetchval(f"select count(*) from omil_organizations o where {where_sql}", *params)
        rows = await pool.fetch(
            f"""
            select {OMIL_COLUMNS}
            from omil_organizations o
            where {where_sql}
            order by o.created_at asc, o.id asc
            limit ${len(params) + 1}
            offset ${len(params) + 2}
            """,
            *params,
            limit,
            offset,
        )
        return [self._row_to_dict(row) for row in rows], int(total or 0)

    async def approve_company(
        self,
        *,
        company_id: str,
        admin_id: str,
        approval_notes: str | None,
        ip_address: str | None,
    ) -> dict[str, Any]:
        return await self._moderate(
            entity_type="company",
            entity_id=company_id,
            decision="approve",
            admin_id=admin_id,
            note=approval_notes,
            ip_address=ip_address,
        )

    async def reject_company(
        self,
        *,
        company_id: str,
        admin_id: str,
        rejection_reason: str,
        ip_address: str | None,
    ) -> dict[str, Any]:
        return await self._moderate(
            entity_type="company",
            entity_id=company_id,
            decision="reject",
            admin_id=admin_id,
            note=rejection_reason,
            ip_address=ip_address,
        )

    async def approve_job(
        self,
        *,
        job_id: str,
        admin_id: str,
        approval_notes: str | None,
        ip_address: str | None,
    ) -> dict[str, Any]:
        return await self._moderate(
            entity_type="job",
            entity_id=job_id,
            decision="approve",
            admin_id=admin_id,
            note=approval_notes,
            ip_address=ip_address,
        )

    async def reject_job(
        self,
        *,
        job_id: str,
        admin_id: str,
        rejection_reason: str,
        ip_address: str | None,
    ) -> dict[str, Any]:
        return await self._moderate(
            entity_type="job",
            entity_id=job_id,
            decision="reject",
            admin_id=admin_id,
            note=rejection_reason,
            ip_address=ip_address,
        )

    async def approve_omil(
        self,
        *,
        omil_id: str,
        admin_id: str,
        approval_notes: str | None,
        ip_address: str | None,
    ) -> dict[str, Any]:
        return await self._moderate(
            entity_type="omil",
            entity_id=omil_id,
            decision="approve",
            admin_id=admin_id,
            note=approval_notes,
            ip_address=ip_address,
        )

    async def reject_omil(
        self,
        *,
        omil_id: str,
        admin_id: str,
        rejection_reason: str,
        ip_address: str | None,
    ) -> dict[str, Any]:
        return await self._moderate(
            entity_type="omil",
            entity_id=omil_id,
            decision="reject",
            admin_id=admin_id,
            note=rejection_reason,
            ip_address=ip_address,
        )

    async def _moderate(
        self,
        *,
        entity_type: str,
        entity_id: str,
        decision: str,
        admin_id: str,
        note: str | None,
        ip_address: str | None,
    ) -> dict[str, Any]:
        entity = moderation.get_moderated_entity(entity_type)
        try:
            if decision == "reject":
                normalized_note = moderation.normalize_rejection_reason(note)
            else:
                normalized_note = moderation.normalize_approval_notes(note)
        except moderation.InvalidReasonError as exc:
            raise RepositoryValidationError(str(exc)) from exc
        self._require_uuid(entity_id, f"{entity.label} not found")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    f"select status::text as status from {entity.table} where id = $1::uuid for update",
                    entity_id,
                )
                if not current:
                    raise RepositoryNotFoundError(f"{entity.label} not found")
                try:
                    target_status = moderation.resolve_moderation_status(
                        entity_type=entity_type,
                        decision=decision,
                        current_status=current["status"],
                    )
                except moderation.InvalidTransitionError as exc:
                    raise RepositoryConflictError(str(exc)) from exc

                if decision == "approve":
                    await conn.execute(
                        f"""
                        update {entity.table}
                        set
                          status = $2::{entity.status_type},
                          approved_at = now(),
                          approved_by = $3::uuid,
                          rejection_reason = null,
                          updated_at = now()
                        where id = $1::uuid
                        """,
                        entity_id,
                        target_status,
                        admin_id,
                    )
                    details_key = "approval_notes"
                else:
                    await conn.execute(
                        f"""
                        update {entity.table}
                        set
                          status = $2::{entity.status_type},
                          rejection_reason = $3,
                          approved_by = $4::uuid,
                          updated_at = now()
                        where id = $1::uuid
                        """,
                        entity_id,
                        target_status,
                        normalized_note,
                        admin_id,
                    )
                    details_key = "rejection_reason"

                fetchers: dict[str, Callable[..., Awaitable[asyncpg.Record | None]]] = {
                    "company": self._fetch_company_row,
                    "job": self._fetch_job_row,
                    "omil": self._fetch_omil_row,
                }
                row = await fetchers[entity_type](conn, entity_id)
                await self._insert_audit_log(
                    conn,
                    admin_id=admin_id,
                    action_type=moderation.action_type(decision, entity_type),
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details={
                        details_key: normalized_note,
                        "previous_status": current["status"],
                        "new_status": target_status,
                        "name": self._entity_display_name(entity_type, row),
                    },
                    ip_address=ip_address,
                )
        return self._row_to_dict(row)

    async def list_audit_logs(
        self,
        *,
        admin_id: str | None,
        action_type: str | None,
        entity_type: str | None,
        entity_id: str | None,
        from_date: datetime | None,
        to_date: datetime | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        for value in (admin_id, entity_id):
            if value is not None and not self._is_uuid(value):
                return [], 0
        if admin_id:
            conditions.append(f"l.admin_id = {bind(admin_id)}::uuid")
        normalized_action = self._coerce_text(action_type)
        if normalized_action:
            conditions.append(f"l.action_type = {bind(normalized_action)}")
        normalized_entity_type = self._coerce_text(entity_type)
        if normalized_entity_type:
            conditions.append(f"l.entity_type = {bind(normalized_entity_type)}")
        if entity_id:
            conditions.append(f"l.entity_id = {bind(entity_id)}::uuid")
        if from_date is not None:
            conditions.append(f"l.created_at >= {bind(from_date)}")
        if to_date is not None:
            conditions.append(f"l.created_at <= {bind(to_date)}")

        where_sql = " and ".join(conditions) if conditions else "true"
        pool = await self._get_pool()
        total = await pool.fetchval(f"select count(*) from admin_audit_logs l where {where_sql}", *params)
        limit_token = bind(limit)
        offset_token = bind(offset)
        rows = await pool.fetch(
            f"""
            select
              l.id,
              l.admin_id,
              u.email as admin_email,
              nullif(trim(concat_ws(' ', u.first_name, u.last_name)), '') as admin_name,
              l.action_type,
              l.entity_type,
              l.entity_id,
              l.details,
              l.ip_address,
              l.created_at
            from admin_audit_logs l
            left join users u on u.id = l.admin_id
            where {where_sql}
            order by l.created_at desc, l.id desc
            limit {limit_token}
            offset {offset_token}
            """,
            *params,
        )
        return [self._audit_log_row_to_dict(row) for row in rows], int(total or 0)

    async def list_system_settings(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            "select key, value, description, updated_by, updated_at from system_settings order by key asc"
        )
        return [self._setting_row_to_dict(row) for row in rows]

    async def update_system_settings(
        self,
        *,
        admin_id: str,
        updates: dict[str, Any],
        ip_address: str | None,
    ) -> list[dict[str, Any]]:
        if not updates:
            raise RepositoryValidationError("at least one setting is required")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(
                    "select key, value from system_settings where key = any($1::text[]) for update",
                    list(updates),
                )
                current = {row["key"]: self._decode_json(row["value"]) for row in rows}
                unknown = sorted(set(updates) - set(current))
                if unknown:
                    raise RepositoryValidationError(f"unknown setting keys: {', '.join(unknown)}")
                for key, value in updates.items():
                    self._validate_setting_value(key, current[key], value)
                    await conn.execute(
                        """
                        update system_settings
                        set value = $2::jsonb, updated_by = $3::uuid, updated_at = now()
                        where key = $1
                        """,
                        key,
                        json.dumps(value),
                        admin_id,
                    )
                await self._insert_audit_log(
                    conn,
                    admin_id=admin_id,
                    action_type="update_settings",
                    entity_type="system_settings",
                    entity_id=None,
                    details={
                        "keys": sorted(updates),
                        "previous": {key: current[key] for key in sorted(updates)},
                        "new": {key: updates[key] for key in sorted(updates)},
                    },
                    ip_address=ip_address,
                )
                updated_rows = await conn.fetch(
                    "select key, value, description, updated_by, updated_at from system_settings order by key asc"
                )
        return [self._setting_row_to_dict(row) for row in updated_rows]

    async def get_setting_value(self, key: str) -> Any:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            return await self._fetch_setting_value(conn, key)

    async def _fetch_setting_value(self, conn: asyncpg.Connection, key: str) -> Any:
        raw = await conn.fetchval("select value from system_settings where key = $1", key)
        return self._decode_json(raw)

    async def get_report(self, report_type: str, window: ReportWindow) -> dict[str, Any]:
        source = REPORT_SOURCES.get(report_type)
        if source is None:
            raise RepositoryValidationError(f"Unknown report type: {report_type}")

        period_sql = f"{source.timestamp_column} >= $1 and {source.timestamp_column} <= $2"
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            total = await conn.fetchval(f"select count(*)::int from {source.table}")
            new_in_period = await conn.fetchval(
                f"select count(*)::int from {source.table} where {period_sql}",
                window.from_date,
                window.to_date,
            )
            breakdown_rows = await conn.fetch(
                f"""
                select {source.breakdown_column}::text as label, count(*)::int as count
                from {source.table}
                group by {source.breakdown_column}
                order by {source.breakdown_column}
                """
            )
            trend_rows = await conn.fetch(
                f"""
                select
                  date_trunc($3, {source.timestamp_column} at time zone 'UTC')::date as bucket,
                  count(*)::int as count
                from {source.table}
                where {period_sql}
                group by bucket
                order by bucket
                """,
                window.from_date,
                window.to_date,
                window.group_by,
            )

        breakdown = {row["label"]: row["count"] for row in breakdown_rows}
        breakdown_list = [{source.breakdown_key: label, "count": count} for label, count in breakdown.items()]
        trend = fill_trend([{"date": row["bucket"], "count": row["count"]} for row in trend_rows], window)
        report: dict[str, Any] = {
            "from_date": window.from_date,
            "to_date": window.to_date,
            "group_by": window.group_by,
        }
        if report_type == "users":
            report.update(
                total_users=int(total or 0),
                new_users_period=int(new_in_period or 0),
                by_type=breakdown_list,
            )
        elif report_type == "companies":
            report.update(
                total_companies=int(total or 0),
                pending_companies=breakdown.get("pending_approval", 0),
                active_companies=breakdown.get("active", 0),
                new_companies_period=int(new_in_period or 0),
                by_status=breakdown_list,
            )
        elif report_type == "jobs":
            report.update(
                total_jobs=int(total or 0),
                active_jobs=breakdown.get("active", 0),
                pending_jobs=breakdown.get("pending_approval", 0),
                new_jobs_period=int(new_in_period or 0),
                by_status=breakdown_list,
            )
        else:
            report.update(
                total_applications=int(total or 0),
                new_applications_period=int(new_in_period or 0),
                by_status=breakdown_list,
            )
        report["trend"] = trend
        return report

    async def _insert_audit_log(
        self,
        conn: asyncpg.Connection,
        *,
        admin_id: str,
        action_type: str,
        entity_type: str,
        entity_id: str | None,
        details: dict[str, Any],
        ip_address: str | None,
    ) -> None:
        await conn.execute(
            """
            insert into admin_audit_logs (admin_id, action_type, entity_type, entity_id, details, ip_address)
            values ($1::uuid, $2, $3, $4::uuid, $5::jsonb, $6)
            """,
            admin_id,
            action_type,
            entity_type,
            entity_id,
            json.dumps(details, default=str),
            ip_address,
        )

    async def _fetch_company_row(self, conn: asyncpg.Connection, company_id: str) -> asyncpg.Record | None:
        return await conn.fetchrow(f"select {COMPANY_COLUMNS} from company_profiles c where c.id = $1::uuid", company_id)

    async def _fetch_omil_row(self, conn: asyncpg.Connection, omil_id: str) -> asyncpg.Record | None:
        return await conn.fetchrow(f"select {OMIL_COLUMNS} from omil_organizations o where o.id = $1::uuid", omil_id)

    async def _fetch_job_row(self, conn: asyncpg.Connection, job_id: str) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select {JOB_COLUMNS}
            from jobs j
            join company_profiles c on c.id = j.company_id
            where j.id = $1::uuid
            """,
            job_id,
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("EI_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _get_profile_section(section: str) -> ProfileSection:
        section_def = PROFILE_SECTIONS.get(section)
        if section_def is None:
            raise RepositoryNotFoundError(f"unknown profile section: {section}")
        return section_def

    @staticmethod
    def _build_assignments(
        values: dict[str, Any],
        params: list[Any],
        *,
        casts: dict[str, str] | None = None,
    ) -> str:
        assignments: list[str] = []
        for key, value in values.items():
            params.append(value)
            cast = (casts or {}).get(key)
            placeholder = f"${len(params)}::{cast}" if cast else f"${len(params)}"
            assignments.append(f"{key} = {placeholder}")
        return ", ".join(assignments)

    @staticmethod
    def _apply_transition_rule(rule: Callable[[str], None], current_status: str) -> None:
        try:
            rule(current_status)
        except moderation.InvalidTransitionError as exc:
            raise RepositoryConflictError(str(exc)) from exc

    @classmethod
    def _validate_job_ranges(cls, values: dict[str, Any]) -> None:
        pairs = (
            ("salary_min", "salary_max", "salary_min must not exceed salary_max"),
            ("years_experience_min", "years_experience_max", "years_experience_min must not exceed years_experience_max"),
            ("age_min", "age_max", "age_min must not exceed age_max"),
        )
        for low_key, high_key, message in pairs:
            low = cls._coerce_int(values.get(low_key))
            high = cls._coerce_int(values.get(high_key))
            if low is not None and high is not None and low > high:
                raise RepositoryValidationError(message)
        age_min = cls._coerce_int(values.get("age_min"))
        if age_min is not None and age_min < 18:
            raise RepositoryValidationError("age_min must be at least 18")

    @staticmethod
    def _validate_setting_value(key: str, current: Any, value: Any) -> None:
        if isinstance(current, bool):
            if not isinstance(value, bool):
                raise RepositoryValidationError(f"setting {key} expects a boolean value")
            return
        if isinstance(current, (int, float)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise RepositoryValidationError(f"setting {key} expects a numeric value")
            if value < 0:
                raise RepositoryValidationError(f"setting {key} must not be negative")
            return
        if isinstance(current, str) and not isinstance(value, str):
            raise RepositoryValidationError(f"setting {key} expects a string value")

    @staticmethod
    def _entity_display_name(entity_type: str, row: asyncpg.Record | None) -> str | None:
        if row is None:
            return None
        if entity_type == "company":
            return row["company_name"]
        if entity_type == "job":
            return row["title"]
        return row["organization_name"]

    @classmethod
    def _row_to_dict(cls, row: asyncpg.Record | dict[str, Any]) -> dict[str, Any]:
        return {key: cls._coerce_value(value) for key, value in dict(row).items()}

    @staticmethod
    def _coerce_value(value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        return value

    @classmethod
    def _saved_job_row_to_dict(cls, row: asyncpg.Record) -> dict[str, Any]:
        data = cls._row_to_dict(row)
        saved_job = {
            "id": data.pop("saved_job_id"),
            "user_id": data.pop("saved_user_id"),
            "job_id": data["id"],
            "created_at": data.pop("saved_at"),
        }
        return {"saved_job": saved_job, "job": data, "company_name": data.get("company_name")}

    @classmethod
    def _audit_log_row_to_dict(cls, row: asyncpg.Record) -> dict[str, Any]:
        data = cls._row_to_dict(row)
        data["details"] = cls._decode_json(data.get("details")) or {}
        return data

    @classmethod
    def _setting_row_to_dict(cls, row: asyncpg.Record) -> dict[str, Any]:
        data = cls._row_to_dict(row)
        data["value"] = cls._decode_json(data.get("value"))
        return data

    @staticmethod
    def _decode_json(value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return value

    @staticmethod
    def _normalize_email(value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        return normalized or None

    @staticmethod
    def _is_uuid(value: Any) -> bool:
        # Canonical hyphenated form only; uuid.UUID also parses urn:uuid: and braced input.
        text = str(value)
        try:
            return str(uuid.UUID(text)) == text.lower()
        except (TypeError, ValueError):
            return False

    @classmethod
    def _require_uuid(cls, value: Any, not_found_message: str) -> None:
        if not cls._is_uuid(value):
            raise RepositoryNotFoundError(not_found_message)

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)

    @staticmethod
    def _coerce_int(value: Any) -> int | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
