from __future__ import annotations

import asyncio
import uuid

import pytest

from empleos.services.repository import (
    PostgresRepository,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
)

CANONICAL_ID = "4f1c2d3e-5a6b-4c7d-8e9f-0a1b2c3d4e5f"


def _repository() -> PostgresRepository:
    return PostgresRepository(database_url=None, min_pool_size=1, max_pool_size=1)


@pytest.mark.parametrize(
    "value",
    [
        f"urn:uuid:{CANONICAL_ID}",
        f"{{{CANONICAL_ID}}}",
        CANONICAL_ID.replace("-", ""),
        f" {CANONICAL_ID}",
        "not-a-uuid",
        None,
    ],
)
def test_non_canonical_ids_are_not_uuids(value: object) -> None:
    assert PostgresRepository._is_uuid(value) is False


def test_canonical_ids_are_uuids() -> None:
    assert PostgresRepository._is_uuid(CANONICAL_ID) is True
    assert PostgresRepository._is_uuid(CANONICAL_ID.upper()) is True
    assert PostgresRepository._is_uuid(uuid.UUID(CANONICAL_ID)) is True


def test_urn_ids_are_not_found_before_any_query() -> None:
    repository = _repository()

    with pytest.raises(RepositoryNotFoundError, match="Job not found"):
        asyncio.run(
            repository.approve_job(
                job_id=f"urn:uuid:{CANONICAL_ID}",
                admin_id=CANONICAL_ID,
                approval_notes=None,
                ip_address=None,
            )
        )
    assert asyncio.run(repository.get_auth_user(f"urn:uuid:{CANONICAL_ID}")) is None

    # A canonical id gets past the check and only fails for lack of a database.
    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(
            repository.approve_job(job_id=CANONICAL_ID, admin_id=CANONICAL_ID, approval_notes=None, ip_address=None)
        )
