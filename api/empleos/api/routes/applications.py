import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from empleos.core.auth import Principal
from empleos.core.security import get_current_principal
from empleos.schemas.applications import ApplicationCreateRequest, ApplicationOut, ApplicationStatus
from empleos.schemas.common import PageOut
from empleos.services.email import EmailClient, get_email_client
from empleos.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_job_seeker(principal: Principal) -> None:
    try:
        principal.require_scopes({"applications:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.post("", response_model=ApplicationOut, status_code=status.HTTP_201_CREATED)
async def create_application(
    payload: ApplicationCreateRequest,
    background_tasks: BackgroundTasks,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    email_client: EmailClient = Depends(get_email_client),
) -> ApplicationOut:
    _require_job_seeker(principal)
    try:
        row = await repository.create_application(
            principal.actor_id,
            job_id=payload.job_id,
            cover_letter=payload.cover_letter,
        )
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("application submitted application_id=%s job_id=%s", row["id"], row["job_id"])
    if principal.email:
        background_tasks.add_task(
            email_client.send_application_received_email,
            to=principal.email,
            job_title=row["job_title"],
        )
    return ApplicationOut(**row)


@router.get("", response_model=PageOut[ApplicationOut])
async def list_applications(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    application_status: ApplicationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[ApplicationOut]:
    _require_job_seeker(principal)
    try:
        rows, total = await repository.list_applications(
            principal.actor_id,
            status=application_status,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[ApplicationOut](
        data=[ApplicationOut(**row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{application_id}", response_model=ApplicationOut)
async def get_application(
    application_id: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> ApplicationOut:
    _require_job_seeker(principal)
    try:
        row = await repository.get_application(principal.actor_id, application_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return ApplicationOut(**row)


@router.patch("/{application_id}/withdraw", response_model=ApplicationOut)
async def withdraw_application(
    application_id: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> ApplicationOut:
    _require_job_seeker(principal)
    try:
        row = await repository.withdraw_application(principal.actor_id, application_id)
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return ApplicationOut(**row)
