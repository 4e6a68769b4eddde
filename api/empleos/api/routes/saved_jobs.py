from fastapi import APIRouter, Depends, HTTPException, Query, status

from empleos.core.auth import Principal
from empleos.core.security import get_current_principal
from empleos.schemas.common import MessageOut, PageOut
from empleos.schemas.saved_jobs import SavedJobCheckOut, SavedJobWithDetailsOut, SaveJobOut
from empleos.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()


def _require_job_seeker(principal: Principal) -> None:
    try:
        principal.require_scopes({"saved_jobs:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("", response_model=PageOut[SavedJobWithDetailsOut])
async def list_saved_jobs(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[SavedJobWithDetailsOut]:
    _require_job_seeker(principal)
    try:
        rows, total = await repository.list_saved_jobs(principal.actor_id, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[SavedJobWithDetailsOut](
        data=[SavedJobWithDetailsOut(**row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/{job_id}", response_model=SaveJobOut, status_code=status.HTTP_201_CREATED)
async def save_job(
    job_id: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> SaveJobOut:
    _require_job_seeker(principal)
    try:
        row = await repository.save_job(principal.actor_id, job_id)
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return SaveJobOut(**row)


@router.delete("/{job_id}", response_model=MessageOut)
async def unsave_job(
    job_id: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> MessageOut:
    _require_job_seeker(principal)
    try:
        await repository.unsave_job(principal.actor_id, job_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return MessageOut(message="Job removed from saved jobs")


@router.get("/{job_id}/check", response_model=SavedJobCheckOut)
async def check_saved_job(
    job_id: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> SavedJobCheckOut:
    _require_job_seeker(principal)
    try:
        is_saved = await repository.is_job_saved(principal.actor_id, job_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return SavedJobCheckOut(job_id=job_id, is_saved=is_saved)
