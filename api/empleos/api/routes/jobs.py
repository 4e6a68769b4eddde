from fastapi import APIRouter, Depends, HTTPException, Query, status

from empleos.schemas.common import PageOut
from empleos.schemas.jobs import JobOut, JobType, WorkModality
from empleos.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()


@router.get("", response_model=PageOut[JobOut])
async def list_jobs(
    repository=Depends(get_repository),
    search: str | None = Query(default=None, min_length=1, max_length=200),
    job_type: JobType | None = Query(default=None),
    work_modality: WorkModality | None = Query(default=None),
    region: str | None = Query(default=None, min_length=1),
    company_id: str | None = Query(default=None, min_length=1),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[JobOut]:
    try:
        rows, total = await repository.list_public_jobs(
            search=search,
            job_type=job_type,
            work_modality=work_modality,
            region=region,
            company_id=company_id,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[JobOut](data=[JobOut(**row) for row in rows], total=total, limit=limit, offset=offset)


@router.get("/{job_id}", response_model=JobOut)
async def get_job(job_id: str, repository=Depends(get_repository)) -> JobOut:
    try:
        row = await repository.get_public_job(job_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobOut(**row)
