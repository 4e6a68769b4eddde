import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from empleos.core.auth import Principal
from empleos.core.security import get_current_principal
from empleos.schemas.applications import ApplicantOut, ApplicantStatusPatchRequest, ApplicationStatus
from empleos.schemas.common import PageOut
from empleos.schemas.company import CompanyDashboardOut, CompanyUpdateRequest, MemberCompanyOut
from empleos.schemas.jobs import JobCreateRequest, JobOut, JobStatus, JobStatusPatchRequest, JobUpdateRequest
from empleos.services.repository import (
    RepositoryConflictError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_company_member(principal: Principal, scope: str = "company:write") -> None:
    try:
        principal.require_scopes({scope})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("/profile", response_model=MemberCompanyOut)
async def get_company_profile(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> MemberCompanyOut:
    _require_company_member(principal)
    try:
        row = await repository.get_member_company(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return MemberCompanyOut(**row)


@router.put("/profile", response_model=MemberCompanyOut)
async def update_company_profile(
    payload: CompanyUpdateRequest,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> MemberCompanyOut:
    _require_company_member(principal)
    try:
        row = await repository.update_member_company(principal.actor_id, payload.model_dump(exclude_unset=True))
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return MemberCompanyOut(**row)


@router.get("/dashboard", response_model=CompanyDashboardOut)
async def get_company_dashboard(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> CompanyDashboardOut:
    _require_company_member(principal)
    try:
        row = await repository.get_company_dashboard(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return CompanyDashboardOut(**row)


@router.get("/jobs", response_model=PageOut[JobOut])
async def list_company_jobs(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    job_status: JobStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[JobOut]:
    _require_company_member(principal)
    try:
        rows, total = await repository.list_company_jobs(
            principal.actor_id,
            status=job_status,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return PageOut[JobOut](data=[JobOut(**row) for row in rows], total=total, limit=limit, offset=offset)


@router.post("/jobs", response_model=JobOut, status_code=status.HTTP_201_CREATED)
async def create_company_job(
    payload: JobCreateRequest,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> JobOut:
    _require_company_member(principal)
    try:
        row = await repository.create_company_job(principal.actor_id, payload.model_dump())
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    logger.info("job created job_id=%s company_id=%s", row["id"], row["company_id"])
    return JobOut(**row)


@router.get("/jobs/{job_id}", response_model=JobOut)
async def get_company_job(
    job_id: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> JobOut:
    _require_company_member(principal)
    try:
        row = await repository.get_company_job(principal.actor_id, job_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return JobOut(**row)


@router.put("/jobs/{job_id}", response_model=JobOut)
async def update_company_job(
    job_id: str,
    payload: JobUpdateRequest,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> JobOut:
    _require_company_member(principal)
    try:
        row = await repository.update_company_job(
            principal.actor_id,
            job_id,
            payload.model_dump(exclude_unset=True),
        )
    except (RepositoryValidationError, RepositoryConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return JobOut(**row)


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_company_job(
    job_id: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> None:
    _require_company_member(principal)
    try:
        await repository.delete_company_job(principal.actor_id, job_id)
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.patch("/jobs/{job_id}/status", response_model=JobOut)
async def patch_company_job_status(
    job_id: str,
    payload: JobStatusPatchRequest,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> JobOut:
    _require_company_member(principal)
    try:
        row = await repository.update_company_job_status(principal.actor_id, job_id, payload.status)
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("job status changed job_id=%s status=%s", job_id, row["status"])
    return JobOut(**row)


@router.get("/applicants", response_model=PageOut[ApplicantOut])
async def list_company_applicants(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    job_id: str | None = Query(default=None, min_length=1),
    application_status: ApplicationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[ApplicantOut]:
    _require_company_member(principal, "applicants:write")
    try:
        rows, total = await repository.list_company_applicants(
            principal.actor_id,
            job_id=job_id,
            status=application_status,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return PageOut[ApplicantOut](
        data=[ApplicantOut(**row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.patch("/applicants/{application_id}/status", response_model=ApplicantOut)
async def patch_applicant_status(
    application_id: str,
    payload: ApplicantStatusPatchRequest,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> ApplicantOut:
    _require_company_member(principal, "applicants:write")
    try:
        row = await repository.update_applicant_status(
            principal.actor_id,
            application_id,
            status=payload.status,
            company_notes=payload.company_notes,
        )
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return ApplicantOut(**row)
