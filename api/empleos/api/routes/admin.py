from datetime import datetime
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from starlette.requests import Request

from empleos.core.auth import Principal
from empleos.core.config import Settings, get_settings
from empleos.core.security import ACCESS_TOKEN_TYPE, get_client_ip, get_current_principal, issue_token
from empleos.schemas.admin import (
    AdminCompanyOut,
    AdminUserDetailOut,
    ApproveRequest,
    AuditLogOut,
    DashboardStatsOut,
    ImpersonationOut,
    RejectRequest,
    SettingOut,
    SettingsUpdateRequest,
    UserStatusPatchRequest,
)
from empleos.schemas.auth import AccountStatus, UserOut, UserType
from empleos.schemas.common import PageOut
from empleos.schemas.company import CompanyOut, OrganizationStatus
from empleos.schemas.jobs import JobOut, JobStatus
from empleos.schemas.omil import OmilOut
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


def _require_admin(principal: Principal, scope: str = "admin:read") -> None:
    try:
        principal.require_scopes({scope})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("/dashboard/stats", response_model=DashboardStatsOut)
async def get_dashboard_stats(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> DashboardStatsOut:
    _require_admin(principal)
    try:
        row = await repository.get_dashboard_stats()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return DashboardStatsOut(**row)


@router.get("/users", response_model=PageOut[UserOut])
async def list_users(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    user_type: UserType | None = Query(default=None),
    account_status: AccountStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, min_length=1, max_length=200),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[UserOut]:
    _require_admin(principal)
    try:
        rows, total = await repository.list_users(
            user_type=user_type,
            status=account_status,
            search=search,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[UserOut](data=[UserOut(**row) for row in rows], total=total, limit=limit, offset=offset)


@router.get("/users/{user_id}", response_model=AdminUserDetailOut)
async def get_user(
    user_id: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> AdminUserDetailOut:
    _require_admin(principal)
    try:
        row = await repository.get_user_detail(user_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return AdminUserDetailOut(**row)


@router.patch("/users/{user_id}/status", response_model=UserOut)
async def patch_user_status(
    user_id: str,
    payload: UserStatusPatchRequest,
    request: Request,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> UserOut:
    _require_admin(principal, "admin:write")
    try:
        row = await repository.update_user_status(
            admin_id=principal.actor_id,
            user_id=user_id,
            status=payload.status,
            reason=payload.reason,
            ip_address=get_client_ip(request),
        )
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("user status changed user_id=%s status=%s admin_id=%s", user_id, payload.status, principal.actor_id)
    return UserOut(**row)


@router.get("/users/{user_id}/impersonate", response_model=ImpersonationOut)
async def impersonate_user(
    user_id: str,
    request: Request,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> ImpersonationOut:
    _require_admin(principal, "admin:write")
    if principal.impersonated_by:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="impersonated sessions cannot impersonate")

    try:
        row = await repository.record_impersonation(
            admin_id=principal.actor_id,
            user_id=user_id,
            ip_address=get_client_ip(request),
        )
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.warning("impersonation started user_id=%s admin_id=%s", user_id, principal.actor_id)
    token = issue_token(
        user=row,
        token_type=ACCESS_TOKEN_TYPE,
        settings=settings,
        ttl_seconds=settings.impersonation_token_ttl_seconds,
        impersonated_by=principal.actor_id,
    )
    return ImpersonationOut(
        access_token=token,
        expires_in=settings.impersonation_token_ttl_seconds,
        user=UserOut(**row),
    )


@router.get("/companies", response_model=PageOut[AdminCompanyOut])
async def list_companies(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    company_status: OrganizationStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, min_length=1, max_length=200),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[AdminCompanyOut]:
    _require_admin(principal)
    try:
        rows, total = await repository.list_companies(
            status=company_status,
            search=search,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[AdminCompanyOut](
        data=[AdminCompanyOut(**row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/companies/pending", response_model=PageOut[AdminCompanyOut])
async def list_pending_companies(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[AdminCompanyOut]:
    _require_admin(principal)
    try:
        rows, total = await repository.list_companies(
            status="pending_approval",
            search=None,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[AdminCompanyOut](
        data=[AdminCompanyOut(**row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.patch("/companies/{company_id}/approve", response_model=CompanyOut)
async def approve_company(
    company_id: str,
    request: Request,
    payload: ApproveRequest | None = Body(default=None),
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> CompanyOut:
    _require_admin(principal, "admin:write")
    try:
        row = await repository.approve_company(
            company_id=company_id,
            admin_id=principal.actor_id,
            approval_notes=payload.approval_notes if payload else None,
            ip_address=get_client_ip(request),
        )
    except (RepositoryValidationError, RepositoryConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("company approved company_id=%s admin_id=%s", company_id, principal.actor_id)
    return CompanyOut(**row)


@router.patch("/companies/{company_id}/reject", response_model=CompanyOut)
async def reject_company(
    company_id: str,
    payload: RejectRequest,
    request: Request,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> CompanyOut:
    _require_admin(principal, "admin:write")
    try:
        row = await repository.reject_company(
            company_id=company_id,
            admin_id=principal.actor_id,
            rejection_reason=payload.rejection_reason,
            ip_address=get_client_ip(request),
        )
    except (RepositoryValidationError, RepositoryConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("company rejected company_id=%s admin_id=%s", company_id, principal.actor_id)
    return CompanyOut(**row)


@router.get("/jobs", response_model=PageOut[JobOut])
async def list_jobs(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    job_status: JobStatus | None = Query(default=None, alias="status"),
    company_id: str | None = Query(default=None, min_length=1),
    search: str | None = Query(default=None, min_length=1, max_length=200),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[JobOut]:
    _require_admin(principal)
    try:
        rows, total = await repository.list_admin_jobs(
            status=job_status,
            company_id=company_id,
            search=search,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[JobOut](data=[JobOut(**row) for row in rows], total=total, limit=limit, offset=offset)


@router.get("/jobs/pending", response_model=PageOut[JobOut])
async def list_pending_jobs(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[JobOut]:
    _require_admin(principal)
    try:
        rows, total = await repository.list_admin_jobs(
            status="pending_approval",
            company_id=None,
            search=None,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[JobOut](data=[JobOut(**row) for row in rows], total=total, limit=limit, offset=offset)


@router.patch("/jobs/{job_id}/approve", response_model=JobOut)
async def approve_job(
    job_id: str,
    request: Request,
    payload: ApproveRequest | None = Body(default=None),
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> JobOut:
    _require_admin(principal, "admin:write")
    try:
        row = await repository.approve_job(
            job_id=job_id,
            admin_id=principal.actor_id,
            approval_notes=payload.approval_notes if payload else None,
            ip_address=get_client_ip(request),
        )
    except (RepositoryValidationError, RepositoryConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("job approved job_id=%s admin_id=%s", job_id, principal.actor_id)
    return JobOut(**row)


@router.patch("/jobs/{job_id}/reject", response_model=JobOut)
async def reject_job(
    job_id: str,
    payload: RejectRequest,
    request: Request,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> JobOut:
    _require_admin(principal, "admin:write")
    try:
        row = await repository.reject_job(
            job_id=job_id,
            admin_id=principal.actor_id,
            rejection_reason=payload.rejection_reason,
            ip_address=get_client_ip(request),
        )
    except (RepositoryValidationError, RepositoryConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("job rejected job_id=%s admin_id=%s", job_id, principal.actor_id)
    return JobOut(**row)


@router.get("/omils/pending", response_model=PageOut[OmilOut])
async def list_pending_omils(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PageOut[OmilOut]:
    _require_admin(principal)
    try:
        rows, total = await repository.list_omils(
            status="pending_approval",
            search=None,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[OmilOut](data=[OmilOut(**row) for row in rows], total=total, limit=limit, offset=offset)


@router.patch("/omils/{omil_id}/approve", response_model=OmilOut)
async def approve_omil(
    omil_id: str,
    request: Request,
    payload: ApproveRequest | None = Body(default=None),
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> OmilOut:
    _require_admin(principal, "admin:write")
    try:
        row = await repository.approve_omil(
            omil_id=omil_id,
            admin_id=principal.actor_id,
            approval_notes=payload.approval_notes if payload else None,
            ip_address=get_client_ip(request),
        )
    except (RepositoryValidationError, RepositoryConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("omil approved omil_id=%s admin_id=%s", omil_id, principal.actor_id)
    return OmilOut(**row)


@router.patch("/omils/{omil_id}/reject", response_model=OmilOut)
async def reject_omil(
    omil_id: str,
    payload: RejectRequest,
    request: Request,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> OmilOut:
    _require_admin(principal, "admin:write")
    try:
        row = await repository.reject_omil(
            omil_id=omil_id,
            admin_id=principal.actor_id,
            rejection_reason=payload.rejection_reason,
            ip_address=get_client_ip(request),
        )
    except (RepositoryValidationError, RepositoryConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    logger.info("omil rejected omil_id=%s admin_id=%s", omil_id, principal.actor_id)
    return OmilOut(**row)


@router.get("/audit-logs", response_model=PageOut[AuditLogOut])
async def list_audit_logs(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    admin_id: str | None = Query(default=None, min_length=1),
    action_type: str | None = Query(default=None, min_length=1, max_length=100),
    entity_type: str | None = Query(default=None, min_length=1, max_length=100),
    entity_id: str | None = Query(default=None, min_length=1),
    from_date: datetime | None = Query(default=None),
    to_date: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> PageOut[AuditLogOut]:
    _require_admin(principal)
    try:
        rows, total = await repository.list_audit_logs(
            admin_id=admin_id,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PageOut[AuditLogOut](data=[AuditLogOut(**row) for row in rows], total=total, limit=limit, offset=offset)


@router.get("/settings", response_model=list[SettingOut])
async def list_settings(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> list[SettingOut]:
    _require_admin(principal)
    try:
        rows = await repository.list_system_settings()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [SettingOut(**row) for row in rows]


@router.put("/settings", response_model=list[SettingOut])
async def update_settings(
    payload: SettingsUpdateRequest,
    request: Request,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> list[SettingOut]:
    _require_admin(principal, "admin:write")
    updates = {item.key: item.value for item in payload.settings}
    try:
        rows = await repository.update_system_settings(
            admin_id=principal.actor_id,
            updates=updates,
            ip_address=get_client_ip(request),
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("settings updated keys=%s admin_id=%s", sorted(updates), principal.actor_id)
    return [SettingOut(**row) for row in rows]
