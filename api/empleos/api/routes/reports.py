from datetime import datetime
from io import BytesIO
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from empleos.core.auth import Principal
from empleos.core.security import get_current_principal
from empleos.schemas.reports import (
    ApplicationsReportOut,
    CompaniesReportOut,
    GroupBy,
    JobsReportOut,
    UsersReportOut,
)
from empleos.services.reports import (
    XLSX_MEDIA_TYPE,
    ReportParameterError,
    build_report_workbook,
    export_filename,
    resolve_report_window,
    validate_report_type,
)
from empleos.services.repository import (
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()

REPORT_MODELS = {
    "users": UsersReportOut,
    "companies": CompaniesReportOut,
    "jobs": JobsReportOut,
    "applications": ApplicationsReportOut,
}


async def _load_report(
    *,
    principal: Principal,
    repository,
    report_type: str,
    group_by: str | None,
    from_date: datetime | None,
    to_date: datetime | None,
) -> dict[str, Any]:
    try:
        principal.require_scopes({"admin:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        validate_report_type(report_type)
        window = resolve_report_window(from_date=from_date, to_date=to_date, group_by=group_by)
    except ReportParameterError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        return await repository.get_report(report_type, window)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.get(
    "/export/{report_type}",
    response_class=StreamingResponse,
    responses={200: {"content": {XLSX_MEDIA_TYPE: {}}}},
)
async def export_report(
    report_type: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    group_by: GroupBy | None = Query(default=None),
    from_date: datetime | None = Query(default=None),
    to_date: datetime | None = Query(default=None),
) -> StreamingResponse:
    report = await _load_report(
        principal=principal,
        repository=repository,
        report_type=report_type,
        group_by=group_by,
        from_date=from_date,
        to_date=to_date,
    )
    content = build_report_workbook(report_type, report)
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(report_type)}"'},
    )


@router.get(
    "/{report_type}",
    response_model=UsersReportOut | CompaniesReportOut | JobsReportOut | ApplicationsReportOut,
)
async def get_report(
    report_type: str,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
    group_by: GroupBy | None = Query(default=None),
    from_date: datetime | None = Query(default=None),
    to_date: datetime | None = Query(default=None),
):
    report = await _load_report(
        principal=principal,
        repository=repository,
        report_type=report_type,
        group_by=group_by,
        from_date=from_date,
        to_date=to_date,
    )
    return REPORT_MODELS[report_type](**report)
