from fastapi import APIRouter, Depends, HTTPException, status

from empleos.core.auth import Principal
from empleos.core.security import get_current_principal
from empleos.schemas.omil import MemberOmilOut, OmilDashboardOut, OmilMemberOut, OmilUpdateRequest
from empleos.services.repository import (
    RepositoryForbiddenError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()


def _require_omil_member(principal: Principal) -> None:
    try:
        principal.require_scopes({"omil:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("/profile", response_model=MemberOmilOut)
async def get_omil_profile(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> MemberOmilOut:
    _require_omil_member(principal)
    try:
        row = await repository.get_member_omil(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return MemberOmilOut(**row)


@router.put("/profile", response_model=MemberOmilOut)
async def update_omil_profile(
    payload: OmilUpdateRequest,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> MemberOmilOut:
    _require_omil_member(principal)
    try:
        row = await repository.update_member_omil(principal.actor_id, payload.model_dump(exclude_unset=True))
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return MemberOmilOut(**row)


@router.get("/dashboard", response_model=OmilDashboardOut)
async def get_omil_dashboard(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> OmilDashboardOut:
    _require_omil_member(principal)
    try:
        row = await repository.get_omil_dashboard(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return OmilDashboardOut(**row)


@router.get("/members", response_model=list[OmilMemberOut])
async def list_omil_members(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> list[OmilMemberOut]:
    _require_omil_member(principal)
    try:
        rows = await repository.list_omil_members(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return [OmilMemberOut(**row) for row in rows]
