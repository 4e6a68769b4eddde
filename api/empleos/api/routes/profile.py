from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from empleos.core.auth import Principal
from empleos.core.security import get_current_principal
from empleos.schemas.profile import (
    EducationIn,
    EducationOut,
    ExperienceIn,
    ExperienceOut,
    LanguageIn,
    LanguageOut,
    PortfolioIn,
    PortfolioOut,
    ProfileOut,
    ProfileUpdateRequest,
    SkillIn,
    SkillOut,
)
from empleos.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()


def _require_job_seeker(principal: Principal) -> None:
    try:
        principal.require_scopes({"profile:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("/profile", response_model=ProfileOut)
async def get_profile(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> ProfileOut:
    _require_job_seeker(principal)
    try:
        row = await repository.get_profile(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return ProfileOut(**row)


@router.put("/profile", response_model=ProfileOut)
async def update_profile(
    payload: ProfileUpdateRequest,
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> ProfileOut:
    _require_job_seeker(principal)
    try:
        row = await repository.update_profile(principal.actor_id, payload.model_dump(exclude_unset=True))
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return ProfileOut(**row)


def _register_section(section: str, item_in: type[BaseModel], item_out: type[BaseModel]) -> None:
    """Attach list/create/update/delete routes for one repeatable profile section."""

    async def list_items(
        principal=Depends(get_current_principal),
        repository=Depends(get_repository),
    ) -> list[BaseModel]:
        _require_job_seeker(principal)
        try:
            rows = await repository.list_profile_items(principal.actor_id, section)
        except RepositoryUnavailableError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return [item_out(**row) for row in rows]

    async def create_item(
        payload: item_in,  # type: ignore[valid-type]
        principal=Depends(get_current_principal),
        repository=Depends(get_repository),
    ) -> BaseModel:
        _require_job_seeker(principal)
        try:
            row = await repository.create_profile_item(principal.actor_id, section, payload.model_dump())
        except RepositoryUnavailableError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return item_out(**row)

    async def update_item(
        item_id: str,
        payload: item_in,  # type: ignore[valid-type]
        principal=Depends(get_current_principal),
        repository=Depends(get_repository),
    ) -> BaseModel:
        _require_job_seeker(principal)
        try:
            row = await repository.update_profile_item(principal.actor_id, section, item_id, payload.model_dump())
        except RepositoryUnavailableError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        except RepositoryNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return item_out(**row)

    async def delete_item(
        item_id: str,
        principal=Depends(get_current_principal),
        repository=Depends(get_repository),
    ) -> None:
        _require_job_seeker(principal)
        try:
            await repository.delete_profile_item(principal.actor_id, section, item_id)
        except RepositoryUnavailableError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        except RepositoryNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    router.add_api_route(
        f"/{section}",
        list_items,
        methods=["GET"],
        response_model=list[item_out],  # type: ignore[valid-type]
        name=f"list_{section}",
    )
    router.add_api_route(
        f"/{section}",
        create_item,
        methods=["POST"],
        response_model=item_out,
        status_code=status.HTTP_201_CREATED,
        name=f"create_{section}",
    )
    router.add_api_route(
        f"/{section}/{{item_id}}",
        update_item,
        methods=["PUT"],
        response_model=item_out,
        name=f"update_{section}",
    )
    router.add_api_route(
        f"/{section}/{{item_id}}",
        delete_item,
        methods=["DELETE"],
        status_code=status.HTTP_204_NO_CONTENT,
        name=f"delete_{section}",
    )


_register_section("education", EducationIn, EducationOut)
_register_section("experience", ExperienceIn, ExperienceOut)
_register_section("skills", SkillIn, SkillOut)
_register_section("languages", LanguageIn, LanguageOut)
_register_section("portfolio", PortfolioIn, PortfolioOut)
