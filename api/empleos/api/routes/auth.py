from datetime import datetime, timedelta, timezone
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from empleos.core.config import Settings, get_settings
from empleos.core.security import (
    BLOCKED_ACCOUNT_STATUSES,
    REFRESH_TOKEN_TYPE,
    TokenError,
    decode_token,
    generate_opaque_token,
    get_current_principal,
    hash_opaque_token,
    hash_password,
    issue_token_pair,
    token_matches_user,
    verify_password,
)
from empleos.schemas.auth import (
    AuthOut,
    CompanyRegisterRequest,
    ForgotPasswordRequest,
    LoginRequest,
    OmilRegisterRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPairOut,
    UserOut,
    VerifyEmailRequest,
)
from empleos.schemas.common import MessageOut
from empleos.services.email import EmailClient, get_email_client
from empleos.services.repository import (
    RepositoryDuplicateError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a password reset link has been sent"


async def _register(
    *,
    payload: RegisterRequest,
    user_type: str,
    organization: dict[str, Any] | None,
    repository,
    settings: Settings,
    email_client: EmailClient,
    background_tasks: BackgroundTasks,
) -> AuthOut:
    verification_token = generate_opaque_token()
    password_hash = await run_in_threadpool(hash_password, payload.password)
    try:
        user = await repository.register_user(
            email=payload.email,
            password_hash=password_hash,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            user_type=user_type,
            organization=organization,
            verification_token_hash=hash_opaque_token(verification_token),
            verification_expires_at=datetime.now(timezone.utc)
            + timedelta(hours=settings.email_verification_ttl_hours),
        )
    except RepositoryDuplicateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("user registered user_id=%s user_type=%s", user["id"], user_type)
    background_tasks.add_task(
        email_client.send_verification_email,
        to=user["email"],
        first_name=user.get("first_name"),
        token=verification_token,
    )
    return AuthOut(**issue_token_pair(user, settings), user=UserOut(**user))


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register_job_seeker(
    payload: RegisterRequest,
    background_tasks: BackgroundTasks,
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    email_client: EmailClient = Depends(get_email_client),
) -> AuthOut:
    return await _register(
        payload=payload,
        user_type="job_seeker",
        organization=None,
        repository=repository,
        settings=settings,
        email_client=email_client,
        background_tasks=background_tasks,
    )


@router.post("/register/company", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register_company(
    payload: CompanyRegisterRequest,
    background_tasks: BackgroundTasks,
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    email_client: EmailClient = Depends(get_email_client),
) -> AuthOut:
    return await _register(
        payload=payload,
        user_type="company",
        organization=payload.company.model_dump(exclude_none=True),
        repository=repository,
        settings=settings,
        email_client=email_client,
        background_tasks=background_tasks,
    )


@router.post("/register/omil", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register_omil(
    payload: OmilRegisterRequest,
    background_tasks: BackgroundTasks,
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    email_client: EmailClient = Depends(get_email_client),
) -> AuthOut:
    return await _register(
        payload=payload,
        user_type="omil",
        organization=payload.omil.model_dump(exclude_none=True),
        repository=repository,
        settings=settings,
        email_client=email_client,
        background_tasks=background_tasks,
    )


async def _login(*, payload: LoginRequest, repository, settings: Settings, company_only: bool) -> AuthOut:
    try:
        user = await repository.get_user_credentials(payload.email)
        password_ok = user is not None and await run_in_threadpool(
            verify_password, payload.password, user.get("password_hash")
        )
        if not password_ok:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)
        if company_only and user["user_type"] != "company":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="this login is only available to company accounts",
            )
        account_status = user["account_status"]
        if account_status in BLOCKED_ACCOUNT_STATUSES:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"account is {account_status}")
        if account_status == "pending_verification" and user["user_type"] != "admin":
            if await repository.get_setting_value("require_email_verification") is True:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="email address has not been verified",
                )
        await repository.record_login(user["id"])
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    user.pop("password_hash", None)
    logger.info("user logged in user_id=%s user_type=%s", user["id"], user["user_type"])
    return AuthOut(**issue_token_pair(user, settings), user=UserOut(**user))


@router.post("/login", response_model=AuthOut)
async def login(
    payload: LoginRequest,
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> AuthOut:
    return await _login(payload=payload, repository=repository, settings=settings, company_only=False)


@router.post("/login/company", response_model=AuthOut)
async def login_company(
    payload: LoginRequest,
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> AuthOut:
    return await _login(payload=payload, repository=repository, settings=settings, company_only=True)


@router.post("/refresh", response_model=TokenPairOut)
async def refresh(
    payload: RefreshRequest,
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> TokenPairOut:
    try:
        claims = decode_token(payload.refresh_token, settings, expected_type=REFRESH_TOKEN_TYPE)
    except TokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    try:
        user = await repository.get_auth_user(claims["sub"])
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if not user or not token_matches_user(claims, user):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token has been revoked")
    if user["account_status"] in BLOCKED_ACCOUNT_STATUSES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"account is {user['account_status']}")

    return TokenPairOut(**issue_token_pair(user, settings))


@router.post("/logout", response_model=MessageOut)
async def logout(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> MessageOut:
    try:
        await repository.revoke_user_tokens(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return MessageOut(message="Logged out successfully")


@router.get("/me", response_model=UserOut)
async def me(
    principal=Depends(get_current_principal),
    repository=Depends(get_repository),
) -> UserOut:
    try:
        user = await repository.get_auth_user(principal.actor_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserOut(**user)


@router.post("/forgot-password", response_model=MessageOut)
async def forgot_password(
    payload: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    email_client: EmailClient = Depends(get_email_client),
) -> MessageOut:
    reset_token = generate_opaque_token()
    try:
        user = await repository.create_password_reset_token(
            email=payload.email,
            token_hash=hash_opaque_token(reset_token),
            expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.password_reset_ttl_hours),
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if user:
        background_tasks.add_task(email_client.send_password_reset_email, to=user["email"], token=reset_token)
    return MessageOut(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageOut)
async def reset_password(
    payload: ResetPasswordRequest,
    repository=Depends(get_repository),
) -> MessageOut:
    password_hash = await run_in_threadpool(hash_password, payload.new_password)
    try:
        user = await repository.reset_password(
            token_hash=hash_opaque_token(payload.token),
            password_hash=password_hash,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("password reset user_id=%s", user["id"])
    return MessageOut(message="Password has been reset successfully")


@router.post("/verify-email", response_model=UserOut)
async def verify_email(
    payload: VerifyEmailRequest,
    repository=Depends(get_repository),
) -> UserOut:
    try:
        user = await repository.verify_email(token_hash=hash_opaque_token(payload.token))
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return UserOut(**user)
