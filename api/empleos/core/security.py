import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt
from fastapi import Depends, Header, HTTPException, status
from starlette.requests import Request

from empleos.core.auth import Principal, UserType, parse_bearer_token
from empleos.core.config import Settings, get_settings
from empleos.core.telemetry import annotate_actor
from empleos.services.repository import RepositoryUnavailableError, get_repository

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

USER_TYPE_SCOPES: dict[str, set[str]] = {
    "job_seeker": {"profile:write", "applications:write", "saved_jobs:write"},
    "company": {"company:write", "applicants:write"},
    "omil": {"omil:write"},
    "admin": {"admin:read", "admin:write"},
}
BLOCKED_ACCOUNT_STATUSES = {"suspended", "closed"}


class TokenError(Exception):
    """Raised when a bearer token cannot be trusted."""


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def generate_opaque_token() -> str:
    return secrets.token_urlsafe(32)


def hash_opaque_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(
    *,
    user: dict[str, Any],
    token_type: str,
    settings: Settings,
    ttl_seconds: int,
    impersonated_by: str | None = None,
) -> str:
    issued_at = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user["id"]),
        "email": user.get("email"),
        "user_type": user["user_type"],
        "ver": int(user.get("token_version") or 0),
        "type": token_type,
        "jti": str(uuid.uuid4()),
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=ttl_seconds),
    }
    if impersonated_by:
        payload["imp"] = impersonated_by
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def issue_token_pair(user: dict[str, Any], settings: Settings) -> dict[str, Any]:
    return {
        "access_token": issue_token(
            user=user,
            token_type=ACCESS_TOKEN_TYPE,
            settings=settings,
            ttl_seconds=settings.access_token_ttl_seconds,
        ),
        "refresh_token": issue_token(
            user=user,
            token_type=REFRESH_TOKEN_TYPE,
            settings=settings,
            ttl_seconds=settings.refresh_token_ttl_seconds,
        ),
        "token_type": "Bearer",
        "expires_in": settings.access_token_ttl_seconds,
    }


def decode_token(token: str, settings: Settings, *, expected_type: str) -> dict[str, Any]:
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "type"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError("invalid bearer token") from exc

    if claims.get("type") != expected_type:
        raise TokenError(f"expected {expected_type} token")
    return claims


def token_matches_user(claims: dict[str, Any], user: dict[str, Any]) -> bool:
    try:
        return int(claims.get("ver", -1)) == int(user.get("token_version") or 0)
    except (TypeError, ValueError):
        return False


async def get_current_principal(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    token = parse_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication requires bearer token",
        )

    try:
        claims = decode_token(token, settings, expected_type=ACCESS_TOKEN_TYPE)
    except TokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    try:
        user = await repository.get_auth_user(claims["sub"])
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if not token_matches_user(claims, user):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token has been revoked")

    account_status = user.get("account_status")
    if account_status in BLOCKED_ACCOUNT_STATUSES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"account is {account_status}")

    user_type = str(user["user_type"])
    annotate_actor(user_id=str(user["id"]), user_type=user_type, impersonated_by=claims.get("imp"))
    return Principal(
        user_type=UserType(user_type),
        subject=str(user["id"]),
        scopes=set(USER_TYPE_SCOPES.get(user_type, set())),
        email=user.get("email"),
        account_status=account_status,
        impersonated_by=claims.get("imp"),
    )


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",", maxsplit=1)[0].strip()
        if first_hop:
            return first_hop
    if request.client is None:
        return None
    return request.client.host
