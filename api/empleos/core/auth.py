from dataclasses import dataclass
from enum import Enum


class UserType(str, Enum):
    JOB_SEEKER = "job_seeker"
    COMPANY = "company"
    OMIL = "omil"
    ADMIN = "admin"


@dataclass(slots=True)
class Principal:
    user_type: UserType
    subject: str
    scopes: set[str]
    email: str | None = None
    account_status: str | None = None
    impersonated_by: str | None = None

    @property
    def actor_id(self) -> str:
        return self.subject

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")


def parse_bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", maxsplit=1)[1].strip()
    return token or None
