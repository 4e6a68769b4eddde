from datetime import datetime
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, EmailStr, Field

UserType = Literal["job_seeker", "company", "omil", "admin"]
AccountStatus = Literal["pending_verification", "active", "suspended", "closed"]

PASSWORD_MAX_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded")
    return value


NewPassword = Annotated[str, Field(min_length=8, max_length=128), AfterValidator(_check_password_bytes)]


class UserOut(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    user_type: UserType
    account_status: AccountStatus
    email_verified_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class RegisterRequest(BaseModel):
    email: EmailStr
    password: NewPassword
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=30)


class CompanyRegistrationDetails(BaseModel):
    company_name: str = Field(min_length=2, max_length=200)
    legal_name: str | None = Field(default=None, max_length=200)
    tax_id: str | None = Field(default=None, max_length=20)
    industry: str | None = Field(default=None, max_length=100)
    company_size: str | None = Field(default=None, max_length=50)
    region: str | None = Field(default=None, max_length=100)
    municipality: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=300)
    phone: str | None = Field(default=None, max_length=30)
    website_url: str | None = Field(default=None, max_length=500)
    description: str | None = Field(default=None, max_length=5000)


class CompanyRegisterRequest(RegisterRequest):
    company: CompanyRegistrationDetails


class OmilRegistrationDetails(BaseModel):
    organization_name: str = Field(min_length=2, max_length=200)
    municipality: str = Field(min_length=2, max_length=100)
    region: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=300)
    phone: str | None = Field(default=None, max_length=30)
    email: EmailStr | None = None
    website_url: str | None = Field(default=None, max_length=500)


class OmilRegisterRequest(RegisterRequest):
    omil: OmilRegistrationDetails


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: NewPassword


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1)


class TokenPairOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class AuthOut(TokenPairOut):
    user: UserOut
