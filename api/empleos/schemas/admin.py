from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from empleos.schemas.auth import UserOut
from empleos.schemas.company import CompanyOut, OrganizationStatus
from empleos.schemas.omil import OmilOut


class DashboardStatsOut(BaseModel):
    total_users: int
    new_users_today: int
    new_users_this_week: int
    new_users_this_month: int
    total_companies: int
    pending_companies: int
    active_companies: int
    total_jobs: int
    active_jobs: int
    pending_jobs: int
    pending_omils: int
    total_applications: int


class MembershipOut(BaseModel):
    id: str
    name: str
    status: OrganizationStatus
    role: str


class AdminUserDetailOut(UserOut):
    company: MembershipOut | None = None
    omil: MembershipOut | None = None
    application_count: int = 0


class UserStatusPatchRequest(BaseModel):
    status: Literal["active", "suspended"]
    reason: str | None = Field(default=None, max_length=1000)


class ImpersonationOut(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserOut


class AdminCompanyOut(CompanyOut):
    job_count: int = 0


class ApproveRequest(BaseModel):
    approval_notes: str | None = None


class RejectRequest(BaseModel):
    rejection_reason: str


class AuditLogOut(BaseModel):
    id: str
    admin_id: str
    admin_email: str | None = None
    admin_name: str | None = None
    action_type: str
    entity_type: str
    entity_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    created_at: datetime


class SettingOut(BaseModel):
    key: str
    value: Any
    description: str | None = None
    updated_by: str | None = None
    updated_at: datetime


class SettingUpdate(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    value: Any


class SettingsUpdateRequest(BaseModel):
    settings: list[SettingUpdate] = Field(min_length=1)
