from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, model_validator

from empleos.schemas.company import OrganizationStatus

OmilMemberRole = Literal["director", "coordinator", "advisor"]


class OmilOut(BaseModel):
    id: str
    organization_name: str
    municipality: str
    region: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website_url: str | None = None
    status: OrganizationStatus
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class MemberOmilOut(OmilOut):
    member_role: OmilMemberRole


class OmilUpdateRequest(BaseModel):
    organization_name: str | None = Field(default=None, min_length=2, max_length=200)
    municipality: str | None = Field(default=None, min_length=2, max_length=100)
    region: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=300)
    phone: str | None = Field(default=None, max_length=30)
    email: EmailStr | None = None
    website_url: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "OmilUpdateRequest":
        for field in ("organization_name", "municipality"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class OmilDashboardOut(BaseModel):
    omil_id: str
    organization_name: str
    municipality: str
    omil_status: OrganizationStatus
    member_count: int
    local_job_seekers: int
    local_job_seekers_with_certificate: int
    local_active_jobs: int
    local_applications: int
    local_hires: int


class OmilMemberOut(BaseModel):
    id: str
    user_id: str
    email: str
    first_name: str
    last_name: str
    role: OmilMemberRole
    created_at: datetime
