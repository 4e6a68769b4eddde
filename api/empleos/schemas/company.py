from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

OrganizationStatus = Literal["pending_approval", "active", "rejected", "suspended"]
CompanyMemberRole = Literal["owner", "admin", "member"]


class CompanyOut(BaseModel):
    id: str
    company_name: str
    legal_name: str | None = None
    tax_id: str | None = None
    industry: str | None = None
    company_size: str | None = None
    founded_year: int | None = None
    region: str | None = None
    municipality: str | None = None
    address: str | None = None
    phone: str | None = None
    website_url: str | None = None
    description: str | None = None
    status: OrganizationStatus
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class MemberCompanyOut(CompanyOut):
    member_role: CompanyMemberRole


class CompanyUpdateRequest(BaseModel):
    company_name: str | None = Field(default=None, min_length=2, max_length=200)
    legal_name: str | None = Field(default=None, max_length=200)
    industry: str | None = Field(default=None, max_length=100)
    company_size: str | None = Field(default=None, max_length=50)
    founded_year: int | None = Field(default=None, ge=1800, le=2100)
    region: str | None = Field(default=None, max_length=100)
    municipality: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=300)
    phone: str | None = Field(default=None, max_length=30)
    website_url: str | None = Field(default=None, max_length=500)
    description: str | None = Field(default=None, max_length=5000)

    @model_validator(mode="after")
    def reject_null_company_name(self) -> "CompanyUpdateRequest":
        if "company_name" in self.model_fields_set and self.company_name is None:
            raise ValueError("company_name cannot be null")
        return self


class CompanyDashboardOut(BaseModel):
    company_id: str
    company_name: str
    company_status: OrganizationStatus
    total_jobs: int
    active_jobs: int
    jobs_by_status: dict[str, int] = Field(default_factory=dict)
    total_applications: int
    new_applications_last_7_days: int
    applications_by_status: dict[str, int] = Field(default_factory=dict)
    total_views: int
