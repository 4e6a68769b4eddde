from datetime import date, datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

JobType = Literal["full_time", "part_time", "contract", "internship", "apprenticeship", "temporary"]
WorkModality = Literal["on_site", "remote", "hybrid"]
JobStatus = Literal["draft", "pending_approval", "active", "closed", "rejected"]


class JobOut(BaseModel):
    id: str
    company_id: str
    company_name: str
    posted_by: str | None = None
    title: str
    description: str
    responsibilities: str | None = None
    requirements: str | None = None
    job_type: JobType
    work_modality: WorkModality
    region: str | None = None
    municipality: str | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    salary_currency: str = "CLP"
    years_experience_min: int | None = None
    years_experience_max: int | None = None
    age_min: int | None = None
    age_max: int | None = None
    benefits: str | None = None
    application_deadline: date | None = None
    vacancies: int = 1
    applications_count: int = 0
    views_count: int = 0
    is_featured: bool = False
    status: JobStatus
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class _JobFields(BaseModel):
    @field_validator("application_deadline", check_fields=False)
    @classmethod
    def deadline_not_in_past(cls, value: date | None) -> date | None:
        if value is not None and value < datetime.now(timezone.utc).date():
            raise ValueError("application_deadline cannot be in the past")
        return value

    @model_validator(mode="after")
    def check_ranges(self) -> "_JobFields":
        pairs = (
            ("salary_min", "salary_max"),
            ("years_experience_min", "years_experience_max"),
            ("age_min", "age_max"),
        )
        for low_field, high_field in pairs:
            low = getattr(self, low_field, None)
            high = getattr(self, high_field, None)
            if low is not None and high is not None and low > high:
                raise ValueError(f"{low_field} must not exceed {high_field}")
        return self


class JobCreateRequest(_JobFields):
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=20, max_length=10000)
    responsibilities: str | None = Field(default=None, max_length=10000)
    requirements: str | None = Field(default=None, max_length=10000)
    job_type: JobType
    work_modality: WorkModality
    region: str | None = Field(default=None, max_length=100)
    municipality: str | None = Field(default=None, max_length=100)
    salary_min: int | None = Field(default=None, ge=0)
    salary_max: int | None = Field(default=None, ge=0)
    salary_currency: str = Field(default="CLP", min_length=3, max_length=3)
    years_experience_min: int | None = Field(default=None, ge=0, le=70)
    years_experience_max: int | None = Field(default=None, ge=0, le=70)
    age_min: int | None = Field(default=None, ge=18, le=100)
    age_max: int | None = Field(default=None, ge=18, le=100)
    benefits: str | None = Field(default=None, max_length=5000)
    application_deadline: date | None = None
    vacancies: int = Field(default=1, ge=1, le=1000)


class JobUpdateRequest(_JobFields):
    title: str | None = Field(default=None, min_length=5, max_length=200)
    description: str | None = Field(default=None, min_length=20, max_length=10000)
    responsibilities: str | None = Field(default=None, max_length=10000)
    requirements: str | None = Field(default=None, max_length=10000)
    job_type: JobType | None = None
    work_modality: WorkModality | None = None
    region: str | None = Field(default=None, max_length=100)
    municipality: str | None = Field(default=None, max_length=100)
    salary_min: int | None = Field(default=None, ge=0)
    salary_max: int | None = Field(default=None, ge=0)
    salary_currency: str | None = Field(default=None, min_length=3, max_length=3)
    years_experience_min: int | None = Field(default=None, ge=0, le=70)
    years_experience_max: int | None = Field(default=None, ge=0, le=70)
    age_min: int | None = Field(default=None, ge=18, le=100)
    age_max: int | None = Field(default=None, ge=18, le=100)
    benefits: str | None = Field(default=None, max_length=5000)
    application_deadline: date | None = None
    vacancies: int | None = Field(default=None, ge=1, le=1000)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "JobUpdateRequest":
        for field in ("title", "description", "job_type", "work_modality", "salary_currency", "vacancies"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class JobStatusPatchRequest(BaseModel):
    status: Literal["pending_approval", "closed"]
