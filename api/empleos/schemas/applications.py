from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ApplicationStatus = Literal[
    "submitted",
    "under_review",
    "shortlisted",
    "interview_scheduled",
    "offer_extended",
    "hired",
    "rejected",
    "withdrawn",
]


class ApplicationCreateRequest(BaseModel):
    job_id: str = Field(min_length=1)
    cover_letter: str | None = Field(default=None, max_length=5000)


class ApplicationOut(BaseModel):
    id: str
    job_id: str
    job_title: str
    company_name: str
    applicant_id: str
    cover_letter: str | None = None
    status: ApplicationStatus
    applied_at: datetime
    updated_at: datetime


class ApplicantOut(ApplicationOut):
    applicant_email: str
    applicant_first_name: str
    applicant_last_name: str
    company_notes: str | None = None


class ApplicantStatusPatchRequest(BaseModel):
    status: ApplicationStatus
    company_notes: str | None = Field(default=None, max_length=5000)
