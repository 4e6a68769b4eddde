from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

ReportType = Literal["users", "companies", "jobs", "applications"]
GroupBy = Literal["day", "week", "month"]


class TrendPointOut(BaseModel):
    date: date
    count: int


class UserTypeCountOut(BaseModel):
    user_type: str
    count: int


class StatusCountOut(BaseModel):
    status: str
    count: int


class _ReportOut(BaseModel):
    from_date: datetime
    to_date: datetime
    group_by: GroupBy
    trend: list[TrendPointOut] = Field(default_factory=list)


class UsersReportOut(_ReportOut):
    total_users: int
    new_users_period: int
    by_type: list[UserTypeCountOut] = Field(default_factory=list)


class CompaniesReportOut(_ReportOut):
    total_companies: int
    pending_companies: int
    active_companies: int
    new_companies_period: int
    by_status: list[StatusCountOut] = Field(default_factory=list)


class JobsReportOut(_ReportOut):
    total_jobs: int
    active_jobs: int
    pending_jobs: int
    new_jobs_period: int
    by_status: list[StatusCountOut] = Field(default_factory=list)


class ApplicationsReportOut(_ReportOut):
    total_applications: int
    new_applications_period: int
    by_status: list[StatusCountOut] = Field(default_factory=list)
