from datetime import datetime

from pydantic import BaseModel

from empleos.schemas.jobs import JobOut


class SavedJobOut(BaseModel):
    id: str
    user_id: str
    job_id: str
    created_at: datetime


class SavedJobWithDetailsOut(BaseModel):
    saved_job: SavedJobOut
    job: JobOut
    company_name: str


class SaveJobOut(BaseModel):
    saved_job_id: str
    job_id: str
    message: str = "Job saved successfully"


class SavedJobCheckOut(BaseModel):
    job_id: str
    is_saved: bool
