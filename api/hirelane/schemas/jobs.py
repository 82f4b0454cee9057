from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from hirelane.services.job_lifecycle import JobEvent, JobStatus
from hirelane.services.records import JobDraft


class JobCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    requirements: str | None = None
    category: str | None = None
    employment_type: str | None = None
    experience_level: int | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    location: str | None = None

    def to_draft(self) -> JobDraft:
        return JobDraft(**self.model_dump())


class JobUpdateRequest(BaseModel):
    """Partial edit of posting content. Send ``null`` to clear an optional field."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    requirements: str | None = None
    category: str | None = None
    employment_type: str | None = None
    experience_level: int | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    location: str | None = None

    def to_changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class JobOut(BaseModel):
    id: str
    employer_id: str
    posted_by: str | None = None
    title: str
    status: JobStatus
    description: str | None = None
    requirements: str | None = None
    category: str | None = None
    employment_type: str | None = None
    experience_level: int | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    location: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class JobTransitionRequest(BaseModel):
    event: JobEvent


class JobTransitionOut(BaseModel):
    job: JobOut
    from_status: JobStatus
    notifications_delivered: bool


class JobStatsOut(BaseModel):
    job_id: str
    total: int
    by_status: dict[str, int]
