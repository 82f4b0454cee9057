from datetime import datetime

from pydantic import BaseModel

from hirelane.schemas.profiles import CandidateProfileOut, WorkExperienceOut
from hirelane.services.application_lifecycle import ApplicationEvent, ApplicationStatus


class ApplicationOut(BaseModel):
    id: str
    job_id: str
    candidate_id: str
    status: ApplicationStatus
    employer_id: str
    job_title: str = ""
    candidate_name: str = ""
    candidate_title: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ApplicationSubmissionOut(BaseModel):
    application: ApplicationOut
    created: bool
    status: ApplicationStatus
    notifications_delivered: bool


class ApplicationTransitionRequest(BaseModel):
    event: ApplicationEvent


class ApplicationTransitionOut(BaseModel):
    application: ApplicationOut
    from_status: ApplicationStatus
    notifications_delivered: bool


class ApplicationNotesPatchRequest(BaseModel):
    notes: str | None = None


class ApplicantOut(BaseModel):
    application_id: str
    profile: CandidateProfileOut
    experiences: list[WorkExperienceOut]
