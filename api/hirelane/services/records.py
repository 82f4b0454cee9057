"""Typed rows returned by every repository backend.

Each entity has exactly one record type. Single-row lookups return ``Record | None``
and list lookups return ``list[Record]``; the backends never hand out raw rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Union

from hirelane.core.auth import RecruiterPermissions, Role
from hirelane.services.application_lifecycle import ApplicationStatus
from hirelane.services.errors import LifecycleValidationError
from hirelane.services.job_lifecycle import JobStatus


@dataclass(slots=True)
class PrincipalContextRecord:
    user_id: str
    role: Role | None
    profile_id: str | None = None
    employer_id: str | None = None
    permissions: RecruiterPermissions | None = None


@dataclass(slots=True)
class CandidateProfileRecord:
    id: str
    user_id: str
    full_name: str = ""
    title: str | None = None
    phone: str | None = None
    location: str | None = None
    about: str | None = None
    skills: list[str] = field(default_factory=list)
    resume_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class EmployerProfileRecord:
    id: str
    user_id: str
    company_name: str = ""
    description: str | None = None
    location: str | None = None
    industry: str | None = None
    company_size: str | None = None
    website: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class RecruiterProfileRecord:
    id: str
    user_id: str | None
    employer_id: str
    email: str
    full_name: str = ""
    title: str | None = None
    permissions: RecruiterPermissions = field(default_factory=RecruiterPermissions)
    created_at: datetime | None = None
    updated_at: datetime | None = None


ProfileRecord = Union[CandidateProfileRecord, EmployerProfileRecord, RecruiterProfileRecord]

PROFILE_FIELDS: dict[Role, frozenset[str]] = {
    Role.CANDIDATE: frozenset({"full_name", "title", "phone", "location", "about", "skills", "resume_url"}),
    Role.EMPLOYER: frozenset(
        {"company_name", "description", "location", "industry", "company_size", "website"}
    ),
    Role.RECRUITER: frozenset({"full_name", "title"}),
}


@dataclass(slots=True)
class JobDraft:
    title: str
    description: str | None = None
    requirements: str | None = None
    category: str | None = None
    employment_type: str | None = None
    experience_level: int | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    location: str | None = None


@dataclass(slots=True)
class JobRecord:
    id: str
    employer_id: str
    posted_by: str | None
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


@dataclass(slots=True)
class ApplicationRecord:
    id: str
    job_id: str
    candidate_id: str
    status: ApplicationStatus
    employer_id: str
    candidate_user_id: str
    job_title: str = ""
    candidate_name: str = ""
    candidate_title: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class ApplicationSubmission:
    application: ApplicationRecord
    created: bool

    @property
    def status(self) -> ApplicationStatus:
        return self.application.status


@dataclass(slots=True)
class NotificationDraft:
    recipient_id: str
    type: str
    title: str
    message: str
    related_entity_type: str
    related_entity_id: str


@dataclass(slots=True)
class NotificationRecord:
    id: str
    recipient_id: str
    type: str
    title: str
    message: str
    related_entity_type: str
    related_entity_id: str
    read: bool = False
    created_at: datetime | None = None


@dataclass(slots=True)
class WorkExperienceRecord:
    id: str
    candidate_id: str
    company: str
    position: str
    start_date: date
    end_date: date | None = None
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class ApplicantRecord:
    """Candidate profile and work history shown to the reviewers of an application."""

    application_id: str
    profile: CandidateProfileRecord
    experiences: list[WorkExperienceRecord] = field(default_factory=list)


JOB_FIELDS = frozenset(
    {
        "title",
        "description",
        "requirements",
        "category",
        "employment_type",
        "experience_level",
        "salary_min",
        "salary_max",
        "location",
    }
)

WORK_EXPERIENCE_FIELDS = frozenset({"company", "position", "start_date", "end_date", "description"})


def _reject_unknown(kind: str, attributes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(attributes) - allowed)
    if unknown:
        raise LifecycleValidationError(f"unsupported {kind} fields: {unknown}")


def filter_job_changes(attributes: dict[str, Any]) -> dict[str, Any]:
    """Validate the keys of a partial job edit. Explicit ``None`` clears a column."""
    _reject_unknown("job", attributes, JOB_FIELDS)
    return dict(attributes)


def filter_work_experience_fields(attributes: dict[str, Any]) -> dict[str, Any]:
    _reject_unknown("work experience", attributes, WORK_EXPERIENCE_FIELDS)
    return dict(attributes)


def filter_profile_fields(role: Role, attributes: dict[str, Any]) -> dict[str, Any]:
    """Drop unset attributes and reject any the role's profile does not have."""
    unknown = sorted(set(attributes) - PROFILE_FIELDS[role])
    if unknown:
        raise LifecycleValidationError(f"unsupported {role.value} profile fields: {unknown}")
    return {key: value for key, value in attributes.items() if value is not None}
