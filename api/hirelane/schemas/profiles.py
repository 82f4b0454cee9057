from datetime import date, datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from hirelane.core.auth import Role
from hirelane.schemas.employers import RecruiterPermissionsIn


class ProfileAttributes(BaseModel):
    """Union of every role's editable profile fields; the store rejects fields the role lacks."""

    model_config = ConfigDict(extra="forbid")

    full_name: str | None = None
    phone: str | None = None
    location: str | None = None
    about: str | None = None
    company_name: str | None = None
    description: str | None = None
    industry: str | None = None
    company_size: str | None = None
    website: str | None = None
    title: str | None = None
    skills: list[str] | None = None


class ProvisionRequest(BaseModel):
    role: Role
    attributes: ProfileAttributes = Field(default_factory=ProfileAttributes)


class CandidateProfileOut(BaseModel):
    kind: Literal["candidate"] = "candidate"
    id: str
    user_id: str
    full_name: str = ""
    title: str | None = None
    phone: str | None = None
    location: str | None = None
    about: str | None = None
    skills: list[str] = Field(default_factory=list)
    resume_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EmployerProfileOut(BaseModel):
    kind: Literal["employer"] = "employer"
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


class RecruiterProfileOut(BaseModel):
    kind: Literal["recruiter"] = "recruiter"
    id: str
    user_id: str | None = None
    employer_id: str
    email: str
    full_name: str = ""
    title: str | None = None
    permissions: RecruiterPermissionsIn
    created_at: datetime | None = None
    updated_at: datetime | None = None


ProfileOut = Annotated[
    Union[CandidateProfileOut, EmployerProfileOut, RecruiterProfileOut],
    Field(discriminator="kind"),
]


class ProfileEnvelope(BaseModel):
    role: Role
    profile: ProfileOut


class ProvisionOut(ProfileEnvelope):
    created: bool
    role_synced: bool


class WorkExperienceCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    company: str = Field(min_length=1)
    position: str = Field(min_length=1)
    start_date: date
    end_date: date | None = None
    description: str | None = None


class WorkExperiencePatchRequest(BaseModel):
    """Partial edit; only the fields present in the request body change."""

    model_config = ConfigDict(extra="forbid")

    company: str | None = None
    position: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    description: str | None = None


class WorkExperienceOut(BaseModel):
    id: str
    candidate_id: str
    company: str
    position: str
    start_date: date
    end_date: date | None = None
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
