from pydantic import BaseModel, Field

from hirelane.core.auth import RecruiterPermissions


class RecruiterPermissionsIn(BaseModel):
    can_post_jobs: bool = False
    can_review_applications: bool = False
    can_interview: bool = False

    def to_permissions(self) -> RecruiterPermissions:
        return RecruiterPermissions(
            can_post_jobs=self.can_post_jobs,
            can_review_applications=self.can_review_applications,
            can_interview=self.can_interview,
        )


class RecruiterInviteRequest(BaseModel):
    email: str = Field(min_length=3)
    full_name: str = ""
    title: str | None = None
    permissions: RecruiterPermissionsIn = Field(default_factory=RecruiterPermissionsIn)


class RecruiterPermissionsPatchRequest(BaseModel):
    permissions: RecruiterPermissionsIn


class EmployerDashboardOut(BaseModel):
    employer_id: str
    total_jobs: int
    jobs_by_status: dict[str, int]
    active_jobs: int
    total_applications: int
    applications_by_status: dict[str, int]
    total_shortlisted: int
    total_hired: int
    recent_shortlisted: int
