"""Role and scope rules for every engine operation.

``can_perform`` is a pure function of the principal, the action and a snapshot of
the target resource. Nothing else in the service branches on ``Role``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hirelane.core.auth import Principal, RecruiterPermissions, Role
from hirelane.services.errors import LifecycleNotFoundError, LifecyclePermissionError
from hirelane.services.job_lifecycle import JobEvent, JobStatus


class Action(str, Enum):
    READ_PROFILE = "read_profile"
    UPDATE_PROFILE = "update_profile"
    UPLOAD_RESUME = "upload_resume"
    CREATE_JOB = "create_job"
    READ_JOB = "read_job"
    UPDATE_JOB = "update_job"
    LIST_SCOPE_JOBS = "list_scope_jobs"
    APPROVE_JOB = "approve_job"
    REJECT_JOB = "reject_job"
    CLOSE_JOB = "close_job"
    READ_JOB_STATS = "read_job_stats"
    LIST_JOB_APPLICATIONS = "list_job_applications"
    LIST_EMPLOYER_APPLICATIONS = "list_employer_applications"
    APPLY = "apply"
    LIST_OWN_APPLICATIONS = "list_own_applications"
    READ_APPLICATION = "read_application"
    READ_APPLICATION_NOTES = "read_application_notes"
    READ_APPLICANT = "read_applicant"
    REVIEW_APPLICATION = "review_application"
    DELETE_APPLICATION = "delete_application"
    READ_EMPLOYER_DASHBOARD = "read_employer_dashboard"
    MANAGE_RECRUITERS = "manage_recruiters"
    MANAGE_WORK_EXPERIENCE = "manage_work_experience"


JOB_EVENT_ACTIONS: dict[JobEvent, Action] = {
    JobEvent.APPROVE: Action.APPROVE_JOB,
    JobEvent.REJECT: Action.REJECT_JOB,
    JobEvent.CLOSE: Action.CLOSE_JOB,
}

_OWN_PROFILE_ACTIONS = frozenset({Action.READ_PROFILE, Action.UPDATE_PROFILE})

_EMPLOYER_SCOPE_ACTIONS = frozenset(
    {
        Action.CREATE_JOB,
        Action.READ_JOB,
        Action.UPDATE_JOB,
        Action.LIST_SCOPE_JOBS,
        Action.APPROVE_JOB,
        Action.CLOSE_JOB,
        Action.READ_JOB_STATS,
        Action.LIST_JOB_APPLICATIONS,
        Action.LIST_EMPLOYER_APPLICATIONS,
        Action.READ_APPLICATION,
        Action.READ_APPLICATION_NOTES,
        Action.READ_APPLICANT,
        Action.REVIEW_APPLICATION,
        Action.DELETE_APPLICATION,
        Action.READ_EMPLOYER_DASHBOARD,
        Action.MANAGE_RECRUITERS,
    }
)

# Flag a recruiter needs on top of the employer scope; None means scope alone suffices.
_RECRUITER_REQUIRED_FLAG: dict[Action, str | None] = {
    Action.CREATE_JOB: "can_post_jobs",
    Action.UPDATE_JOB: "can_post_jobs",
    Action.APPROVE_JOB: "can_post_jobs",
    Action.CLOSE_JOB: "can_post_jobs",
    Action.REJECT_JOB: "can_review_applications",
    Action.READ_JOB: None,
    Action.LIST_SCOPE_JOBS: None,
    Action.READ_JOB_STATS: None,
    Action.READ_EMPLOYER_DASHBOARD: None,
    Action.LIST_JOB_APPLICATIONS: "can_review_applications",
    Action.LIST_EMPLOYER_APPLICATIONS: "can_review_applications",
    Action.READ_APPLICATION: "can_review_applications",
    Action.READ_APPLICATION_NOTES: "can_review_applications",
    Action.READ_APPLICANT: "can_review_applications",
    Action.REVIEW_APPLICATION: "can_review_applications",
}


@dataclass(slots=True, frozen=True)
class Resource:
    """Snapshot of the fields authorization needs from the target entity."""

    kind: str
    id: str | None = None
    employer_id: str | None = None
    candidate_id: str | None = None
    owner_user_id: str | None = None
    job_status: JobStatus | None = None


def in_employer_scope(principal: Principal, resource: Resource) -> bool:
    return (
        principal.employer_id is not None
        and resource.employer_id is not None
        and principal.employer_id == resource.employer_id
    )


def _owns_profile(principal: Principal, resource: Resource) -> bool:
    return resource.owner_user_id is not None and resource.owner_user_id == principal.subject


def _candidate_can(principal: Principal, action: Action, resource: Resource) -> bool:
    if action in _OWN_PROFILE_ACTIONS or action is Action.UPLOAD_RESUME:
        return _owns_profile(principal, resource)
    if action is Action.READ_JOB:
        return resource.job_status is JobStatus.ACTIVE
    # Job status is checked under the row lock so a repeat apply to a closed job still
    # returns the existing application.
    if action is Action.APPLY:
        return principal.profile_id is not None
    if action is Action.LIST_OWN_APPLICATIONS:
        return principal.profile_id is not None
    if action in {Action.READ_APPLICATION, Action.READ_APPLICANT, Action.DELETE_APPLICATION}:
        return principal.profile_id is not None and resource.candidate_id == principal.profile_id
    if action is Action.MANAGE_WORK_EXPERIENCE:
        return principal.profile_id is not None and resource.candidate_id == principal.profile_id
    return False


def _employer_can(principal: Principal, action: Action, resource: Resource) -> bool:
    if action in _OWN_PROFILE_ACTIONS:
        return _owns_profile(principal, resource)
    if action in _EMPLOYER_SCOPE_ACTIONS:
        return in_employer_scope(principal, resource)
    return False


def _recruiter_can(principal: Principal, action: Action, resource: Resource) -> bool:
    if action in _OWN_PROFILE_ACTIONS:
        return _owns_profile(principal, resource)
    if action not in _RECRUITER_REQUIRED_FLAG:
        return False
    if not in_employer_scope(principal, resource):
        return False
    flag = _RECRUITER_REQUIRED_FLAG[action]
    if flag is None:
        return True
    permissions = principal.permissions or RecruiterPermissions()
    return bool(getattr(permissions, flag))


def can_perform(principal: Principal, action: Action, resource: Resource) -> bool:
    role = principal.role
    if role is None:
        return False
    if role is Role.CANDIDATE:
        return _candidate_can(principal, action, resource)
    if role is Role.EMPLOYER:
        return _employer_can(principal, action, resource)
    if role is Role.RECRUITER:
        return _recruiter_can(principal, action, resource)
    raise ValueError(f"unhandled role: {role!r}")


def authorize(principal: Principal, action: Action, resource: Resource) -> None:
    """Raise unless ``principal`` may perform ``action`` on ``resource``.

    A recruiter outside the resource's employer scope gets the same not-found error a
    missing id produces, so guessing ids reveals nothing. Every other denial is a
    permission error.
    """
    if can_perform(principal, action, resource):
        return
    if (
        principal.role is Role.RECRUITER
        and resource.employer_id is not None
        and not in_employer_scope(principal, resource)
    ):
        raise LifecycleNotFoundError(f"{resource.kind} not found")
    role = principal.role.value if principal.role is not None else "unprovisioned principal"
    raise LifecyclePermissionError(f"{role} may not {action.value} on {resource.kind}")
