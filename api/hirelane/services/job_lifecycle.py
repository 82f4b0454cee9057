from __future__ import annotations

from enum import Enum

from hirelane.services.errors import InvalidTransitionError, LifecycleValidationError


class JobStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    ACTIVE = "active"
    REJECTED = "rejected"
    CLOSED = "closed"


class JobEvent(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CLOSE = "close"


JOB_TRANSITIONS: dict[tuple[JobStatus, JobEvent], JobStatus] = {
    (JobStatus.PENDING_REVIEW, JobEvent.APPROVE): JobStatus.ACTIVE,
    (JobStatus.PENDING_REVIEW, JobEvent.REJECT): JobStatus.REJECTED,
    (JobStatus.ACTIVE, JobEvent.CLOSE): JobStatus.CLOSED,
}

INITIAL_JOB_STATUS = JobStatus.PENDING_REVIEW
CANDIDATE_VISIBLE_JOB_STATUSES = frozenset({JobStatus.ACTIVE})
MIN_EXPERIENCE_LEVEL = 1
MAX_EXPERIENCE_LEVEL = 5


def next_job_status(current: JobStatus | str, event: JobEvent | str) -> JobStatus:
    current_status = JobStatus(current)
    job_event = JobEvent(event)
    target = JOB_TRANSITIONS.get((current_status, job_event))
    if target is None:
        raise InvalidTransitionError(
            f"invalid job transition: {current_status.value} --{job_event.value}-->"
        )
    return target


def is_candidate_visible(status: JobStatus | str) -> bool:
    return JobStatus(status) in CANDIDATE_VISIBLE_JOB_STATUSES


def validate_job_draft(
    *,
    title: str,
    experience_level: int | None,
    salary_min: int | None,
    salary_max: int | None,
) -> None:
    if not title or not title.strip():
        raise LifecycleValidationError("title must be a non-empty string")

    if experience_level is not None and not MIN_EXPERIENCE_LEVEL <= experience_level <= MAX_EXPERIENCE_LEVEL:
        raise LifecycleValidationError(
            f"experience_level must be between {MIN_EXPERIENCE_LEVEL} and {MAX_EXPERIENCE_LEVEL}"
        )

    if (salary_min is None) != (salary_max is None):
        raise LifecycleValidationError("salary_min and salary_max must be provided together")
    if salary_min is not None and salary_max is not None:
        if salary_min < 0:
            raise LifecycleValidationError("salary_min must not be negative")
        if salary_min > salary_max:
            raise LifecycleValidationError("salary_min must not exceed salary_max")
