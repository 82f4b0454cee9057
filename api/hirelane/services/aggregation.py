from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from hirelane.services.application_lifecycle import ApplicationStatus
from hirelane.services.job_lifecycle import JobStatus

RECENT_SHORTLIST_WINDOW_DAYS = 30


@dataclass(slots=True)
class JobApplicationStats:
    job_id: str
    total: int
    by_status: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class EmployerDashboard:
    employer_id: str
    total_jobs: int
    jobs_by_status: dict[str, int]
    active_jobs: int
    total_applications: int
    applications_by_status: dict[str, int]
    total_shortlisted: int
    total_hired: int
    recent_shortlisted: int


def fold_status_counts(rows: Iterable[tuple[str, int]], statuses: type[Enum]) -> dict[str, int]:
    """Turn ``(status, count)`` rows from a group-by into a zero-filled mapping."""
    counts = {member.value: 0 for member in statuses}
    for status, count in rows:
        key = status.value if isinstance(status, Enum) else str(status)
        if key in counts:
            counts[key] += int(count)
    return counts


def summarize_job_applications(job_id: str, rows: Iterable[tuple[str, int]]) -> JobApplicationStats:
    by_status = fold_status_counts(rows, ApplicationStatus)
    return JobApplicationStats(job_id=job_id, total=sum(by_status.values()), by_status=by_status)


def summarize_employer(
    employer_id: str,
    *,
    job_rows: Iterable[tuple[str, int]],
    application_rows: Iterable[tuple[str, int]],
    recent_shortlisted: int,
) -> EmployerDashboard:
    jobs_by_status = fold_status_counts(job_rows, JobStatus)
    applications_by_status = fold_status_counts(application_rows, ApplicationStatus)
    return EmployerDashboard(
        employer_id=employer_id,
        total_jobs=sum(jobs_by_status.values()),
        jobs_by_status=jobs_by_status,
        active_jobs=jobs_by_status[JobStatus.ACTIVE.value],
        total_applications=sum(applications_by_status.values()),
        applications_by_status=applications_by_status,
        total_shortlisted=applications_by_status[ApplicationStatus.SHORTLISTED.value],
        total_hired=applications_by_status[ApplicationStatus.HIRED.value],
        recent_shortlisted=max(0, int(recent_shortlisted)),
    )
