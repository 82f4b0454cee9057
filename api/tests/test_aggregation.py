from __future__ import annotations

from hirelane.services.aggregation import fold_status_counts, summarize_employer, summarize_job_applications
from hirelane.services.application_lifecycle import ApplicationStatus
from hirelane.services.job_lifecycle import JobStatus


def test_empty_job_has_every_status_at_zero() -> None:
    stats = summarize_job_applications("j1", [])
    assert stats.total == 0
    assert stats.by_status == {status.value: 0 for status in ApplicationStatus}


def test_job_counts_sum_to_total() -> None:
    stats = summarize_job_applications("j1", [("pending", 3), ("shortlisted", 2), ("hired", 1)])
    assert stats.total == 6
    assert sum(stats.by_status.values()) == stats.total
    assert stats.by_status["rejected"] == 0


def test_fold_ignores_unknown_statuses_and_accepts_enums() -> None:
    counts = fold_status_counts([(JobStatus.ACTIVE, 2), ("archived", 5)], JobStatus)
    assert counts == {"pending_review": 0, "active": 2, "rejected": 0, "closed": 0}


def test_employer_dashboard_derives_totals() -> None:
    dashboard = summarize_employer(
        "e1",
        job_rows=[("active", 2), ("closed", 1)],
        application_rows=[("pending", 4), ("shortlisted", 3), ("hired", 1), ("rejected", 2)],
        recent_shortlisted=2,
    )
    assert dashboard.total_jobs == 3
    assert dashboard.active_jobs == 2
    assert dashboard.jobs_by_status["pending_review"] == 0
    assert dashboard.total_applications == 10
    assert dashboard.total_shortlisted == 3
    assert dashboard.total_hired == 1
    assert dashboard.recent_shortlisted == 2
    assert sum(dashboard.applications_by_status.values()) == dashboard.total_applications


def test_employer_with_nothing_reports_zeroes() -> None:
    dashboard = summarize_employer("e1", job_rows=[], application_rows=[], recent_shortlisted=0)
    assert dashboard.total_jobs == 0
    assert dashboard.total_applications == 0
    assert set(dashboard.applications_by_status) == {status.value for status in ApplicationStatus}
    assert set(dashboard.jobs_by_status) == {status.value for status in JobStatus}
