from __future__ import annotations

import itertools

import pytest

from hirelane.services.errors import InvalidTransitionError, LifecycleValidationError
from hirelane.services.job_lifecycle import (
    INITIAL_JOB_STATUS,
    JOB_TRANSITIONS,
    JobEvent,
    JobStatus,
    is_candidate_visible,
    next_job_status,
    validate_job_draft,
)


def test_posting_starts_in_pending_review() -> None:
    assert INITIAL_JOB_STATUS is JobStatus.PENDING_REVIEW


@pytest.mark.parametrize(
    ("current", "event", "expected"),
    [
        (JobStatus.PENDING_REVIEW, JobEvent.APPROVE, JobStatus.ACTIVE),
        (JobStatus.PENDING_REVIEW, JobEvent.REJECT, JobStatus.REJECTED),
        (JobStatus.ACTIVE, JobEvent.CLOSE, JobStatus.CLOSED),
    ],
)
def test_legal_job_transitions(current: JobStatus, event: JobEvent, expected: JobStatus) -> None:
    assert next_job_status(current, event) is expected


def test_every_pair_outside_the_table_is_rejected() -> None:
    illegal = [
        (status, event)
        for status, event in itertools.product(JobStatus, JobEvent)
        if (status, event) not in JOB_TRANSITIONS
    ]
    assert len(illegal) == len(JobStatus) * len(JobEvent) - 3

    for status, event in illegal:
        with pytest.raises(InvalidTransitionError):
            next_job_status(status, event)


def test_closed_and_rejected_postings_accept_no_events() -> None:
    for status in (JobStatus.CLOSED, JobStatus.REJECTED):
        for event in JobEvent:
            with pytest.raises(InvalidTransitionError):
                next_job_status(status, event)


def test_string_values_are_accepted() -> None:
    assert next_job_status("active", "close") is JobStatus.CLOSED


def test_only_active_postings_are_candidate_visible() -> None:
    assert [status for status in JobStatus if is_candidate_visible(status)] == [JobStatus.ACTIVE]


def test_valid_draft_passes() -> None:
    validate_job_draft(title="Data Analyst", experience_level=1, salary_min=0, salary_max=0)
    validate_job_draft(title="Data Analyst", experience_level=None, salary_min=None, salary_max=None)


@pytest.mark.parametrize(
    ("title", "experience_level", "salary_min", "salary_max", "message"),
    [
        ("   ", None, None, None, "title"),
        ("Analyst", 0, None, None, "experience_level"),
        ("Analyst", 6, None, None, "experience_level"),
        ("Analyst", None, 100, None, "together"),
        ("Analyst", None, None, 100, "together"),
        ("Analyst", None, -1, 100, "negative"),
        ("Analyst", None, 200, 100, "exceed"),
    ],
)
def test_invalid_drafts_are_rejected(
    title: str,
    experience_level: int | None,
    salary_min: int | None,
    salary_max: int | None,
    message: str,
) -> None:
    with pytest.raises(LifecycleValidationError, match=message):
        validate_job_draft(
            title=title,
            experience_level=experience_level,
            salary_min=salary_min,
            salary_max=salary_max,
        )
