from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

import pytest

from hirelane.services.application_lifecycle import ApplicationStatus
from hirelane.services.job_lifecycle import JobStatus
from hirelane.services.notifications import (
    NotificationTrigger,
    NotificationType,
    plan_application_created,
    plan_application_transition,
    plan_job_transition,
)
from hirelane.services.records import ApplicationRecord, JobRecord, NotificationDraft

T = TypeVar("T")


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def _application(status: ApplicationStatus = ApplicationStatus.PENDING) -> ApplicationRecord:
    return ApplicationRecord(
        id="a1",
        job_id="j1",
        candidate_id="c1",
        status=status,
        employer_id="e1",
        candidate_user_id="u-candidate",
        job_title="Backend Engineer",
    )


def _job(status: JobStatus) -> JobRecord:
    return JobRecord(id="j1", employer_id="e1", posted_by="u-employer", title="Backend Engineer", status=status)


class RecordingRepository:
    def __init__(self, *, fail_writes: bool = False) -> None:
        self.fail_writes = fail_writes
        self.written: list[NotificationDraft] = []
        self.staff_lookups: list[bool] = []

    async def list_employer_staff_user_ids(self, *, employer_id: str, require_review: bool) -> list[str]:
        self.staff_lookups.append(require_review)
        if require_review:
            return ["u-employer", "u-reviewer"]
        return ["u-employer", "u-reviewer", "u-poster"]

    async def list_open_applicant_user_ids(self, *, job_id: str) -> list[str]:
        return ["u-candidate", "u-candidate-2"]

    async def create_notifications(self, drafts: list[NotificationDraft]) -> list[NotificationDraft]:
        if self.fail_writes:
            raise ConnectionError("notifications table unavailable")
        self.written.extend(drafts)
        return drafts


def test_new_application_notifies_reviewers_but_not_the_actor() -> None:
    drafts = plan_application_created(
        _application(),
        reviewer_ids=["u-employer", "u-reviewer", "u-employer", "u-candidate"],
        actor_id="u-candidate",
    )
    assert [draft.recipient_id for draft in drafts] == ["u-employer", "u-reviewer"]
    assert {draft.type for draft in drafts} == {NotificationType.NEW_APPLICATION.value}
    assert all(draft.related_entity_id == "a1" for draft in drafts)


def test_status_change_notifies_the_candidate() -> None:
    drafts = plan_application_transition(
        _application(ApplicationStatus.SHORTLISTED),
        from_status=ApplicationStatus.PENDING,
        actor_id="u-employer",
    )
    assert len(drafts) == 1
    assert drafts[0].recipient_id == "u-candidate"
    assert "shortlisted" in drafts[0].message


def test_unchanged_status_plans_nothing() -> None:
    drafts = plan_application_transition(
        _application(ApplicationStatus.PENDING),
        from_status=ApplicationStatus.PENDING,
        actor_id="u-employer",
    )
    assert drafts == []


def test_job_close_also_notifies_open_applicants() -> None:
    drafts = plan_job_transition(
        _job(JobStatus.CLOSED),
        from_status=JobStatus.ACTIVE,
        staff_ids=["u-employer", "u-reviewer"],
        applicant_ids=["u-candidate"],
        actor_id="u-employer",
    )
    assert [draft.recipient_id for draft in drafts] == ["u-reviewer", "u-candidate"]
    assert all(draft.related_entity_type == "job" for draft in drafts)


def test_job_approval_does_not_notify_applicants() -> None:
    drafts = plan_job_transition(
        _job(JobStatus.ACTIVE),
        from_status=JobStatus.PENDING_REVIEW,
        staff_ids=["u-employer"],
        applicant_ids=["u-candidate"],
        actor_id="u-reviewer",
    )
    assert [draft.recipient_id for draft in drafts] == ["u-employer"]


def test_trigger_writes_drafts_and_reports_success() -> None:
    repository = RecordingRepository()
    trigger = NotificationTrigger(repository)

    delivered = _run(trigger.notify_application_created(_application(), actor_id="u-candidate"))

    assert delivered is True
    assert repository.staff_lookups == [True]
    assert [draft.recipient_id for draft in repository.written] == ["u-employer", "u-reviewer"]


def test_trigger_close_looks_up_applicants() -> None:
    repository = RecordingRepository()
    trigger = NotificationTrigger(repository)

    delivered = _run(trigger.notify_job_transition(_job(JobStatus.CLOSED), from_status=JobStatus.ACTIVE, actor_id="u-poster"))

    assert delivered is True
    assert [draft.recipient_id for draft in repository.written] == [
        "u-employer",
        "u-reviewer",
        "u-candidate",
        "u-candidate-2",
    ]


def test_trigger_failure_is_logged_and_reported(caplog: pytest.LogCaptureFixture) -> None:
    trigger = NotificationTrigger(RecordingRepository(fail_writes=True))

    with caplog.at_level("ERROR"):
        delivered = _run(
            trigger.notify_application_transition(
                _application(ApplicationStatus.REJECTED),
                from_status=ApplicationStatus.PENDING,
                actor_id="u-employer",
            )
        )

    assert delivered is False
    assert "notification emission failed" in caplog.text
