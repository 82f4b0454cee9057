from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any

from hirelane.services.application_lifecycle import ApplicationStatus
from hirelane.services.job_lifecycle import JobStatus
from hirelane.services.records import ApplicationRecord, JobRecord, NotificationDraft

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    NEW_APPLICATION = "new_application"
    APPLICATION_STATUS = "application_status"
    JOB_STATUS = "job_status"


_APPLICATION_STATUS_MESSAGES: dict[ApplicationStatus, str] = {
    ApplicationStatus.REVIEWED: "Your application for {title} has been reviewed.",
    ApplicationStatus.SHORTLISTED: "You have been shortlisted for {title}.",
    ApplicationStatus.REJECTED: "Your application for {title} was not successful.",
    ApplicationStatus.HIRED: "Congratulations, you have been hired for {title}.",
}

_JOB_STATUS_MESSAGES: dict[JobStatus, str] = {
    JobStatus.ACTIVE: "{title} was approved and is now live.",
    JobStatus.REJECTED: "{title} was rejected during review.",
    JobStatus.CLOSED: "{title} has been closed.",
}


def _unique_recipients(recipient_ids: Iterable[str], actor_id: str | None) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for recipient_id in recipient_ids:
        if not recipient_id or recipient_id == actor_id or recipient_id in seen:
            continue
        seen.add(recipient_id)
        ordered.append(recipient_id)
    return ordered


def plan_application_created(
    application: ApplicationRecord,
    *,
    reviewer_ids: Iterable[str],
    actor_id: str | None,
) -> list[NotificationDraft]:
    return [
        NotificationDraft(
            recipient_id=recipient_id,
            type=NotificationType.NEW_APPLICATION.value,
            title="New application",
            message=f"A candidate applied to {application.job_title or 'your job posting'}.",
            related_entity_type="application",
            related_entity_id=application.id,
        )
        for recipient_id in _unique_recipients(reviewer_ids, actor_id)
    ]


def plan_application_transition(
    application: ApplicationRecord,
    *,
    from_status: ApplicationStatus,
    actor_id: str | None,
) -> list[NotificationDraft]:
    if application.status == from_status:
        return []
    template = _APPLICATION_STATUS_MESSAGES.get(application.status, "Your application for {title} was updated.")
    return [
        NotificationDraft(
            recipient_id=recipient_id,
            type=NotificationType.APPLICATION_STATUS.value,
            title="Application status updated",
            message=template.format(title=application.job_title or "your job"),
            related_entity_type="application",
            related_entity_id=application.id,
        )
        for recipient_id in _unique_recipients([application.candidate_user_id], actor_id)
    ]


def plan_job_transition(
    job: JobRecord,
    *,
    from_status: JobStatus,
    staff_ids: Iterable[str],
    applicant_ids: Iterable[str],
    actor_id: str | None,
) -> list[NotificationDraft]:
    if job.status == from_status:
        return []
    template = _JOB_STATUS_MESSAGES.get(job.status, "{title} changed status.")
    recipients = list(staff_ids)
    if job.status is JobStatus.CLOSED:
        recipients.extend(applicant_ids)
    return [
        NotificationDraft(
            recipient_id=recipient_id,
            type=NotificationType.JOB_STATUS.value,
            title="Job status updated",
            message=template.format(title=job.title),
            related_entity_type="job",
            related_entity_id=job.id,
        )
        for recipient_id in _unique_recipients(recipients, actor_id)
    ]


class NotificationTrigger:
    """Writes notifications for committed transitions without affecting the transition.

    Every ``notify_*`` coroutine returns ``True`` when all notifications were stored
    and ``False`` when recipient lookup or the write failed. Failures are logged and
    never raised, because the transition they describe has already committed.
    """

    def __init__(self, repository: Any) -> None:
        self.repository = repository

    async def notify_application_created(self, application: ApplicationRecord, *, actor_id: str | None) -> bool:
        try:
            reviewer_ids = await self.repository.list_employer_staff_user_ids(
                employer_id=application.employer_id,
                require_review=True,
            )
            drafts = plan_application_created(application, reviewer_ids=reviewer_ids, actor_id=actor_id)
            await self._write(drafts)
        except Exception:
            logger.exception("notification emission failed for new application id=%s", application.id)
            return False
        return True

    async def notify_application_transition(
        self,
        application: ApplicationRecord,
        *,
        from_status: ApplicationStatus,
        actor_id: str | None,
    ) -> bool:
        try:
            drafts = plan_application_transition(application, from_status=from_status, actor_id=actor_id)
            await self._write(drafts)
        except Exception:
            logger.exception(
                "notification emission failed for application transition id=%s to=%s",
                application.id,
                application.status.value,
            )
            return False
        return True

    async def notify_job_transition(self, job: JobRecord, *, from_status: JobStatus, actor_id: str | None) -> bool:
        try:
            staff_ids = await self.repository.list_employer_staff_user_ids(
                employer_id=job.employer_id,
                require_review=False,
            )
            applicant_ids: list[str] = []
            if job.status is JobStatus.CLOSED:
                applicant_ids = await self.repository.list_open_applicant_user_ids(job_id=job.id)
            drafts = plan_job_transition(
                job,
                from_status=from_status,
                staff_ids=staff_ids,
                applicant_ids=applicant_ids,
                actor_id=actor_id,
            )
            await self._write(drafts)
        except Exception:
            logger.exception("notification emission failed for job transition id=%s to=%s", job.id, job.status.value)
            return False
        return True

    async def _write(self, drafts: list[NotificationDraft]) -> None:
        if not drafts:
            return
        created = await self.repository.create_notifications(drafts)
        logger.info("notifications created count=%s", len(created))
