"""Lifecycle operations invoked by the HTTP layer.

Every operation takes an explicit ``Principal``, authorizes it against a snapshot
of the target entity, then hands the state change to the repository, which
re-validates it under a row lock. Notifications are written only after the
change has committed and never undo it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from hirelane.core.auth import Principal, RecruiterPermissions, Role
from hirelane.services.aggregation import (
    RECENT_SHORTLIST_WINDOW_DAYS,
    EmployerDashboard,
    JobApplicationStats,
    summarize_employer,
    summarize_job_applications,
)
from hirelane.services.application_lifecycle import ApplicationEvent, ApplicationStatus
from hirelane.services.authorization import JOB_EVENT_ACTIONS, Action, Resource, authorize, can_perform
from hirelane.services.errors import (
    AuthenticationError,
    LifecycleNotFoundError,
    LifecycleValidationError,
    UpstreamUnavailableError,
)
from hirelane.services.job_lifecycle import JobEvent, JobStatus, validate_job_draft
from hirelane.services.notifications import NotificationTrigger
from hirelane.services.realtime import ChangeEvent, ChangeFeed
from hirelane.services.records import (
    ApplicantRecord,
    ApplicationRecord,
    ApplicationSubmission,
    JobDraft,
    JobRecord,
    NotificationRecord,
    ProfileRecord,
    RecruiterProfileRecord,
    WorkExperienceRecord,
    filter_job_changes,
    filter_work_experience_fields,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200
MAX_RESUME_BYTES = 5 * 1024 * 1024
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(slots=True)
class ProvisionResult:
    profile: ProfileRecord
    role: Role
    created: bool
    role_synced: bool


@dataclass(slots=True)
class JobTransitionResult:
    job: JobRecord
    from_status: JobStatus
    notifications_delivered: bool


@dataclass(slots=True)
class ApplyResult:
    submission: ApplicationSubmission
    notifications_delivered: bool

    @property
    def created(self) -> bool:
        return self.submission.created

    @property
    def status(self) -> ApplicationStatus:
        return self.submission.status


@dataclass(slots=True)
class ApplicationTransitionResult:
    application: ApplicationRecord
    from_status: ApplicationStatus
    notifications_delivered: bool


def _job_resource(job: JobRecord) -> Resource:
    return Resource(kind="job", id=job.id, employer_id=job.employer_id, job_status=job.status)


def _application_resource(application: ApplicationRecord) -> Resource:
    return Resource(
        kind="application",
        id=application.id,
        employer_id=application.employer_id,
        candidate_id=application.candidate_id,
    )


def _own_profile_resource(principal: Principal) -> Resource:
    return Resource(kind="profile", id=principal.profile_id, owner_user_id=principal.subject)


def _own_work_history(principal: Principal) -> Resource:
    return Resource(kind="work_experience", candidate_id=principal.profile_id)


def _employer_resource(principal: Principal) -> Resource:
    return Resource(kind="employer", id=principal.employer_id, employer_id=principal.employer_id)


def _check_page(limit: int, offset: int) -> None:
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise LifecycleValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise LifecycleValidationError("offset must not be negative")


def _present_application(principal: Principal, application: ApplicationRecord) -> ApplicationRecord:
    """Strip reviewer notes unless the principal reviews for the application's employer."""
    if application.notes is None:
        return application
    if can_perform(principal, Action.READ_APPLICATION_NOTES, _application_resource(application)):
        return application
    return replace(application, notes=None)


def _check_work_experience(
    *,
    company: str | None,
    position: str | None,
    start_date: date | None,
    end_date: date | None,
) -> None:
    if not company or not company.strip():
        raise LifecycleValidationError("company must be a non-empty string")
    if not position or not position.strip():
        raise LifecycleValidationError("position must be a non-empty string")
    if start_date is None:
        raise LifecycleValidationError("start_date is required")
    if end_date is not None and end_date < start_date:
        raise LifecycleValidationError("end_date must not be before start_date")


def _resume_path(subject: str, filename: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", filename.rsplit("/", 1)[-1]).strip(".-")
    return f"{subject}/{uuid4().hex}-{cleaned or 'resume'}"


class LifecycleEngine:
    def __init__(
        self,
        repository: Any,
        *,
        auth_client: Any = None,
        storage_client: Any = None,
        change_feed: ChangeFeed | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.auth_client = auth_client
        self.storage_client = storage_client
        self.change_feed = change_feed
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.notifications = NotificationTrigger(repository)

    # Identity & role registry

    async def load_principal(
        self,
        *,
        subject: str,
        email: str | None = None,
        access_token: str | None = None,
    ) -> Principal:
        principal = Principal(subject=subject, email=email, access_token=access_token)
        context = await self.repository.get_principal_context(subject)
        if context is not None:
            principal.role = context.role
            principal.profile_id = context.profile_id
            principal.employer_id = context.employer_id
            principal.permissions = context.permissions
        return principal

    async def provision_profile(
        self,
        principal: Principal,
        role: Role,
        attributes: dict[str, Any] | None = None,
    ) -> ProvisionResult:
        profile, created = await self.repository.provision_profile(
            user_id=principal.subject,
            email=principal.email,
            role=role,
            attributes=attributes or {},
        )
        logger.info("profile provisioned user_id=%s role=%s created=%s", principal.subject, role.value, created)
        role_synced = await self._sync_role(principal, role)
        return ProvisionResult(profile=profile, role=role, created=created, role_synced=role_synced)

    async def _sync_role(self, principal: Principal, role: Role) -> bool:
        if self.auth_client is None or not principal.access_token:
            return False
        try:
            await self.auth_client.update_user_role(principal.access_token, role)
        except (AuthenticationError, UpstreamUnavailableError):
            logger.warning("role sync to auth provider failed user_id=%s role=%s", principal.subject, role.value)
            return False
        return True

    async def get_own_profile(self, principal: Principal) -> ProfileRecord:
        if principal.role is None:
            raise LifecycleNotFoundError("profile not found")
        authorize(principal, Action.READ_PROFILE, _own_profile_resource(principal))
        profile = await self.repository.get_profile(user_id=principal.subject, role=principal.role)
        if profile is None:
            raise LifecycleNotFoundError("profile not found")
        return profile

    async def update_own_profile(self, principal: Principal, attributes: dict[str, Any]) -> ProfileRecord:
        if principal.role is None:
            raise LifecycleNotFoundError("profile not found")
        authorize(principal, Action.UPDATE_PROFILE, _own_profile_resource(principal))
        return await self.repository.update_profile(
            user_id=principal.subject,
            role=principal.role,
            attributes=attributes,
        )

    async def upload_resume(
        self,
        principal: Principal,
        *,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> ProfileRecord:
        if principal.role is None:
            raise LifecycleNotFoundError("profile not found")
        authorize(principal, Action.UPLOAD_RESUME, _own_profile_resource(principal))
        if len(data) > MAX_RESUME_BYTES:
            raise LifecycleValidationError(f"resume exceeds {MAX_RESUME_BYTES} bytes")
        if self.storage_client is None:
            raise UpstreamUnavailableError("blob storage is not configured")

        url = await self.storage_client.upload(_resume_path(principal.subject, filename), data, content_type)
        return await self.repository.update_profile(
            user_id=principal.subject,
            role=principal.role,
            attributes={"resume_url": url},
        )

    # Job postings

    async def create_job(self, principal: Principal, draft: JobDraft) -> JobRecord:
        authorize(principal, Action.CREATE_JOB, Resource(kind="job", employer_id=principal.employer_id))
        validate_job_draft(
            title=draft.title,
            experience_level=draft.experience_level,
            salary_min=draft.salary_min,
            salary_max=draft.salary_max,
        )
        job = await self.repository.create_job(
            employer_id=principal.employer_id,
            posted_by=principal.subject,
            draft=draft,
        )
        logger.info("job created id=%s employer_id=%s", job.id, job.employer_id)
        return job

    async def get_job(self, principal: Principal, job_id: str) -> JobRecord:
        job = await self._load_job(job_id)
        authorize(principal, Action.READ_JOB, _job_resource(job))
        return job

    async def search_jobs(
        self,
        principal: Principal,
        *,
        q: str | None = None,
        category: str | None = None,
        employment_type: str | None = None,
        location: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[JobRecord]:
        """Candidate-facing listing. Only active postings are ever returned."""
        _check_page(limit, offset)
        logger.debug("job search user_id=%s q=%s", principal.subject, q)
        return await self.repository.search_jobs(
            q=q,
            category=category,
            employment_type=employment_type,
            location=location,
            limit=limit,
            offset=offset,
        )

    async def list_scope_jobs(
        self,
        principal: Principal,
        *,
        status: JobStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[JobRecord]:
        _check_page(limit, offset)
        authorize(principal, Action.LIST_SCOPE_JOBS, Resource(kind="job", employer_id=principal.employer_id))
        return await self.repository.list_employer_jobs(
            employer_id=principal.employer_id,
            status=status,
            limit=limit,
            offset=offset,
        )

    async def transition_job(self, principal: Principal, job_id: str, event: JobEvent) -> JobTransitionResult:
        job = await self._load_job(job_id)
        authorize(principal, JOB_EVENT_ACTIONS[event], _job_resource(job))
        updated, from_status = await self.repository.transition_job(job_id=job.id, event=event)
        logger.info(
            "job transition id=%s event=%s from=%s to=%s",
            updated.id,
            event.value,
            from_status.value,
            updated.status.value,
        )
        delivered = await self.notifications.notify_job_transition(
            updated,
            from_status=from_status,
            actor_id=principal.subject,
        )
        return JobTransitionResult(job=updated, from_status=from_status, notifications_delivered=delivered)

    async def update_job(self, principal: Principal, job_id: str, changes: dict[str, Any]) -> JobRecord:
        """Edit posting content. Status only moves through ``transition_job``."""
        changes = filter_job_changes(changes)
        job = await self._load_job(job_id)
        authorize(principal, Action.UPDATE_JOB, _job_resource(job))
        merged = {
            "title": job.title,
            "experience_level": job.experience_level,
            "salary_min": job.salary_min,
            "salary_max": job.salary_max,
        }
        merged.update({key: value for key, value in changes.items() if key in merged})
        validate_job_draft(**merged)
        updated = await self.repository.update_job(job_id=job.id, changes=changes)
        logger.info("job updated id=%s fields=%s", updated.id, sorted(changes))
        return updated

    async def job_stats(self, principal: Principal, job_id: str) -> JobApplicationStats:
        job = await self._load_job(job_id)
        authorize(principal, Action.READ_JOB_STATS, _job_resource(job))
        rows = await self.repository.count_job_applications_by_status(job_id=job.id)
        return summarize_job_applications(job.id, rows)

    async def employer_dashboard(self, principal: Principal) -> EmployerDashboard:
        authorize(principal, Action.READ_EMPLOYER_DASHBOARD, _employer_resource(principal))
        employer_id = principal.employer_id
        since = self.clock() - timedelta(days=RECENT_SHORTLIST_WINDOW_DAYS)
        job_rows = await self.repository.count_employer_jobs_by_status(employer_id=employer_id)
        application_rows = await self.repository.count_employer_applications_by_status(employer_id=employer_id)
        recent = await self.repository.count_employer_shortlisted_since(employer_id=employer_id, since=since)
        return summarize_employer(
            employer_id,
            job_rows=job_rows,
            application_rows=application_rows,
            recent_shortlisted=recent,
        )

    async def _load_job(self, job_id: str) -> JobRecord:
        job = await self.repository.get_job(job_id)
        if job is None:
            raise LifecycleNotFoundError("job not found")
        return job

    # Applications

    async def apply(self, principal: Principal, job_id: str) -> ApplyResult:
        job = await self._load_job(job_id)
        authorize(principal, Action.APPLY, _job_resource(job))
        submission = await self.repository.create_application(job_id=job.id, candidate_id=principal.profile_id)
        if not submission.created:
            logger.info(
                "duplicate application job_id=%s candidate_id=%s status=%s",
                job.id,
                principal.profile_id,
                submission.status.value,
            )
            submission.application = _present_application(principal, submission.application)
            return ApplyResult(submission=submission, notifications_delivered=True)

        logger.info("application created id=%s job_id=%s", submission.application.id, job.id)
        delivered = await self.notifications.notify_application_created(
            submission.application,
            actor_id=principal.subject,
        )
        return ApplyResult(submission=submission, notifications_delivered=delivered)

    async def list_own_applications(self, principal: Principal) -> list[ApplicationRecord]:
        authorize(principal, Action.LIST_OWN_APPLICATIONS, Resource(kind="application"))
        applications = await self.repository.list_candidate_applications(candidate_id=principal.profile_id)
        return [_present_application(principal, application) for application in applications]

    async def list_job_applications(
        self,
        principal: Principal,
        job_id: str,
        *,
        status: ApplicationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ApplicationRecord]:
        _check_page(limit, offset)
        job = await self._load_job(job_id)
        authorize(principal, Action.LIST_JOB_APPLICATIONS, _job_resource(job))
        applications = await self.repository.list_job_applications(
            job_id=job.id,
            status=status,
            limit=limit,
            offset=offset,
        )
        return [_present_application(principal, application) for application in applications]

    async def list_employer_applications(
        self,
        principal: Principal,
        *,
        status: ApplicationStatus | None = None,
        job_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ApplicationRecord]:
        """Inbox across every posting of the principal's employer, newest first."""
        _check_page(limit, offset)
        authorize(principal, Action.LIST_EMPLOYER_APPLICATIONS, _employer_resource(principal))
        applications = await self.repository.list_employer_applications(
            employer_id=principal.employer_id,
            status=status,
            job_id=job_id,
            limit=limit,
            offset=offset,
        )
        return [_present_application(principal, application) for application in applications]

    async def get_application(self, principal: Principal, application_id: str) -> ApplicationRecord:
        application = await self._load_application(application_id)
        authorize(principal, Action.READ_APPLICATION, _application_resource(application))
        return _present_application(principal, application)

    async def get_applicant(self, principal: Principal, application_id: str) -> ApplicantRecord:
        application = await self._load_application(application_id)
        authorize(principal, Action.READ_APPLICANT, _application_resource(application))
        profile = await self.repository.get_candidate_profile(application.candidate_id)
        if profile is None:
            raise LifecycleNotFoundError("candidate profile not found")
        experiences = await self.repository.list_work_experiences(candidate_id=application.candidate_id)
        return ApplicantRecord(application_id=application.id, profile=profile, experiences=experiences)

    async def transition_application(
        self,
        principal: Principal,
        application_id: str,
        event: ApplicationEvent,
    ) -> ApplicationTransitionResult:
        application = await self._load_application(application_id)
        authorize(principal, Action.REVIEW_APPLICATION, _application_resource(application))
        # ``application.status`` may already be stale; the repository validates against the locked row.
        updated, from_status = await self.repository.transition_application(
            application_id=application.id,
            event=event,
        )
        logger.info(
            "application transition id=%s event=%s from=%s to=%s",
            updated.id,
            event.value,
            from_status.value,
            updated.status.value,
        )
        delivered = await self.notifications.notify_application_transition(
            updated,
            from_status=from_status,
            actor_id=principal.subject,
        )
        return ApplicationTransitionResult(
            application=_present_application(principal, updated),
            from_status=from_status,
            notifications_delivered=delivered,
        )

    async def update_application_notes(
        self,
        principal: Principal,
        application_id: str,
        notes: str | None,
    ) -> ApplicationRecord:
        application = await self._load_application(application_id)
        authorize(principal, Action.REVIEW_APPLICATION, _application_resource(application))
        return await self.repository.update_application_notes(application_id=application.id, notes=notes)

    async def delete_application(self, principal: Principal, application_id: str) -> None:
        application = await self._load_application(application_id)
        authorize(principal, Action.DELETE_APPLICATION, _application_resource(application))
        deleted = await self.repository.delete_application(application_id=application.id)
        if not deleted:
            raise LifecycleNotFoundError("application not found")
        logger.info("application deleted id=%s by user_id=%s", application.id, principal.subject)

    async def _load_application(self, application_id: str) -> ApplicationRecord:
        application = await self.repository.get_application(application_id)
        if application is None:
            raise LifecycleNotFoundError("application not found")
        return application

    # Work history

    async def list_work_experiences(self, principal: Principal) -> list[WorkExperienceRecord]:
        authorize(principal, Action.MANAGE_WORK_EXPERIENCE, _own_work_history(principal))
        return await self.repository.list_work_experiences(candidate_id=principal.profile_id)

    async def add_work_experience(self, principal: Principal, attributes: dict[str, Any]) -> WorkExperienceRecord:
        fields = filter_work_experience_fields(attributes)
        authorize(principal, Action.MANAGE_WORK_EXPERIENCE, _own_work_history(principal))
        _check_work_experience(
            company=fields.get("company"),
            position=fields.get("position"),
            start_date=fields.get("start_date"),
            end_date=fields.get("end_date"),
        )
        experience = await self.repository.create_work_experience(candidate_id=principal.profile_id, fields=fields)
        logger.info("work experience added id=%s candidate_id=%s", experience.id, experience.candidate_id)
        return experience

    async def update_work_experience(
        self,
        principal: Principal,
        experience_id: str,
        attributes: dict[str, Any],
    ) -> WorkExperienceRecord:
        fields = filter_work_experience_fields(attributes)
        experience = await self._load_work_experience(principal, experience_id)
        _check_work_experience(
            company=fields.get("company", experience.company),
            position=fields.get("position", experience.position),
            start_date=fields.get("start_date", experience.start_date),
            end_date=fields.get("end_date", experience.end_date),
        )
        return await self.repository.update_work_experience(experience_id=experience.id, fields=fields)

    async def delete_work_experience(self, principal: Principal, experience_id: str) -> None:
        experience = await self._load_work_experience(principal, experience_id)
        if not await self.repository.delete_work_experience(experience_id=experience.id):
            raise LifecycleNotFoundError("work experience not found")

    async def _load_work_experience(self, principal: Principal, experience_id: str) -> WorkExperienceRecord:
        experience = await self.repository.get_work_experience(experience_id)
        if experience is None:
            raise LifecycleNotFoundError("work experience not found")
        resource = Resource(kind="work_experience", id=experience.id, candidate_id=experience.candidate_id)
        if not can_perform(principal, Action.MANAGE_WORK_EXPERIENCE, resource):
            # Another candidate's entry is indistinguishable from a missing one.
            raise LifecycleNotFoundError("work experience not found")
        return experience

    # Recruiter delegation

    async def invite_recruiter(
        self,
        principal: Principal,
        *,
        email: str,
        full_name: str = "",
        title: str | None = None,
        permissions: RecruiterPermissions | None = None,
    ) -> tuple[RecruiterProfileRecord, bool]:
        authorize(principal, Action.MANAGE_RECRUITERS, _employer_resource(principal))
        recruiter, created = await self.repository.invite_recruiter(
            employer_id=principal.employer_id,
            email=email,
            full_name=full_name,
            title=title,
            permissions=permissions or RecruiterPermissions(),
        )
        logger.info("recruiter invited id=%s employer_id=%s created=%s", recruiter.id, recruiter.employer_id, created)
        return recruiter, created

    async def list_recruiters(self, principal: Principal) -> list[RecruiterProfileRecord]:
        authorize(principal, Action.MANAGE_RECRUITERS, _employer_resource(principal))
        return await self.repository.list_recruiters(employer_id=principal.employer_id)

    async def update_recruiter_permissions(
        self,
        principal: Principal,
        recruiter_id: str,
        permissions: RecruiterPermissions,
    ) -> RecruiterProfileRecord:
        recruiter = await self.repository.get_recruiter(recruiter_id)
        if recruiter is None:
            raise LifecycleNotFoundError("recruiter not found")
        authorize(
            principal,
            Action.MANAGE_RECRUITERS,
            Resource(kind="recruiter", id=recruiter.id, employer_id=recruiter.employer_id),
        )
        return await self.repository.update_recruiter_permissions(recruiter_id=recruiter.id, permissions=permissions)

    # Notification inbox

    async def list_notifications(
        self,
        principal: Principal,
        *,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[NotificationRecord]:
        _check_page(limit, offset)
        return await self.repository.list_notifications(
            recipient_id=principal.subject,
            unread_only=unread_only,
            limit=limit,
            offset=offset,
        )

    async def unread_count(self, principal: Principal) -> int:
        return await self.repository.count_unread_notifications(recipient_id=principal.subject)

    async def mark_notifications_read(self, principal: Principal, notification_ids: list[str]) -> int:
        return await self.repository.mark_notifications_read(
            recipient_id=principal.subject,
            notification_ids=notification_ids,
        )

    async def subscribe_notifications(self, principal: Principal) -> AsyncIterator[ChangeEvent]:
        """Return the principal's notification stream. Raises here if the feed cannot start."""
        if self.change_feed is None:
            raise UpstreamUnavailableError("realtime feed is not configured")
        await self.change_feed.start()
        return self.change_feed.subscribe("notifications", f"recipient_id=eq.{principal.subject}")
