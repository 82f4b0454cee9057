from __future__ import annotations

from dataclasses import asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from hirelane.core.auth import RecruiterPermissions, Role
from hirelane.services.application_lifecycle import (
    TERMINAL_APPLICATION_STATUSES,
    ApplicationEvent,
    ApplicationStatus,
    next_application_status,
)
from hirelane.services.errors import (
    InvalidTransitionError,
    LifecycleNotFoundError,
    LifecycleValidationError,
    RoleConflictError,
)
from hirelane.services.job_lifecycle import JobEvent, JobStatus, next_job_status
from hirelane.services.realtime import ChangeEvent, ChangeFeed, project_row
from hirelane.services.records import (
    ApplicationRecord,
    ApplicationSubmission,
    CandidateProfileRecord,
    EmployerProfileRecord,
    JobDraft,
    JobRecord,
    NotificationDraft,
    NotificationRecord,
    PrincipalContextRecord,
    ProfileRecord,
    RecruiterProfileRecord,
    WorkExperienceRecord,
    filter_job_changes,
    filter_profile_fields,
    filter_work_experience_fields,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_uuid(value: str | None) -> bool:
    if not value:
        return False
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _row(record: Any) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for key, value in asdict(record).items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        row[key] = value
    return row


def _contains(haystack: str | None, needle: str) -> bool:
    return haystack is not None and needle.lower() in haystack.lower()


def _check_experience_dates(experience: WorkExperienceRecord) -> None:
    if experience.end_date is not None and experience.end_date < experience.start_date:
        raise LifecycleValidationError("work experience violates constraint: work_experiences_date_range")


class InMemoryRepository:
    """Process-local backend with the same interface as ``PostgresRepository``.

    Each method finishes its check and its write without awaiting, so on a single
    event loop every call is atomic the way a row-locked transaction is. Used by
    ``HL_STORE_BACKEND=memory`` and by the test suite.
    """

    def __init__(self, change_feed: ChangeFeed | None = None) -> None:
        self.change_feed = change_feed
        self.principals: dict[str, dict[str, Any]] = {}
        self.candidate_profiles: dict[str, CandidateProfileRecord] = {}
        self.employer_profiles: dict[str, EmployerProfileRecord] = {}
        self.recruiter_profiles: dict[str, RecruiterProfileRecord] = {}
        self.jobs: dict[str, JobRecord] = {}
        self.applications: dict[str, ApplicationRecord] = {}
        self.notifications: dict[str, NotificationRecord] = {}
        self.work_experiences: dict[str, WorkExperienceRecord] = {}

    async def close(self) -> None:
        return None

    # Identity & role registry

    async def get_principal_context(self, user_id: str) -> PrincipalContextRecord | None:
        principal = self.principals.get(user_id)
        if principal is None:
            return None
        role: Role | None = principal["role"]
        context = PrincipalContextRecord(user_id=user_id, role=role)
        profile = self._profile_for(user_id, role) if role else None
        if isinstance(profile, CandidateProfileRecord):
            context.profile_id = profile.id
        elif isinstance(profile, EmployerProfileRecord):
            context.profile_id = profile.id
            context.employer_id = profile.id
        elif isinstance(profile, RecruiterProfileRecord):
            context.profile_id = profile.id
            context.employer_id = profile.employer_id
            context.permissions = profile.permissions
        return context

    async def provision_profile(
        self,
        *,
        user_id: str,
        email: str | None,
        role: Role,
        attributes: dict[str, Any],
    ) -> tuple[ProfileRecord, bool]:
        if not _is_uuid(user_id):
            raise LifecycleValidationError("invalid principal id or profile payload")
        fields = filter_profile_fields(role, attributes)
        principal = self.principals.get(user_id) or {"email": email, "role": None}
        current_role: Role | None = principal["role"]
        if current_role is not None and current_role is not role:
            raise RoleConflictError(f"principal already holds role {current_role.value}")

        existing = self._profile_for(user_id, role)
        if existing is not None:
            return replace(existing), False

        now = _now()
        profile: ProfileRecord
        if role is Role.RECRUITER:
            invitation = self._pending_invitation(email or principal["email"])
            if invitation is None:
                raise LifecycleNotFoundError("recruiter invitation not found")
            invitation.user_id = user_id
            if fields.get("full_name"):
                invitation.full_name = fields["full_name"]
            if fields.get("title") is not None:
                invitation.title = fields["title"]
            invitation.updated_at = now
            profile = invitation
        elif role is Role.EMPLOYER:
            profile = EmployerProfileRecord(id=str(uuid4()), user_id=user_id, created_at=now, updated_at=now, **fields)
            self.employer_profiles[profile.id] = profile
        else:
            profile = CandidateProfileRecord(id=str(uuid4()), user_id=user_id, created_at=now, updated_at=now, **fields)
            self.candidate_profiles[profile.id] = profile

        principal["role"] = role
        self.principals[user_id] = principal
        return replace(profile), True

    async def get_profile(self, *, user_id: str, role: Role) -> ProfileRecord | None:
        profile = self._profile_for(user_id, role)
        return replace(profile) if profile else None

    async def update_profile(self, *, user_id: str, role: Role, attributes: dict[str, Any]) -> ProfileRecord:
        fields = filter_profile_fields(role, attributes)
        profile = self._profile_for(user_id, role)
        if profile is None:
            raise LifecycleNotFoundError("profile not found")
        for key, value in fields.items():
            setattr(profile, key, value)
        if fields:
            profile.updated_at = _now()
        return replace(profile)

    def _profile_for(self, user_id: str, role: Role) -> ProfileRecord | None:
        table: dict[str, Any] = {
            Role.CANDIDATE: self.candidate_profiles,
            Role.EMPLOYER: self.employer_profiles,
            Role.RECRUITER: self.recruiter_profiles,
        }[role]
        return next((profile for profile in table.values() if profile.user_id == user_id), None)

    def _pending_invitation(self, email: str | None) -> RecruiterProfileRecord | None:
        if not email:
            return None
        return next(
            (
                recruiter
                for recruiter in self.recruiter_profiles.values()
                if recruiter.user_id is None and recruiter.email.lower() == email.lower()
            ),
            None,
        )

    # Recruiter delegation

    async def invite_recruiter(
        self,
        *,
        employer_id: str,
        email: str,
        full_name: str,
        title: str | None,
        permissions: RecruiterPermissions,
    ) -> tuple[RecruiterProfileRecord, bool]:
        normalized_email = (email or "").strip()
        if not normalized_email:
            raise LifecycleValidationError("email must be a non-empty string")
        if employer_id not in self.employer_profiles:
            raise LifecycleNotFoundError("employer not found")

        for recruiter in self.recruiter_profiles.values():
            if recruiter.employer_id == employer_id and recruiter.email.lower() == normalized_email.lower():
                return replace(recruiter), False

        now = _now()
        recruiter = RecruiterProfileRecord(
            id=str(uuid4()),
            user_id=None,
            employer_id=employer_id,
            email=normalized_email,
            full_name=full_name or "",
            title=title,
            permissions=permissions,
            created_at=now,
            updated_at=now,
        )
        self.recruiter_profiles[recruiter.id] = recruiter
        return replace(recruiter), True

    async def list_recruiters(self, *, employer_id: str) -> list[RecruiterProfileRecord]:
        return [replace(item) for item in self.recruiter_profiles.values() if item.employer_id == employer_id]

    async def get_recruiter(self, recruiter_id: str) -> RecruiterProfileRecord | None:
        recruiter = self.recruiter_profiles.get(recruiter_id)
        return replace(recruiter) if recruiter else None

    async def update_recruiter_permissions(
        self,
        *,
        recruiter_id: str,
        permissions: RecruiterPermissions,
    ) -> RecruiterProfileRecord:
        recruiter = self.recruiter_profiles.get(recruiter_id)
        if recruiter is None:
            raise LifecycleNotFoundError("recruiter not found")
        recruiter.permissions = permissions
        recruiter.updated_at = _now()
        return replace(recruiter)

    async def list_employer_staff_user_ids(self, *, employer_id: str, require_review: bool) -> list[str]:
        user_ids: list[str] = []
        employer = self.employer_profiles.get(employer_id)
        if employer is not None:
            user_ids.append(employer.user_id)
        for recruiter in self.recruiter_profiles.values():
            if recruiter.employer_id != employer_id or recruiter.user_id is None:
                continue
            if require_review and not recruiter.permissions.can_review_applications:
                continue
            user_ids.append(recruiter.user_id)
        return user_ids

    # Job postings

    async def create_job(self, *, employer_id: str, posted_by: str | None, draft: JobDraft) -> JobRecord:
        if employer_id not in self.employer_profiles:
            raise LifecycleNotFoundError("employer not found")
        now = _now()
        job = JobRecord(
            id=str(uuid4()),
            employer_id=employer_id,
            posted_by=posted_by,
            title=draft.title.strip(),
            status=JobStatus.PENDING_REVIEW,
            description=draft.description,
            requirements=draft.requirements,
            category=draft.category,
            employment_type=draft.employment_type,
            experience_level=draft.experience_level,
            salary_min=draft.salary_min,
            salary_max=draft.salary_max,
            location=draft.location,
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        self._publish("jobs", "INSERT", job, None)
        return replace(job)

    async def get_job(self, job_id: str) -> JobRecord | None:
        job = self.jobs.get(job_id)
        return replace(job) if job else None

    async def search_jobs(
        self,
        *,
        limit: int,
        offset: int,
        q: str | None = None,
        category: str | None = None,
        employment_type: str | None = None,
        location: str | None = None,
    ) -> list[JobRecord]:
        q = (q or "").strip()
        category = (category or "").strip()
        employment_type = (employment_type or "").strip()
        location = (location or "").strip()

        results: list[JobRecord] = []
        for job in reversed(list(self.jobs.values())):
            if job.status is not JobStatus.ACTIVE:
                continue
            if q and not any(_contains(text, q) for text in (job.title, job.description, job.requirements)):
                continue
            if category and (job.category or "").lower() != category.lower():
                continue
            if employment_type and (job.employment_type or "").lower() != employment_type.lower():
                continue
            if location and not _contains(job.location, location):
                continue
            results.append(replace(job))
        return results[offset : offset + limit]

    async def list_employer_jobs(
        self,
        *,
        employer_id: str,
        status: JobStatus | None,
        limit: int,
        offset: int,
    ) -> list[JobRecord]:
        results = [
            replace(job)
            for job in reversed(list(self.jobs.values()))
            if job.employer_id == employer_id and (status is None or job.status is status)
        ]
        return results[offset : offset + limit]

    async def transition_job(self, *, job_id: str, event: JobEvent) -> tuple[JobRecord, JobStatus]:
        job = self.jobs.get(job_id)
        if job is None:
            raise LifecycleNotFoundError("job not found")
        old = replace(job)
        from_status = job.status
        job.status = next_job_status(from_status, event)
        job.updated_at = _now()
        self._publish("jobs", "UPDATE", job, old)
        return replace(job), from_status

    async def update_job(self, *, job_id: str, changes: dict[str, Any]) -> JobRecord:
        changes = filter_job_changes(changes)
        job = self.jobs.get(job_id)
        if job is None:
            raise LifecycleNotFoundError("job not found")
        if job.status is JobStatus.CLOSED:
            raise InvalidTransitionError("closed jobs cannot be edited")
        if not changes:
            return replace(job)
        old = replace(job)
        for column, value in changes.items():
            setattr(job, column, value.strip() if column == "title" else value)
        job.updated_at = _now()
        self._publish("jobs", "UPDATE", job, old)
        return replace(job)

    # Applications

    async def create_application(self, *, job_id: str, candidate_id: str) -> ApplicationSubmission:
        for application in self.applications.values():
            if application.job_id == job_id and application.candidate_id == candidate_id:
                return ApplicationSubmission(application=self._application_view(application), created=False)

        job = self.jobs.get(job_id)
        if job is None:
            raise LifecycleNotFoundError("job not found")
        if job.status is not JobStatus.ACTIVE:
            raise InvalidTransitionError("job is not accepting applications")
        candidate = self.candidate_profiles.get(candidate_id)
        if candidate is None:
            raise LifecycleNotFoundError("candidate profile not found")

        now = _now()
        application = ApplicationRecord(
            id=str(uuid4()),
            job_id=job_id,
            candidate_id=candidate_id,
            status=ApplicationStatus.PENDING,
            employer_id=job.employer_id,
            candidate_user_id=candidate.user_id,
            job_title=job.title,
            created_at=now,
            updated_at=now,
        )
        self.applications[application.id] = application
        self._publish("applications", "INSERT", application, None)
        return ApplicationSubmission(application=self._application_view(application), created=True)

    async def get_application(self, application_id: str) -> ApplicationRecord | None:
        application = self.applications.get(application_id)
        return self._application_view(application) if application else None

    async def list_candidate_applications(self, *, candidate_id: str) -> list[ApplicationRecord]:
        return [
            self._application_view(application)
            for application in reversed(list(self.applications.values()))
            if application.candidate_id == candidate_id
        ]

    async def list_job_applications(
        self,
        *,
        job_id: str,
        status: ApplicationStatus | None,
        limit: int,
        offset: int,
    ) -> list[ApplicationRecord]:
        results = [
            self._application_view(application)
            for application in reversed(list(self.applications.values()))
            if application.job_id == job_id and (status is None or application.status is status)
        ]
        return results[offset : offset + limit]

    async def list_employer_applications(
        self,
        *,
        employer_id: str,
        status: ApplicationStatus | None,
        job_id: str | None,
        limit: int,
        offset: int,
    ) -> list[ApplicationRecord]:
        results = [
            self._application_view(application)
            for application in reversed(list(self.applications.values()))
            if application.employer_id == employer_id
            and (status is None or application.status is status)
            and (job_id is None or application.job_id == job_id)
        ]
        return results[offset : offset + limit]

    async def transition_application(
        self,
        *,
        application_id: str,
        event: ApplicationEvent,
    ) -> tuple[ApplicationRecord, ApplicationStatus]:
        application = self.applications.get(application_id)
        if application is None:
            raise LifecycleNotFoundError("application not found")
        old = replace(application)
        from_status = application.status
        application.status = next_application_status(from_status, event)
        application.updated_at = _now()
        self._publish("applications", "UPDATE", application, old)
        return self._application_view(application), from_status

    async def update_application_notes(self, *, application_id: str, notes: str | None) -> ApplicationRecord:
        application = self.applications.get(application_id)
        if application is None:
            raise LifecycleNotFoundError("application not found")
        old = replace(application)
        application.notes = notes
        application.updated_at = _now()
        self._publish("applications", "UPDATE", application, old)
        return self._application_view(application)

    async def delete_application(self, *, application_id: str) -> bool:
        application = self.applications.pop(application_id, None)
        if application is None:
            return False
        self._publish("applications", "DELETE", None, application)
        return True

    async def list_open_applicant_user_ids(self, *, job_id: str) -> list[str]:
        user_ids: list[str] = []
        for application in self.applications.values():
            if application.job_id != job_id or application.status in TERMINAL_APPLICATION_STATUSES:
                continue
            if application.candidate_user_id not in user_ids:
                user_ids.append(application.candidate_user_id)
        return user_ids

    def _application_view(self, application: ApplicationRecord) -> ApplicationRecord:
        # Job title and candidate details are joined at read time, as the SQL backend does.
        view = replace(application)
        job = self.jobs.get(application.job_id)
        if job is not None:
            view.job_title = job.title
        candidate = self.candidate_profiles.get(application.candidate_id)
        if candidate is not None:
            view.candidate_name = candidate.full_name
            view.candidate_title = candidate.title
        return view

    # Candidate details and work history

    async def get_candidate_profile(self, candidate_id: str) -> CandidateProfileRecord | None:
        profile = self.candidate_profiles.get(candidate_id)
        return replace(profile, skills=list(profile.skills)) if profile else None

    async def list_work_experiences(self, *, candidate_id: str) -> list[WorkExperienceRecord]:
        experiences = [item for item in self.work_experiences.values() if item.candidate_id == candidate_id]
        experiences.sort(key=lambda item: item.id)
        experiences.sort(key=lambda item: item.start_date, reverse=True)
        return [replace(item) for item in experiences]

    async def get_work_experience(self, experience_id: str) -> WorkExperienceRecord | None:
        experience = self.work_experiences.get(experience_id)
        return replace(experience) if experience else None

    async def create_work_experience(self, *, candidate_id: str, fields: dict[str, Any]) -> WorkExperienceRecord:
        fields = filter_work_experience_fields(fields)
        if candidate_id not in self.candidate_profiles:
            raise LifecycleNotFoundError("candidate profile not found")
        for column in ("company", "position", "start_date"):
            if fields.get(column) is None:
                raise LifecycleValidationError(f"work experience requires {column}")
        now = _now()
        experience = WorkExperienceRecord(
            id=str(uuid4()),
            candidate_id=candidate_id,
            created_at=now,
            updated_at=now,
            **fields,
        )
        _check_experience_dates(experience)
        self.work_experiences[experience.id] = experience
        return replace(experience)

    async def update_work_experience(self, *, experience_id: str, fields: dict[str, Any]) -> WorkExperienceRecord:
        fields = filter_work_experience_fields(fields)
        experience = self.work_experiences.get(experience_id)
        if experience is None:
            raise LifecycleNotFoundError("work experience not found")
        for column in ("company", "position", "start_date"):
            if column in fields and fields[column] is None:
                raise LifecycleValidationError(f"work experience requires {column}")
        updated = replace(experience, **fields)
        _check_experience_dates(updated)
        if fields:
            updated.updated_at = _now()
        self.work_experiences[experience_id] = updated
        return replace(updated)

    async def delete_work_experience(self, *, experience_id: str) -> bool:
        return self.work_experiences.pop(experience_id, None) is not None

    # Aggregates

    async def count_job_applications_by_status(self, *, job_id: str) -> list[tuple[str, int]]:
        return self._count_by_status(
            application.status for application in self.applications.values() if application.job_id == job_id
        )

    async def count_employer_jobs_by_status(self, *, employer_id: str) -> list[tuple[str, int]]:
        return self._count_by_status(job.status for job in self.jobs.values() if job.employer_id == employer_id)

    async def count_employer_applications_by_status(self, *, employer_id: str) -> list[tuple[str, int]]:
        return self._count_by_status(
            application.status
            for application in self.applications.values()
            if application.employer_id == employer_id
        )

    async def count_employer_shortlisted_since(self, *, employer_id: str, since: datetime) -> int:
        return sum(
            1
            for application in self.applications.values()
            if application.employer_id == employer_id
            and application.status is ApplicationStatus.SHORTLISTED
            and application.created_at is not None
            and application.created_at >= since
        )

    @staticmethod
    def _count_by_status(statuses: Any) -> list[tuple[str, int]]:
        counts: dict[str, int] = {}
        for status in statuses:
            counts[status.value] = counts.get(status.value, 0) + 1
        return list(counts.items())

    # Notifications

    async def create_notifications(self, drafts: list[NotificationDraft]) -> list[NotificationRecord]:
        created: list[NotificationRecord] = []
        for draft in drafts:
            notification = NotificationRecord(
                id=str(uuid4()),
                recipient_id=draft.recipient_id,
                type=draft.type,
                title=draft.title,
                message=draft.message,
                related_entity_type=draft.related_entity_type,
                related_entity_id=draft.related_entity_id,
                created_at=_now(),
            )
            self.notifications[notification.id] = notification
            self._publish("notifications", "INSERT", notification, None)
            created.append(replace(notification))
        return created

    async def list_notifications(
        self,
        *,
        recipient_id: str,
        unread_only: bool,
        limit: int,
        offset: int,
    ) -> list[NotificationRecord]:
        results = [
            replace(notification)
            for notification in reversed(list(self.notifications.values()))
            if notification.recipient_id == recipient_id and not (unread_only and notification.read)
        ]
        return results[offset : offset + limit]

    async def count_unread_notifications(self, *, recipient_id: str) -> int:
        return sum(
            1
            for notification in self.notifications.values()
            if notification.recipient_id == recipient_id and not notification.read
        )

    async def mark_notifications_read(self, *, recipient_id: str, notification_ids: list[str]) -> int:
        if any(not _is_uuid(notification_id) for notification_id in notification_ids):
            raise LifecycleValidationError("notification ids must be UUIDs")
        updated = 0
        for notification_id in notification_ids:
            notification = self.notifications.get(notification_id)
            if notification is None or notification.recipient_id != recipient_id or notification.read:
                continue
            old = replace(notification)
            notification.read = True
            self._publish("notifications", "UPDATE", notification, old)
            updated += 1
        return updated

    def _publish(self, table: str, change_type: str, record: Any, old_record: Any) -> None:
        if self.change_feed is None:
            return
        self.change_feed.publish(
            ChangeEvent(
                table=table,
                type=change_type,
                record=project_row(table, _row(record)) if record is not None else None,
                old_record=project_row(table, _row(old_record)) if old_record is not None else None,
            )
        )
