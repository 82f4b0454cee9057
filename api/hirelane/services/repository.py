from __future__ import annotations

import json
from datetime import datetime
from functools import lru_cache
from typing import Any
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from hirelane.core.auth import RecruiterPermissions, Role
from hirelane.core.config import get_settings
from hirelane.services.application_lifecycle import (
    TERMINAL_APPLICATION_STATUSES,
    ApplicationEvent,
    ApplicationStatus,
    next_application_status,
)
from hirelane.services.errors import (
    InvalidTransitionError,
    LifecycleError,
    LifecycleNotFoundError,
    LifecycleValidationError,
    RoleConflictError,
    UpstreamUnavailableError,
)
from hirelane.services.job_lifecycle import JobEvent, JobStatus, next_job_status
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

PROFILE_TABLES: dict[Role, str] = {
    Role.CANDIDATE: "candidate_profiles",
    Role.EMPLOYER: "employer_profiles",
    Role.RECRUITER: "recruiter_profiles",
}

PROFILE_COLUMNS: dict[Role, str] = {
    Role.CANDIDATE: """
      id::text as id,
      user_id::text as user_id,
      full_name,
      title,
      phone,
      location,
      about,
      skills,
      resume_url,
      created_at,
      updated_at
    """,
    Role.EMPLOYER: """
      id::text as id,
      user_id::text as user_id,
      company_name,
      description,
      location,
      industry,
      company_size,
      website,
      created_at,
      updated_at
    """,
    Role.RECRUITER: """
      id::text as id,
      user_id::text as user_id,
      employer_id::text as employer_id,
      email,
      full_name,
      title,
      permissions,
      created_at,
      updated_at
    """,
}

JOB_COLUMNS = """
  id::text as id,
  employer_id::text as employer_id,
  posted_by::text as posted_by,
  title,
  description,
  requirements,
  category,
  employment_type,
  experience_level,
  salary_min,
  salary_max,
  location,
  status::text as status,
  created_at,
  updated_at
"""

APPLICATION_SELECT = """
  select
    a.id::text as id,
    a.job_id::text as job_id,
    a.candidate_id::text as candidate_id,
    a.status::text as status,
    j.employer_id::text as employer_id,
    cp.user_id::text as candidate_user_id,
    j.title as job_title,
    cp.full_name as candidate_name,
    cp.title as candidate_title,
    a.notes,
    a.created_at,
    a.updated_at
  from applications a
  join jobs j on j.id = a.job_id
  join candidate_profiles cp on cp.id = a.candidate_id
"""

NOTIFICATION_COLUMNS = """
  id::text as id,
  recipient_id::text as recipient_id,
  type,
  title,
  message,
  related_entity_type,
  related_entity_id::text as related_entity_id,
  read,
  created_at
"""

WORK_EXPERIENCE_COLUMNS = """
  id::text as id,
  candidate_id::text as candidate_id,
  company,
  position,
  start_date,
  end_date,
  description,
  created_at,
  updated_at
"""

OPEN_APPLICATION_STATUSES = [
    status.value for status in ApplicationStatus if status not in TERMINAL_APPLICATION_STATUSES
]


def _is_uuid(value: Any) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _like_contains(value: str) -> str:
    """``ilike`` pattern matching ``value`` literally anywhere in the column."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # Identity & role registry

    async def get_principal_context(self, user_id: str) -> PrincipalContextRecord | None:
        if not _is_uuid(user_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select
              p.id::text as user_id,
              p.role::text as role,
              coalesce(cp.id, ep.id, rp.id)::text as profile_id,
              coalesce(ep.id, rp.employer_id)::text as employer_id,
              rp.permissions
            from principals p
            left join candidate_profiles cp on cp.user_id = p.id and p.role = 'candidate'
            left join employer_profiles ep on ep.user_id = p.id and p.role = 'employer'
            left join recruiter_profiles rp on rp.user_id = p.id and p.role = 'recruiter'
            where p.id = $1::uuid
            """,
            user_id,
        )
        if not row:
            return None

        role = Role(row["role"]) if row["role"] else None
        return PrincipalContextRecord(
            user_id=row["user_id"],
            role=role,
            profile_id=row["profile_id"],
            employer_id=row["employer_id"],
            permissions=RecruiterPermissions.from_json(row["permissions"]) if role is Role.RECRUITER else None,
        )

    async def provision_profile(
        self,
        *,
        user_id: str,
        email: str | None,
        role: Role,
        attributes: dict[str, Any],
    ) -> tuple[ProfileRecord, bool]:
        fields = filter_profile_fields(role, attributes)
        if not _is_uuid(user_id):
            raise LifecycleValidationError("invalid principal id or profile payload")
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        insert into principals (id, email)
                        values ($1::uuid, $2)
                        on conflict (id) do nothing
                        """,
                        user_id,
                        email,
                    )
                    # Serializes concurrent provisioning for the same principal.
                    principal_row = await conn.fetchrow(
                        """
                        select role::text as role, email
                        from principals
                        where id = $1::uuid
                        for update
                        """,
                        user_id,
                    )
                    if not principal_row:
                        raise LifecycleError("failed to resolve principal after insert")

                    current_role = principal_row["role"]
                    if current_role is not None and current_role != role.value:
                        raise RoleConflictError(f"principal already holds role {current_role}")
                    if current_role is None:
                        await conn.execute(
                            "update principals set role = $2::user_role where id = $1::uuid",
                            user_id,
                            role.value,
                        )

                    if role is Role.RECRUITER:
                        row, created = await self._claim_recruiter_invitation(
                            conn=conn,
                            user_id=user_id,
                            email=email or principal_row["email"],
                            fields=fields,
                        )
                    else:
                        row, created = await self._insert_profile_if_absent(
                            conn=conn,
                            role=role,
                            user_id=user_id,
                            fields=fields,
                        )
                    return self._profile_row_to_record(role, row), created
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise LifecycleValidationError("invalid principal id or profile payload") from exc

    async def get_profile(self, *, user_id: str, role: Role) -> ProfileRecord | None:
        if not _is_uuid(user_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {PROFILE_COLUMNS[role]} from {PROFILE_TABLES[role]} where user_id = $1::uuid",
            user_id,
        )
        return self._profile_row_to_record(role, row) if row else None

    async def update_profile(self, *, user_id: str, role: Role, attributes: dict[str, Any]) -> ProfileRecord:
        fields = filter_profile_fields(role, attributes)
        if not fields:
            profile = await self.get_profile(user_id=user_id, role=role)
            if profile is None:
                raise LifecycleNotFoundError("profile not found")
            return profile

        assignments = ", ".join(f"{column} = ${index}" for index, column in enumerate(fields, start=2))
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update {PROFILE_TABLES[role]}
                set {assignments}
                where user_id = $1::uuid
                returning {PROFILE_COLUMNS[role]}
                """,
                user_id,
                *fields.values(),
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise LifecycleValidationError("invalid profile payload") from exc
        if not row:
            raise LifecycleNotFoundError("profile not found")
        return self._profile_row_to_record(role, row)

    async def _insert_profile_if_absent(
        self,
        *,
        conn: asyncpg.Connection,
        role: Role,
        user_id: str,
        fields: dict[str, Any],
    ) -> tuple[asyncpg.Record, bool]:
        table = PROFILE_TABLES[role]
        columns = ["user_id", *fields]
        placeholders = ["$1::uuid", *(f"${index}" for index in range(2, len(columns) + 1))]
        row = await conn.fetchrow(
            f"""
            insert into {table} ({", ".join(columns)})
            values ({", ".join(placeholders)})
            on conflict (user_id) do nothing
            returning {PROFILE_COLUMNS[role]}
            """,
            user_id,
            *fields.values(),
        )
        if row:
            return row, True

        existing = await conn.fetchrow(
            f"select {PROFILE_COLUMNS[role]} from {table} where user_id = $1::uuid",
            user_id,
        )
        if not existing:
            raise LifecycleError("failed to resolve existing profile after conflict")
        return existing, False

    async def _claim_recruiter_invitation(
        self,
        *,
        conn: asyncpg.Connection,
        user_id: str,
        email: str | None,
        fields: dict[str, Any],
    ) -> tuple[asyncpg.Record, bool]:
        existing = await conn.fetchrow(
            f"select {PROFILE_COLUMNS[Role.RECRUITER]} from recruiter_profiles where user_id = $1::uuid",
            user_id,
        )
        if existing:
            return existing, False

        if not email:
            raise LifecycleNotFoundError("recruiter invitation not found")

        row = await conn.fetchrow(
            f"""
            update recruiter_profiles
            set
              user_id = $1::uuid,
              full_name = coalesce(nullif($3, ''), full_name),
              title = coalesce($4, title)
            where id = (
              select id
              from recruiter_profiles
              where user_id is null
                and lower(email) = lower($2)
              order by created_at asc
              limit 1
              for update
            )
            returning {PROFILE_COLUMNS[Role.RECRUITER]}
            """,
            user_id,
            email,
            fields.get("full_name"),
            fields.get("title"),
        )
        if not row:
            raise LifecycleNotFoundError("recruiter invitation not found")
        return row, True

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
        normalized_email = self._coerce_text(email)
        if not normalized_email:
            raise LifecycleValidationError("email must be a non-empty string")

        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        insert into recruiter_profiles (employer_id, email, full_name, title, permissions)
                        values ($1::uuid, $2, $3, $4, $5::jsonb)
                        on conflict (employer_id, lower(email)) do nothing
                        returning {PROFILE_COLUMNS[Role.RECRUITER]}
                        """,
                        employer_id,
                        normalized_email,
                        full_name or "",
                        title,
                        json.dumps(permissions.to_json()),
                    )
                    if row:
                        return self._recruiter_row_to_record(row), True

                    existing = await conn.fetchrow(
                        f"""
                        select {PROFILE_COLUMNS[Role.RECRUITER]}
                        from recruiter_profiles
                        where employer_id = $1::uuid and lower(email) = lower($2)
                        """,
                        employer_id,
                        normalized_email,
                    )
                    if not existing:
                        raise LifecycleError("failed to resolve existing recruiter invitation after conflict")
                    return self._recruiter_row_to_record(existing), False
        except pg_exc.ForeignKeyViolationError as exc:
            raise LifecycleNotFoundError("employer not found") from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise LifecycleValidationError("invalid recruiter invitation payload") from exc

    async def list_recruiters(self, *, employer_id: str) -> list[RecruiterProfileRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {PROFILE_COLUMNS[Role.RECRUITER]}
            from recruiter_profiles
            where employer_id = $1::uuid
            order by created_at asc, id asc
            """,
            employer_id,
        )
        return [self._recruiter_row_to_record(row) for row in rows]

    async def get_recruiter(self, recruiter_id: str) -> RecruiterProfileRecord | None:
        if not _is_uuid(recruiter_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {PROFILE_COLUMNS[Role.RECRUITER]} from recruiter_profiles where id = $1::uuid",
            recruiter_id,
        )
        return self._recruiter_row_to_record(row) if row else None

    async def update_recruiter_permissions(
        self,
        *,
        recruiter_id: str,
        permissions: RecruiterPermissions,
    ) -> RecruiterProfileRecord:
        if not _is_uuid(recruiter_id):
            raise LifecycleNotFoundError("recruiter not found")
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            update recruiter_profiles
            set permissions = $2::jsonb
            where id = $1::uuid
            returning {PROFILE_COLUMNS[Role.RECRUITER]}
            """,
            recruiter_id,
            json.dumps(permissions.to_json()),
        )
        if not row:
            raise LifecycleNotFoundError("recruiter not found")
        return self._recruiter_row_to_record(row)

    async def list_employer_staff_user_ids(self, *, employer_id: str, require_review: bool) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select ep.user_id::text as user_id
            from employer_profiles ep
            where ep.id = $1::uuid
            union
            select rp.user_id::text as user_id
            from recruiter_profiles rp
            where rp.employer_id = $1::uuid
              and rp.user_id is not null
              and (
                $2::boolean = false
                or coalesce((rp.permissions ->> 'can_review_applications')::boolean, false)
              )
            """,
            employer_id,
            require_review,
        )
        return [row["user_id"] for row in rows]

    # Job postings

    async def create_job(self, *, employer_id: str, posted_by: str | None, draft: JobDraft) -> JobRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into jobs (
                  employer_id,
                  posted_by,
                  title,
                  description,
                  requirements,
                  category,
                  employment_type,
                  experience_level,
                  salary_min,
                  salary_max,
                  location,
                  status
                )
                values ($1::uuid, $2::uuid, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12::job_status)
                returning {JOB_COLUMNS}
                """,
                employer_id,
                posted_by,
                draft.title.strip(),
                draft.description,
                draft.requirements,
                draft.category,
                draft.employment_type,
                draft.experience_level,
                draft.salary_min,
                draft.salary_max,
                draft.location,
                JobStatus.PENDING_REVIEW.value,
            )
        except pg_exc.CheckViolationError as exc:
            raise LifecycleValidationError(f"job violates constraint: {exc.constraint_name}") from exc
        except pg_exc.ForeignKeyViolationError as exc:
            raise LifecycleNotFoundError("employer not found") from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise LifecycleValidationError("invalid job payload") from exc
        if not row:
            raise LifecycleError("failed to create job")
        return self._job_row_to_record(row)

    async def get_job(self, job_id: str) -> JobRecord | None:
        if not _is_uuid(job_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(f"select {JOB_COLUMNS} from jobs where id = $1::uuid", job_id)
        return self._job_row_to_record(row) if row else None

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
        return await self._list_jobs(
            statuses=[JobStatus.ACTIVE.value],
            employer_id=None,
            limit=limit,
            offset=offset,
            q=q,
            category=category,
            employment_type=employment_type,
            location=location,
        )

    async def list_employer_jobs(
        self,
        *,
        employer_id: str,
        status: JobStatus | None,
        limit: int,
        offset: int,
    ) -> list[JobRecord]:
        return await self._list_jobs(
            statuses=[status.value] if status else None,
            employer_id=employer_id,
            limit=limit,
            offset=offset,
        )

    async def _list_jobs(
        self,
        *,
        statuses: list[str] | None,
        employer_id: str | None,
        limit: int,
        offset: int,
        q: str | None = None,
        category: str | None = None,
        employment_type: str | None = None,
        location: str | None = None,
    ) -> list[JobRecord]:
        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if statuses:
            conditions.append(f"j.status = any({bind(statuses)}::job_status[])")
        if employer_id:
            conditions.append(f"j.employer_id = {bind(employer_id)}::uuid")

        normalized_q = self._coerce_text(q)
        if normalized_q:
            token = bind(_like_contains(normalized_q))
            conditions.append(
                f"(j.title ilike {token} or coalesce(j.description, '') ilike {token}"
                f" or coalesce(j.requirements, '') ilike {token})"
            )
        normalized_category = self._coerce_text(category)
        if normalized_category:
            conditions.append(f"lower(j.category) = lower({bind(normalized_category)})")
        normalized_employment_type = self._coerce_text(employment_type)
        if normalized_employment_type:
            conditions.append(f"lower(j.employment_type) = lower({bind(normalized_employment_type)})")
        normalized_location = self._coerce_text(location)
        if normalized_location:
            conditions.append(f"j.location ilike {bind(_like_contains(normalized_location))}")

        where_sql = " and ".join(conditions) if conditions else "true"
        limit_token = bind(limit)
        offset_token = bind(offset)

        try:
            rows = await pool.fetch(
                f"""
                select {JOB_COLUMNS}
                from jobs j
                where {where_sql}
                order by j.created_at desc, j.id asc
                limit {limit_token}
                offset {offset_token}
                """,
                *params,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise LifecycleValidationError("invalid job filter") from exc
        return [self._job_row_to_record(row) for row in rows]

    async def transition_job(self, *, job_id: str, event: JobEvent) -> tuple[JobRecord, JobStatus]:
        if not _is_uuid(job_id):
            raise LifecycleNotFoundError("job not found")
        pool = await self._get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                locked = await conn.fetchrow(
                    """
                    select status::text as status
                    from jobs
                    where id = $1::uuid
                    for update
                    """,
                    job_id,
                )
                if not locked:
                    raise LifecycleNotFoundError("job not found")

                from_status = JobStatus(locked["status"])
                to_status = next_job_status(from_status, event)
                row = await conn.fetchrow(
                    f"""
                    update jobs
                    set status = $2::job_status
                    where id = $1::uuid
                    returning {JOB_COLUMNS}
                    """,
                    job_id,
                    to_status.value,
                )
                if not row:
                    raise LifecycleNotFoundError("job not found")
                return self._job_row_to_record(row), from_status

    async def update_job(self, *, job_id: str, changes: dict[str, Any]) -> JobRecord:
        changes = filter_job_changes(changes)
        if not _is_uuid(job_id):
            raise LifecycleNotFoundError("job not found")
        pool = await self._get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                locked = await conn.fetchrow(
                    "select status::text as status from jobs where id = $1::uuid for update",
                    job_id,
                )
                if not locked:
                    raise LifecycleNotFoundError("job not found")
                if locked["status"] == JobStatus.CLOSED.value:
                    raise InvalidTransitionError("closed jobs cannot be edited")
                if not changes:
                    row = await conn.fetchrow(f"select {JOB_COLUMNS} from jobs where id = $1::uuid", job_id)
                    return self._job_row_to_record(row)

                values = [value.strip() if column == "title" else value for column, value in changes.items()]
                assignments = ", ".join(f"{column} = ${index}" for index, column in enumerate(changes, start=2))
                try:
                    row = await conn.fetchrow(
                        f"""
                        update jobs
                        set {assignments}
                        where id = $1::uuid
                        returning {JOB_COLUMNS}
                        """,
                        job_id,
                        *values,
                    )
                except pg_exc.CheckViolationError as exc:
                    raise LifecycleValidationError(f"job violates constraint: {exc.constraint_name}") from exc
                return self._job_row_to_record(row)

    # Applications

    async def create_application(self, *, job_id: str, candidate_id: str) -> ApplicationSubmission:
        if not _is_uuid(job_id):
            raise LifecycleNotFoundError("job not found")
        if not _is_uuid(candidate_id):
            raise LifecycleNotFoundError("candidate profile not found")
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    existing = await conn.fetchrow(
                        f"{APPLICATION_SELECT} where a.job_id = $1::uuid and a.candidate_id = $2::uuid",
                        job_id,
                        candidate_id,
                    )
                    if existing:
                        return ApplicationSubmission(application=self._application_row_to_record(existing), created=False)

                    # Blocks a concurrent close until this insert commits.
                    job_row = await conn.fetchrow(
                        "select status::text as status from jobs where id = $1::uuid for share",
                        job_id,
                    )
                    if not job_row:
                        raise LifecycleNotFoundError("job not found")
                    if job_row["status"] != JobStatus.ACTIVE.value:
                        raise InvalidTransitionError("job is not accepting applications")

                    inserted = await conn.fetchrow(
                        """
                        insert into applications (job_id, candidate_id, status)
                        values ($1::uuid, $2::uuid, $3::application_status)
                        on conflict (job_id, candidate_id) do nothing
                        returning id::text as id
                        """,
                        job_id,
                        candidate_id,
                        ApplicationStatus.PENDING.value,
                    )
                    row = await conn.fetchrow(
                        f"{APPLICATION_SELECT} where a.job_id = $1::uuid and a.candidate_id = $2::uuid",
                        job_id,
                        candidate_id,
                    )
                    if not row:
                        raise LifecycleError("failed to resolve application after insert")
                    return ApplicationSubmission(
                        application=self._application_row_to_record(row),
                        created=inserted is not None,
                    )
        except pg_exc.ForeignKeyViolationError as exc:
            raise LifecycleNotFoundError("candidate profile not found") from exc

    async def get_application(self, application_id: str) -> ApplicationRecord | None:
        if not _is_uuid(application_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(f"{APPLICATION_SELECT} where a.id = $1::uuid", application_id)
        return self._application_row_to_record(row) if row else None

    async def list_candidate_applications(self, *, candidate_id: str) -> list[ApplicationRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"{APPLICATION_SELECT} where a.candidate_id = $1::uuid order by a.created_at desc, a.id asc",
            candidate_id,
        )
        return [self._application_row_to_record(row) for row in rows]

    async def list_job_applications(
        self,
        *,
        job_id: str,
        status: ApplicationStatus | None,
        limit: int,
        offset: int,
    ) -> list[ApplicationRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {APPLICATION_SELECT}
            where a.job_id = $1::uuid
              and ($2::application_status is null or a.status = $2::application_status)
            order by a.created_at desc, a.id asc
            limit $3
            offset $4
            """,
            job_id,
            status.value if status else None,
            limit,
            offset,
        )
        return [self._application_row_to_record(row) for row in rows]

    async def list_employer_applications(
        self,
        *,
        employer_id: str,
        status: ApplicationStatus | None,
        job_id: str | None,
        limit: int,
        offset: int,
    ) -> list[ApplicationRecord]:
        if job_id is not None and not _is_uuid(job_id):
            return []
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {APPLICATION_SELECT}
            where j.employer_id = $1::uuid
              and ($2::application_status is null or a.status = $2::application_status)
              and ($3::uuid is null or a.job_id = $3::uuid)
            order by a.created_at desc, a.id asc
            limit $4
            offset $5
            """,
            employer_id,
            status.value if status else None,
            job_id,
            limit,
            offset,
        )
        return [self._application_row_to_record(row) for row in rows]

    async def transition_application(
        self,
        *,
        application_id: str,
        event: ApplicationEvent,
    ) -> tuple[ApplicationRecord, ApplicationStatus]:
        if not _is_uuid(application_id):
            raise LifecycleNotFoundError("application not found")
        pool = await self._get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                locked = await conn.fetchrow(
                    """
                    select status::text as status
                    from applications
                    where id = $1::uuid
                    for update
                    """,
                    application_id,
                )
                if not locked:
                    raise LifecycleNotFoundError("application not found")

                # Validated against the committed row, not the caller's last read.
                from_status = ApplicationStatus(locked["status"])
                to_status = next_application_status(from_status, event)
                await conn.execute(
                    """
                    update applications
                    set status = $2::application_status
                    where id = $1::uuid
                    """,
                    application_id,
                    to_status.value,
                )
                row = await conn.fetchrow(f"{APPLICATION_SELECT} where a.id = $1::uuid", application_id)
                if not row:
                    raise LifecycleNotFoundError("application not found")
                return self._application_row_to_record(row), from_status

    async def update_application_notes(self, *, application_id: str, notes: str | None) -> ApplicationRecord:
        if not _is_uuid(application_id):
            raise LifecycleNotFoundError("application not found")
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                updated = await conn.fetchval(
                    "update applications set notes = $2 where id = $1::uuid returning id::text",
                    application_id,
                    notes,
                )
                if not updated:
                    raise LifecycleNotFoundError("application not found")
                row = await conn.fetchrow(f"{APPLICATION_SELECT} where a.id = $1::uuid", application_id)
        if not row:
            raise LifecycleNotFoundError("application not found")
        return self._application_row_to_record(row)

    async def delete_application(self, *, application_id: str) -> bool:
        if not _is_uuid(application_id):
            return False
        pool = await self._get_pool()
        deleted = await pool.fetchval(
            "delete from applications where id = $1::uuid returning id::text",
            application_id,
        )
        return deleted is not None

    async def list_open_applicant_user_ids(self, *, job_id: str) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select distinct cp.user_id::text as user_id
            from applications a
            join candidate_profiles cp on cp.id = a.candidate_id
            where a.job_id = $1::uuid
              and a.status = any($2::application_status[])
            """,
            job_id,
            OPEN_APPLICATION_STATUSES,
        )
        return [row["user_id"] for row in rows]

    # Candidate details and work history

    async def get_candidate_profile(self, candidate_id: str) -> CandidateProfileRecord | None:
        if not _is_uuid(candidate_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {PROFILE_COLUMNS[Role.CANDIDATE]} from candidate_profiles where id = $1::uuid",
            candidate_id,
        )
        return self._profile_row_to_record(Role.CANDIDATE, row) if row else None

    async def list_work_experiences(self, *, candidate_id: str) -> list[WorkExperienceRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {WORK_EXPERIENCE_COLUMNS}
            from work_experiences
            where candidate_id = $1::uuid
            order by start_date desc, id asc
            """,
            candidate_id,
        )
        return [self._work_experience_row_to_record(row) for row in rows]

    async def get_work_experience(self, experience_id: str) -> WorkExperienceRecord | None:
        if not _is_uuid(experience_id):
            return None
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {WORK_EXPERIENCE_COLUMNS} from work_experiences where id = $1::uuid",
            experience_id,
        )
        return self._work_experience_row_to_record(row) if row else None

    async def create_work_experience(self, *, candidate_id: str, fields: dict[str, Any]) -> WorkExperienceRecord:
        fields = filter_work_experience_fields(fields)
        columns = ["candidate_id", *fields]
        placeholders = ["$1::uuid", *(f"${index}" for index in range(2, len(columns) + 1))]
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into work_experiences ({", ".join(columns)})
                values ({", ".join(placeholders)})
                returning {WORK_EXPERIENCE_COLUMNS}
                """,
                candidate_id,
                *fields.values(),
            )
        except pg_exc.CheckViolationError as exc:
            raise LifecycleValidationError(f"work experience violates constraint: {exc.constraint_name}") from exc
        except pg_exc.NotNullViolationError as exc:
            raise LifecycleValidationError(f"work experience requires {exc.column_name}") from exc
        except pg_exc.ForeignKeyViolationError as exc:
            raise LifecycleNotFoundError("candidate profile not found") from exc
        return self._work_experience_row_to_record(row)

    async def update_work_experience(self, *, experience_id: str, fields: dict[str, Any]) -> WorkExperienceRecord:
        fields = filter_work_experience_fields(fields)
        if not fields:
            existing = await self.get_work_experience(experience_id)
            if existing is None:
                raise LifecycleNotFoundError("work experience not found")
            return existing
        if not _is_uuid(experience_id):
            raise LifecycleNotFoundError("work experience not found")

        assignments = ", ".join(f"{column} = ${index}" for index, column in enumerate(fields, start=2))
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update work_experiences
                set {assignments}
                where id = $1::uuid
                returning {WORK_EXPERIENCE_COLUMNS}
                """,
                experience_id,
                *fields.values(),
            )
        except pg_exc.CheckViolationError as exc:
            raise LifecycleValidationError(f"work experience violates constraint: {exc.constraint_name}") from exc
        except pg_exc.NotNullViolationError as exc:
            raise LifecycleValidationError(f"work experience requires {exc.column_name}") from exc
        if not row:
            raise LifecycleNotFoundError("work experience not found")
        return self._work_experience_row_to_record(row)

    async def delete_work_experience(self, *, experience_id: str) -> bool:
        if not _is_uuid(experience_id):
            return False
        pool = await self._get_pool()
        deleted = await pool.fetchval(
            "delete from work_experiences where id = $1::uuid returning id::text",
            experience_id,
        )
        return deleted is not None

    # Aggregates (always recomputed from source rows)

    async def count_job_applications_by_status(self, *, job_id: str) -> list[tuple[str, int]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select status::text as status, count(*)::int as count
            from applications
            where job_id = $1::uuid
            group by status
            """,
            job_id,
        )
        return [(row["status"], row["count"]) for row in rows]

    async def count_employer_jobs_by_status(self, *, employer_id: str) -> list[tuple[str, int]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select status::text as status, count(*)::int as count
            from jobs
            where employer_id = $1::uuid
            group by status
            """,
            employer_id,
        )
        return [(row["status"], row["count"]) for row in rows]

    async def count_employer_applications_by_status(self, *, employer_id: str) -> list[tuple[str, int]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select a.status::text as status, count(*)::int as count
            from applications a
            join jobs j on j.id = a.job_id
            where j.employer_id = $1::uuid
            group by a.status
            """,
            employer_id,
        )
        return [(row["status"], row["count"]) for row in rows]

    async def count_employer_shortlisted_since(self, *, employer_id: str, since: datetime) -> int:
        pool = await self._get_pool()
        count = await pool.fetchval(
            """
            select count(*)::int
            from applications a
            join jobs j on j.id = a.job_id
            where j.employer_id = $1::uuid
              and a.status = 'shortlisted'
              and a.created_at >= $2
            """,
            employer_id,
            since,
        )
        return int(count or 0)

    # Notifications

    async def create_notifications(self, drafts: list[NotificationDraft]) -> list[NotificationRecord]:
        if not drafts:
            return []
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            insert into notifications (
              recipient_id,
              type,
              title,
              message,
              related_entity_type,
              related_entity_id
            )
            select *
            from unnest($1::uuid[], $2::text[], $3::text[], $4::text[], $5::text[], $6::uuid[])
            returning {NOTIFICATION_COLUMNS}
            """,
            [draft.recipient_id for draft in drafts],
            [draft.type for draft in drafts],
            [draft.title for draft in drafts],
            [draft.message for draft in drafts],
            [draft.related_entity_type for draft in drafts],
            [draft.related_entity_id for draft in drafts],
        )
        return [self._notification_row_to_record(row) for row in rows]

    async def list_notifications(
        self,
        *,
        recipient_id: str,
        unread_only: bool,
        limit: int,
        offset: int,
    ) -> list[NotificationRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {NOTIFICATION_COLUMNS}
            from notifications
            where recipient_id = $1::uuid
              and ($2::boolean = false or read = false)
            order by created_at desc, id asc
            limit $3
            offset $4
            """,
            recipient_id,
            unread_only,
            limit,
            offset,
        )
        return [self._notification_row_to_record(row) for row in rows]

    async def count_unread_notifications(self, *, recipient_id: str) -> int:
        pool = await self._get_pool()
        count = await pool.fetchval(
            "select count(*)::int from notifications where recipient_id = $1::uuid and read = false",
            recipient_id,
        )
        return int(count or 0)

    async def mark_notifications_read(self, *, recipient_id: str, notification_ids: list[str]) -> int:
        if not notification_ids:
            return 0
        if not all(_is_uuid(notification_id) for notification_id in notification_ids):
            raise LifecycleValidationError("notification ids must be UUIDs")
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                update notifications
                set read = true
                where recipient_id = $1::uuid
                  and id = any($2::uuid[])
                  and read = false
                returning id::text as id
                """,
                recipient_id,
                notification_ids,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise LifecycleValidationError("notification ids must be UUIDs") from exc
        return len(rows)

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise UpstreamUnavailableError("HL_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise UpstreamUnavailableError("database unavailable") from exc

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)

    @classmethod
    def _profile_row_to_record(cls, role: Role, row: asyncpg.Record) -> ProfileRecord:
        if role is Role.RECRUITER:
            return cls._recruiter_row_to_record(row)
        if role is Role.EMPLOYER:
            return EmployerProfileRecord(
                id=row["id"],
                user_id=row["user_id"],
                company_name=row["company_name"] or "",
                description=row["description"],
                location=row["location"],
                industry=row["industry"],
                company_size=row["company_size"],
                website=row["website"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
        return CandidateProfileRecord(
            id=row["id"],
            user_id=row["user_id"],
            full_name=row["full_name"] or "",
            title=row["title"],
            phone=row["phone"],
            location=row["location"],
            about=row["about"],
            skills=list(row["skills"] or []),
            resume_url=row["resume_url"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _recruiter_row_to_record(row: asyncpg.Record) -> RecruiterProfileRecord:
        return RecruiterProfileRecord(
            id=row["id"],
            user_id=row["user_id"],
            employer_id=row["employer_id"],
            email=row["email"],
            full_name=row["full_name"] or "",
            title=row["title"],
            permissions=RecruiterPermissions.from_json(row["permissions"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _job_row_to_record(row: asyncpg.Record) -> JobRecord:
        return JobRecord(
            id=row["id"],
            employer_id=row["employer_id"],
            posted_by=row["posted_by"],
            title=row["title"],
            status=JobStatus(row["status"]),
            description=row["description"],
            requirements=row["requirements"],
            category=row["category"],
            employment_type=row["employment_type"],
            experience_level=row["experience_level"],
            salary_min=row["salary_min"],
            salary_max=row["salary_max"],
            location=row["location"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _application_row_to_record(row: asyncpg.Record) -> ApplicationRecord:
        return ApplicationRecord(
            id=row["id"],
            job_id=row["job_id"],
            candidate_id=row["candidate_id"],
            status=ApplicationStatus(row["status"]),
            employer_id=row["employer_id"],
            candidate_user_id=row["candidate_user_id"],
            job_title=row["job_title"] or "",
            candidate_name=row["candidate_name"] or "",
            candidate_title=row["candidate_title"],
            notes=row["notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _work_experience_row_to_record(row: asyncpg.Record) -> WorkExperienceRecord:
        return WorkExperienceRecord(
            id=row["id"],
            candidate_id=row["candidate_id"],
            company=row["company"],
            position=row["position"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            description=row["description"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _notification_row_to_record(row: asyncpg.Record) -> NotificationRecord:
        return NotificationRecord(
            id=row["id"],
            recipient_id=row["recipient_id"],
            type=row["type"],
            title=row["title"],
            message=row["message"],
            related_entity_type=row["related_entity_type"],
            related_entity_id=row["related_entity_id"],
            read=bool(row["read"]),
            created_at=row["created_at"],
        )


@lru_cache
def get_repository() -> Any:
    settings = get_settings()
    if settings.store_backend == "memory":
        from hirelane.services.realtime import get_change_feed
        from hirelane.services.store import InMemoryRepository

        return InMemoryRepository(change_feed=get_change_feed())
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )
