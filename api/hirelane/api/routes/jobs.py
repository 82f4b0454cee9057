from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Response, status

from hirelane.api.deps import get_engine, get_principal, to_http_exception
from hirelane.core.auth import Principal
from hirelane.schemas.applications import ApplicationOut, ApplicationSubmissionOut
from hirelane.schemas.jobs import (
    JobCreateRequest,
    JobOut,
    JobStatsOut,
    JobTransitionOut,
    JobTransitionRequest,
    JobUpdateRequest,
)
from hirelane.services.application_lifecycle import ApplicationStatus
from hirelane.services.engine import LifecycleEngine
from hirelane.services.errors import LifecycleError
from hirelane.services.job_lifecycle import JobStatus

router = APIRouter()


@router.post("", response_model=JobOut, status_code=status.HTTP_201_CREATED)
async def create_job(
    payload: JobCreateRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> JobOut:
    try:
        job = await engine.create_job(principal, payload.to_draft())
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return JobOut(**asdict(job))


@router.get("", response_model=list[JobOut])
async def search_jobs(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
    q: str | None = Query(default=None, max_length=200),
    category: str | None = Query(default=None),
    employment_type: str | None = Query(default=None),
    location: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobOut]:
    try:
        jobs = await engine.search_jobs(
            principal,
            q=q,
            category=category,
            employment_type=employment_type,
            location=location,
            limit=limit,
            offset=offset,
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [JobOut(**asdict(job)) for job in jobs]


@router.get("/mine", response_model=list[JobOut])
async def list_my_jobs(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
    job_status: JobStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobOut]:
    try:
        jobs = await engine.list_scope_jobs(principal, status=job_status, limit=limit, offset=offset)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [JobOut(**asdict(job)) for job in jobs]


@router.get("/{job_id}", response_model=JobOut)
async def get_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> JobOut:
    try:
        job = await engine.get_job(principal, job_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return JobOut(**asdict(job))


@router.patch("/{job_id}", response_model=JobOut)
async def update_job(
    job_id: str,
    payload: JobUpdateRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> JobOut:
    try:
        job = await engine.update_job(principal, job_id, payload.to_changes())
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return JobOut(**asdict(job))


@router.post("/{job_id}/transitions", response_model=JobTransitionOut)
async def transition_job(
    job_id: str,
    payload: JobTransitionRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> JobTransitionOut:
    try:
        result = await engine.transition_job(principal, job_id, payload.event)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return JobTransitionOut(
        job=JobOut(**asdict(result.job)),
        from_status=result.from_status,
        notifications_delivered=result.notifications_delivered,
    )


@router.get("/{job_id}/stats", response_model=JobStatsOut)
async def job_stats(
    job_id: str,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> JobStatsOut:
    try:
        stats = await engine.job_stats(principal, job_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return JobStatsOut(**asdict(stats))


@router.get("/{job_id}/applications", response_model=list[ApplicationOut])
async def list_job_applications(
    job_id: str,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
    application_status: ApplicationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ApplicationOut]:
    try:
        applications = await engine.list_job_applications(
            principal,
            job_id,
            status=application_status,
            limit=limit,
            offset=offset,
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [ApplicationOut(**asdict(application)) for application in applications]


@router.post("/{job_id}/applications", response_model=ApplicationSubmissionOut)
async def apply_to_job(
    job_id: str,
    response: Response,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ApplicationSubmissionOut:
    try:
        result = await engine.apply(principal, job_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return ApplicationSubmissionOut(
        application=ApplicationOut(**asdict(result.submission.application)),
        created=result.created,
        status=result.status,
        notifications_delivered=result.notifications_delivered,
    )
