from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Response, status

from hirelane.api.deps import get_engine, get_principal, to_http_exception
from hirelane.core.auth import Principal
from hirelane.schemas.applications import ApplicationOut
from hirelane.schemas.employers import (
    EmployerDashboardOut,
    RecruiterInviteRequest,
    RecruiterPermissionsPatchRequest,
)
from hirelane.schemas.profiles import RecruiterProfileOut
from hirelane.services.application_lifecycle import ApplicationStatus
from hirelane.services.engine import LifecycleEngine
from hirelane.services.errors import LifecycleError

router = APIRouter()


@router.get("/me/dashboard", response_model=EmployerDashboardOut)
async def employer_dashboard(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> EmployerDashboardOut:
    try:
        dashboard = await engine.employer_dashboard(principal)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return EmployerDashboardOut(**asdict(dashboard))


@router.post("/me/recruiters", response_model=RecruiterProfileOut)
async def invite_recruiter(
    payload: RecruiterInviteRequest,
    response: Response,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> RecruiterProfileOut:
    try:
        recruiter, created = await engine.invite_recruiter(
            principal,
            email=payload.email,
            full_name=payload.full_name,
            title=payload.title,
            permissions=payload.permissions.to_permissions(),
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return RecruiterProfileOut(**asdict(recruiter))


@router.get("/me/recruiters", response_model=list[RecruiterProfileOut])
async def list_recruiters(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> list[RecruiterProfileOut]:
    try:
        recruiters = await engine.list_recruiters(principal)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [RecruiterProfileOut(**asdict(recruiter)) for recruiter in recruiters]


@router.patch("/me/recruiters/{recruiter_id}", response_model=RecruiterProfileOut)
async def patch_recruiter_permissions(
    recruiter_id: str,
    payload: RecruiterPermissionsPatchRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> RecruiterProfileOut:
    try:
        recruiter = await engine.update_recruiter_permissions(
            principal,
            recruiter_id,
            payload.permissions.to_permissions(),
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return RecruiterProfileOut(**asdict(recruiter))


@router.get("/me/applications", response_model=list[ApplicationOut])
async def list_employer_applications(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
    application_status: ApplicationStatus | None = Query(default=None, alias="status"),
    job_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ApplicationOut]:
    try:
        applications = await engine.list_employer_applications(
            principal,
            status=application_status,
            job_id=job_id,
            limit=limit,
            offset=offset,
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [ApplicationOut(**asdict(application)) for application in applications]
