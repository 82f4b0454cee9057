from dataclasses import asdict

from fastapi import APIRouter, Depends, Response, status

from hirelane.api.deps import get_engine, get_principal, to_http_exception
from hirelane.core.auth import Principal
from hirelane.schemas.applications import (
    ApplicantOut,
    ApplicationNotesPatchRequest,
    ApplicationOut,
    ApplicationTransitionOut,
    ApplicationTransitionRequest,
)
from hirelane.services.engine import LifecycleEngine
from hirelane.services.errors import LifecycleError

router = APIRouter()


@router.get("", response_model=list[ApplicationOut])
async def list_my_applications(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> list[ApplicationOut]:
    try:
        applications = await engine.list_own_applications(principal)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [ApplicationOut(**asdict(application)) for application in applications]


@router.get("/{application_id}", response_model=ApplicationOut)
async def get_application(
    application_id: str,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ApplicationOut:
    try:
        application = await engine.get_application(principal, application_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return ApplicationOut(**asdict(application))


@router.get("/{application_id}/applicant", response_model=ApplicantOut)
async def get_applicant(
    application_id: str,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ApplicantOut:
    try:
        applicant = await engine.get_applicant(principal, application_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return ApplicantOut(**asdict(applicant))


@router.post("/{application_id}/transitions", response_model=ApplicationTransitionOut)
async def transition_application(
    application_id: str,
    payload: ApplicationTransitionRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ApplicationTransitionOut:
    try:
        result = await engine.transition_application(principal, application_id, payload.event)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return ApplicationTransitionOut(
        application=ApplicationOut(**asdict(result.application)),
        from_status=result.from_status,
        notifications_delivered=result.notifications_delivered,
    )


@router.patch("/{application_id}", response_model=ApplicationOut)
async def patch_application_notes(
    application_id: str,
    payload: ApplicationNotesPatchRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ApplicationOut:
    try:
        application = await engine.update_application_notes(principal, application_id, payload.notes)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return ApplicationOut(**asdict(application))


@router.delete("/{application_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_application(
    application_id: str,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> Response:
    try:
        await engine.delete_application(principal, application_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
