from dataclasses import asdict

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from pydantic import BaseModel

from hirelane.api.deps import get_engine, get_principal, to_http_exception
from hirelane.core.auth import Principal, Role
from hirelane.core.security import get_authenticated_principal
from hirelane.schemas.profiles import (
    CandidateProfileOut,
    EmployerProfileOut,
    ProfileAttributes,
    ProfileEnvelope,
    ProfileOut,
    ProvisionOut,
    ProvisionRequest,
    RecruiterProfileOut,
    WorkExperienceCreateRequest,
    WorkExperienceOut,
    WorkExperiencePatchRequest,
)
from hirelane.services.engine import LifecycleEngine
from hirelane.services.errors import LifecycleError
from hirelane.services.records import ProfileRecord

router = APIRouter()

_PROFILE_MODELS: dict[Role, type[BaseModel]] = {
    Role.CANDIDATE: CandidateProfileOut,
    Role.EMPLOYER: EmployerProfileOut,
    Role.RECRUITER: RecruiterProfileOut,
}


def _profile_out(role: Role, profile: ProfileRecord) -> ProfileOut:
    return _PROFILE_MODELS[role](**asdict(profile))


@router.post("", response_model=ProvisionOut)
async def provision_profile(
    payload: ProvisionRequest,
    response: Response,
    principal: Principal = Depends(get_authenticated_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ProvisionOut:
    try:
        result = await engine.provision_profile(
            principal,
            payload.role,
            payload.attributes.model_dump(exclude_none=True),
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc

    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return ProvisionOut(
        role=result.role,
        profile=_profile_out(result.role, result.profile),
        created=result.created,
        role_synced=result.role_synced,
    )


@router.get("/me", response_model=ProfileEnvelope)
async def get_my_profile(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ProfileEnvelope:
    try:
        profile = await engine.get_own_profile(principal)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return ProfileEnvelope(role=principal.role, profile=_profile_out(principal.role, profile))


@router.patch("/me", response_model=ProfileEnvelope)
async def patch_my_profile(
    payload: ProfileAttributes,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ProfileEnvelope:
    try:
        profile = await engine.update_own_profile(principal, payload.model_dump(exclude_none=True))
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return ProfileEnvelope(role=principal.role, profile=_profile_out(principal.role, profile))


@router.post("/me/resume", response_model=ProfileEnvelope)
async def upload_resume(
    file: UploadFile = File(...),
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> ProfileEnvelope:
    data = await file.read()
    try:
        profile = await engine.upload_resume(
            principal,
            filename=file.filename or "resume",
            data=data,
            content_type=file.content_type or "application/octet-stream",
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return ProfileEnvelope(role=principal.role, profile=_profile_out(principal.role, profile))


@router.get("/me/experiences", response_model=list[WorkExperienceOut])
async def list_my_experiences(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> list[WorkExperienceOut]:
    try:
        experiences = await engine.list_work_experiences(principal)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [WorkExperienceOut(**asdict(experience)) for experience in experiences]


@router.post("/me/experiences", response_model=WorkExperienceOut, status_code=status.HTTP_201_CREATED)
async def add_my_experience(
    payload: WorkExperienceCreateRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> WorkExperienceOut:
    try:
        experience = await engine.add_work_experience(principal, payload.model_dump())
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return WorkExperienceOut(**asdict(experience))


@router.patch("/me/experiences/{experience_id}", response_model=WorkExperienceOut)
async def patch_my_experience(
    experience_id: str,
    payload: WorkExperiencePatchRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> WorkExperienceOut:
    try:
        experience = await engine.update_work_experience(
            principal,
            experience_id,
            payload.model_dump(exclude_unset=True),
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return WorkExperienceOut(**asdict(experience))


@router.delete("/me/experiences/{experience_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_experience(
    experience_id: str,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> Response:
    try:
        await engine.delete_work_experience(principal, experience_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
