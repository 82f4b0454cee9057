from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from hirelane.api.deps import to_http_exception
from hirelane.schemas.auth import AuthSessionOut, SignInRequest, SignUpRequest
from hirelane.services.errors import LifecycleError
from hirelane.services.supabase_auth import SupabaseAuthClient, get_auth_client

router = APIRouter()


@router.post("/signup", response_model=AuthSessionOut, status_code=status.HTTP_201_CREATED)
async def sign_up(
    payload: SignUpRequest,
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> AuthSessionOut:
    try:
        session = await auth_client.sign_up(email=payload.email, password=payload.password, role=payload.role)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return AuthSessionOut(**asdict(session))


@router.post("/signin", response_model=AuthSessionOut)
async def sign_in(
    payload: SignInRequest,
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> AuthSessionOut:
    try:
        session = await auth_client.sign_in(email=payload.email, password=payload.password)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    if not session.access_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="sign-in returned no session")
    return AuthSessionOut(**asdict(session))
