from fastapi import Depends, HTTPException, status

from hirelane.core.auth import Principal
from hirelane.core.security import get_authenticated_principal
from hirelane.services.blob_storage import get_storage_client
from hirelane.services.engine import LifecycleEngine
from hirelane.services.errors import (
    AuthenticationError,
    InvalidTransitionError,
    LifecycleError,
    LifecycleNotFoundError,
    LifecyclePermissionError,
    LifecycleValidationError,
    RoleConflictError,
    UpstreamUnavailableError,
)
from hirelane.services.realtime import get_change_feed
from hirelane.services.repository import get_repository
from hirelane.services.supabase_auth import get_auth_client

ERROR_STATUS_CODES: list[tuple[type[LifecycleError], int]] = [
    (LifecycleValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (LifecycleNotFoundError, status.HTTP_404_NOT_FOUND),
    (LifecyclePermissionError, status.HTTP_403_FORBIDDEN),
    (RoleConflictError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (UpstreamUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
]


def to_http_exception(exc: LifecycleError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="lifecycle operation failed")


def get_engine(
    repository=Depends(get_repository),
    auth_client=Depends(get_auth_client),
    storage_client=Depends(get_storage_client),
    change_feed=Depends(get_change_feed),
) -> LifecycleEngine:
    return LifecycleEngine(
        repository,
        auth_client=auth_client,
        storage_client=storage_client,
        change_feed=change_feed,
    )


async def get_principal(
    principal: Principal = Depends(get_authenticated_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> Principal:
    """Authenticated principal with role, profile and employer scope loaded from the store."""
    try:
        return await engine.load_principal(
            subject=principal.subject,
            email=principal.email,
            access_token=principal.access_token,
        )
    except UpstreamUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
