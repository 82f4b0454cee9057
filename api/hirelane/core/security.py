from fastapi import Depends, Header, HTTPException, status

from hirelane.core.auth import Principal
from hirelane.services.errors import AuthenticationError, UpstreamUnavailableError
from hirelane.services.supabase_auth import SupabaseAuthClient, get_auth_client


def parse_bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="bearer token required")

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")
    return token


async def get_authenticated_principal(
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    """Resolve the bearer token to a bare principal without touching the store."""
    token = parse_bearer_token(authorization)

    if not auth_client.configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth is not configured",
        )

    try:
        user = await auth_client.get_user(token)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token") from exc
    except UpstreamUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification unavailable",
        ) from exc

    return Principal(subject=user.id, email=user.email, access_token=token)
