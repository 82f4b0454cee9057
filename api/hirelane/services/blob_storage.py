from __future__ import annotations

import logging
from functools import lru_cache
from urllib.parse import quote

import httpx

from hirelane.core.config import get_settings
from hirelane.services.errors import LifecycleValidationError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


class SupabaseStorageClient:
    def __init__(
        self,
        *,
        supabase_url: str | None,
        service_key: str | None,
        bucket: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self.service_key = service_key
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def public_url(self, path: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Upload ``data`` to ``path`` in the bucket, replacing any object there, and return its public URL."""
        if not self.supabase_url or not self.service_key:
            raise UpstreamUnavailableError("Supabase storage is not configured")
        if not path or path.startswith("/") or ".." in path.split("/"):
            raise LifecycleValidationError("invalid storage path")
        if not data:
            raise LifecycleValidationError("upload is empty")

        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": content_type or "application/octet-stream",
            "Cache-Control": "3600",
            "x-upsert": "true",
        }
        url = f"{self.supabase_url}/storage/v1/object/{self.bucket}/{quote(path)}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.post(url, headers=headers, content=data)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError("Supabase storage unavailable") from exc

        if response.status_code >= 300:
            logger.warning("storage upload failed status=%s path=%s", response.status_code, path)
            raise UpstreamUnavailableError(f"Supabase storage upload failed status={response.status_code}")
        logger.info("storage upload bucket=%s path=%s bytes=%s", self.bucket, path, len(data))
        return self.public_url(path)


@lru_cache
def get_storage_client() -> SupabaseStorageClient:
    settings = get_settings()
    return SupabaseStorageClient(
        supabase_url=settings.supabase_url,
        service_key=settings.supabase_service_key,
        bucket=settings.storage_bucket,
        timeout_seconds=settings.auth_timeout_seconds,
    )
