import json
import logging
from collections.abc import AsyncIterator
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from hirelane.api.deps import get_engine, get_principal, to_http_exception
from hirelane.core.auth import Principal
from hirelane.schemas.notifications import MarkReadOut, MarkReadRequest, NotificationOut, UnreadCountOut
from hirelane.services.engine import LifecycleEngine
from hirelane.services.errors import LifecycleError
from hirelane.services.realtime import ChangeEvent

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[NotificationOut]:
    try:
        notifications = await engine.list_notifications(
            principal,
            unread_only=unread_only,
            limit=limit,
            offset=offset,
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [NotificationOut(**asdict(notification)) for notification in notifications]


@router.get("/unread-count", response_model=UnreadCountOut)
async def unread_count(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> UnreadCountOut:
    try:
        count = await engine.unread_count(principal)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return UnreadCountOut(unread=count)


@router.post("/read", response_model=MarkReadOut)
async def mark_read(
    payload: MarkReadRequest,
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> MarkReadOut:
    try:
        updated = await engine.mark_notifications_read(principal, payload.notification_ids)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return MarkReadOut(updated=updated)


def format_sse(event: ChangeEvent) -> str:
    return f"event: {event.type.lower()}\ndata: {json.dumps(event.to_json(), default=str)}\n\n"


@router.get("/stream")
async def stream_notifications(
    principal: Principal = Depends(get_principal),
    engine: LifecycleEngine = Depends(get_engine),
) -> StreamingResponse:
    try:
        events = await engine.subscribe_notifications(principal)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc

    async def body() -> AsyncIterator[str]:
        logger.info("notification stream opened user_id=%s", principal.subject)
        try:
            async for event in events:
                yield format_sse(event)
        finally:
            logger.info("notification stream closed user_id=%s", principal.subject)

    return StreamingResponse(body(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
