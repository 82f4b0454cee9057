"""Row change feed with Supabase-style ``column=eq.value`` filters.

Postgres row triggers publish ``{table, type, record, old_record}`` payloads with
``pg_notify``. Rows carry only the columns in ``CHANGE_FEED_COLUMNS`` with strings
cut to ``MAX_CHANGE_TEXT`` characters; subscribers refetch the full row by id.
``PostgresChangeFeed`` listens on that channel over a dedicated connection and fans
events out to per-subscriber queues. Subscribers are eventually consistent: a full
queue drops the event for that subscriber only, and events published while the
listener reconnects are lost.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from hirelane.core.config import get_settings
from hirelane.services.errors import LifecycleValidationError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

CHANGE_TYPES = frozenset({"INSERT", "UPDATE", "DELETE"})
MAX_CHANGE_TEXT = 300
MAX_RECONNECT_DELAY_SECONDS = 30.0

# Mirrors the column lists passed to hirelane_notify_change() in the migration.
CHANGE_FEED_COLUMNS: dict[str, tuple[str, ...]] = {
    "jobs": ("id", "employer_id", "posted_by", "title", "status", "created_at", "updated_at"),
    "applications": ("id", "job_id", "candidate_id", "status", "created_at", "updated_at"),
    "notifications": (
        "id",
        "recipient_id",
        "type",
        "title",
        "message",
        "related_entity_type",
        "related_entity_id",
        "read",
        "created_at",
    ),
}


def project_row(table: str, row: dict[str, Any]) -> dict[str, Any]:
    projected: dict[str, Any] = {}
    for column in CHANGE_FEED_COLUMNS.get(table, ()):
        if column not in row:
            continue
        value = row[column]
        projected[column] = value[:MAX_CHANGE_TEXT] if isinstance(value, str) else value
    return projected


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    table: str
    type: str
    record: dict[str, Any] | None = None
    old_record: dict[str, Any] | None = None

    @classmethod
    def from_payload(cls, payload: str | dict[str, Any]) -> ChangeEvent:
        data = json.loads(payload) if isinstance(payload, str) else payload
        if not isinstance(data, dict):
            raise ValueError("change payload must be a JSON object")
        table = data.get("table")
        change_type = str(data.get("type") or "").upper()
        if not isinstance(table, str) or not table or change_type not in CHANGE_TYPES:
            raise ValueError("change payload requires table and INSERT/UPDATE/DELETE type")
        record = data.get("record")
        old_record = data.get("old_record")
        return cls(
            table=table,
            type=change_type,
            record=record if isinstance(record, dict) else None,
            old_record=old_record if isinstance(old_record, dict) else None,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "type": self.type,
            "record": self.record,
            "old_record": self.old_record,
        }


@dataclass(slots=True, frozen=True)
class RowFilter:
    column: str
    value: str


def parse_filter(raw: str | None) -> RowFilter | None:
    if raw is None or not raw.strip():
        return None
    column, separator, rest = raw.strip().partition("=")
    operator, dot, value = rest.partition(".")
    if not separator or not dot or operator != "eq" or not column.strip():
        raise LifecycleValidationError(f"unsupported realtime filter: {raw!r}")
    return RowFilter(column=column.strip(), value=value)


def _as_filter_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def matches(event: ChangeEvent, table: str, row_filter: RowFilter | None) -> bool:
    if event.table != table:
        return False
    if row_filter is None:
        return True
    row = event.record if event.record is not None else event.old_record
    if not row or row_filter.column not in row or row[row_filter.column] is None:
        return False
    return _as_filter_text(row[row_filter.column]) == row_filter.value


@dataclass(slots=True, eq=False)
class _Subscription:
    table: str
    row_filter: RowFilter | None
    queue: asyncio.Queue[ChangeEvent] = field(repr=False)


class ChangeFeed:
    """In-process fan-out used directly by the in-memory backend."""

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self._subscriptions: list[_Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        self._subscriptions.clear()

    def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if not matches(event, subscription.table, subscription.row_filter):
                continue
            try:
                subscription.queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("realtime subscriber queue full; dropping event table=%s", event.table)

    async def subscribe(self, table: str, row_filter: str | None = None) -> AsyncIterator[ChangeEvent]:
        parsed = parse_filter(row_filter)
        await self.start()
        subscription = _Subscription(
            table=table,
            row_filter=parsed,
            queue=asyncio.Queue(maxsize=self.queue_size),
        )
        self._subscriptions.append(subscription)
        logger.info("realtime subscribe table=%s filter=%s", table, row_filter)
        try:
            while True:
                yield await subscription.queue.get()
        finally:
            self._subscriptions.remove(subscription)


class PostgresChangeFeed(ChangeFeed):
    def __init__(
        self,
        database_url: str | None,
        channel: str,
        queue_size: int = 256,
        reconnect_delay_seconds: float = 1.0,
    ) -> None:
        super().__init__(queue_size=queue_size)
        self.database_url = database_url
        self.channel = channel
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self._connection: asyncpg.Connection | None = None
        self._start_lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._connection is not None:
            return
        if not self.database_url:
            raise UpstreamUnavailableError("HL_DATABASE_URL is required for realtime")
        async with self._start_lock:
            if self._connection is not None:
                return
            try:
                connection = await asyncpg.connect(dsn=self.database_url)
                await connection.add_listener(self.channel, self._on_notify)
            except Exception as exc:
                raise UpstreamUnavailableError("realtime listener unavailable") from exc
            connection.add_termination_listener(self._on_terminated)
            self._connection = connection
            logger.info("realtime listener started channel=%s", self.channel)

    async def close(self) -> None:
        connection = self._connection
        self._connection = None
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        if connection is not None:
            await connection.remove_listener(self.channel, self._on_notify)
            await connection.close()
        await super().close()

    def _on_notify(self, _connection: Any, _pid: int, _channel: str, payload: str) -> None:
        try:
            event = ChangeEvent.from_payload(payload)
        except ValueError:
            logger.warning("ignoring malformed change payload on channel=%s", self.channel)
            return
        self.publish(event)

    def _on_terminated(self, connection: Any) -> None:
        if connection is not self._connection:
            return
        self._connection = None
        logger.warning("realtime listener connection lost channel=%s", self.channel)
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        attempt = 0
        # With no subscribers left the next stream request reconnects on demand.
        while self._connection is None and self.subscriber_count:
            delay = min(self.reconnect_delay_seconds * (2**attempt), MAX_RECONNECT_DELAY_SECONDS)
            attempt += 1
            await asyncio.sleep(delay)
            try:
                await self.start()
            except UpstreamUnavailableError:
                logger.warning("realtime reconnect failed attempt=%s channel=%s", attempt, self.channel)
                continue
            logger.info("realtime listener reconnected attempt=%s channel=%s", attempt, self.channel)


@lru_cache
def get_change_feed() -> ChangeFeed:
    settings = get_settings()
    if settings.store_backend == "memory":
        return ChangeFeed(queue_size=settings.realtime_queue_size)
    return PostgresChangeFeed(
        database_url=settings.database_url,
        channel=settings.realtime_channel,
        queue_size=settings.realtime_queue_size,
        reconnect_delay_seconds=settings.realtime_reconnect_delay_seconds,
    )
