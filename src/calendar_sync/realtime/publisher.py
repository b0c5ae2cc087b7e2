"""Redis pub/sub publisher for realtime sync events.

Each user has one channel, `user:{user_id}`; the SSE layer subscribes to it
and forwards events to the user's open clients.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from calendar_sync.errors import format_unknown_cause
from calendar_sync.realtime.events import SyncEvent, dump_sync_event

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

USER_CHANNEL_PREFIX = "user"


def get_user_sync_channel(user_id: str) -> str:
    return f"{USER_CHANNEL_PREFIX}:{user_id}"


class RealtimePublisher:
    """Publishes sync events to per-user Redis channels.

    Args:
        redis_client: Async Redis client
    """

    def __init__(self, redis_client: Redis) -> None:
        self._redis = redis_client
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_url(cls, redis_url: str) -> RealtimePublisher:
        from redis.asyncio import Redis

        return cls(Redis.from_url(redis_url))

    async def publish_to_user(self, user_id: str, event: SyncEvent) -> int:
        """Publish an event; returns the number of subscribers that got it."""
        channel = get_user_sync_channel(user_id)
        receivers = await self._redis.publish(channel, dump_sync_event(event))
        logger.debug(f"Published {event.type} event to {channel} ({receivers} receivers)")
        return receivers

    def publish_to_user_best_effort(self, user_id: str, event: SyncEvent) -> None:
        """Fire-and-forget publish; failures are logged, never raised.

        Must be called from a running event loop.
        """
        task = asyncio.get_running_loop().create_task(self._publish_logged(user_id, event))
        # Keep a reference until done so the task is not garbage collected
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish_logged(self, user_id: str, event: SyncEvent) -> None:
        try:
            await self.publish_to_user(user_id, event)
        except Exception as e:
            logger.warning(
                f"Failed to publish {event.type} event for user {user_id}: "
                f"{format_unknown_cause(e)}"
            )

    async def drain(self) -> None:
        """Wait for in-flight best-effort publishes (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self._redis.aclose()
