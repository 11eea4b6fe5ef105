"""Redis-backed live feeds for delivery snapshots, driver locations and profiles."""

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from delivery_core.core.exceptions import NotFoundError, ValidationError
from delivery_core.delivery import DeliveryRecord, DriverLocation, DriverProfile
from delivery_core.settings import RedisSettings
from delivery_core.tracking.feeds import DeliveryCallback, LocationCallback, Unsubscribe

logger = logging.getLogger(__name__)


class SnapshotDecodeError(ValidationError):
    """A pushed payload was not valid JSON or did not match its schema."""

    pass


def create_redis_client(settings: RedisSettings) -> redis.Redis:
    return redis.Redis(
        host=settings.host,
        port=settings.port,
        password=settings.password,
        ssl=settings.ssl,
    )


class RedisLiveFeed:
    """Pushes JSON documents published on per-entity Redis channels to callbacks.

    Every subscription gets its own pub/sub connection and reader task, so
    unsubscribing one never disturbs another. Connection drops are reported
    to the callback and the reader reconnects after ``reconnect_delay``.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        settings: RedisSettings | None = None,
        reconnect_delay: float = 5.0,
    ) -> None:
        self.redis_client = redis_client
        self.settings = settings or RedisSettings()
        self.reconnect_delay = reconnect_delay
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def active_subscriptions(self) -> int:
        return len(self._tasks)

    def delivery_channel(self, delivery_id: str) -> str:
        return f"{self.settings.delivery_channel_prefix}:{delivery_id}"

    def driver_location_channel(self, driver_id: str) -> str:
        return f"{self.settings.driver_location_channel_prefix}:{driver_id}"

    def subscribe_delivery(self, delivery_id: str, callback: DeliveryCallback) -> Unsubscribe:
        return self._subscribe(self.delivery_channel(delivery_id), DeliveryRecord, callback)

    def subscribe_driver_location(
        self, driver_id: str, callback: LocationCallback
    ) -> Unsubscribe:
        return self._subscribe(self.driver_location_channel(driver_id), DriverLocation, callback)

    async def get_profile(self, driver_id: str) -> DriverProfile:
        key = f"{self.settings.driver_profile_key_prefix}:{driver_id}"
        raw = await self.redis_client.get(key)
        if raw is None:
            raise NotFoundError("Driver profile not found", details={"driver_id": driver_id})
        try:
            return DriverProfile.model_validate({"id": driver_id, **json.loads(raw)})
        except (json.JSONDecodeError, TypeError, PydanticValidationError) as e:
            raise SnapshotDecodeError(
                "Malformed driver profile", details={"driver_id": driver_id}
            ) from e

    async def close(self) -> None:
        """Cancel every reader task and wait for their cleanup."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _subscribe(
        self,
        channel: str,
        model: type[BaseModel],
        callback: Callable[[Any, Exception | None], None],
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._listen(channel, model, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def _listen(
        self,
        channel: str,
        model: type[BaseModel],
        callback: Callable[[Any, Exception | None], None],
    ) -> None:
        while True:
            pubsub = self.redis_client.pubsub()
            try:
                await pubsub.subscribe(channel)
                logger.info(f"Subscribed to Redis channel {channel}")

                async for message in pubsub.listen():
                    if message["type"] != "message":
                        continue
                    payload, error = self._decode(channel, model, message["data"])
                    try:
                        callback(payload, error)
                    except Exception as e:
                        logger.warning(f"Subscriber callback failed on {channel}: {e}")
                return

            except redis.ConnectionError as e:
                logger.error(
                    f"Redis disconnected on {channel}, reconnecting in {self.reconnect_delay}s"
                )
                try:
                    callback(None, e)
                except Exception as callback_error:
                    logger.warning(f"Subscriber callback failed on {channel}: {callback_error}")
                await asyncio.sleep(self.reconnect_delay)
            finally:
                with contextlib.suppress(redis.RedisError, OSError):
                    await pubsub.unsubscribe(channel)
                    await pubsub.aclose()

    @staticmethod
    def _decode(
        channel: str, model: type[BaseModel], data: Any
    ) -> tuple[BaseModel | None, Exception | None]:
        try:
            return model.model_validate(json.loads(data)), None
        except (json.JSONDecodeError, TypeError, PydanticValidationError) as e:
            logger.warning(f"Undecodable payload on {channel}: {e}")
            return None, SnapshotDecodeError(
                f"Undecodable payload on {channel}", details={"channel": channel}
            )
