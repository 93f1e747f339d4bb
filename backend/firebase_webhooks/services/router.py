import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from firebase_webhooks.core.errors import (
    DownstreamFailure,
    DownstreamTimeout,
    UnknownEndpoint,
)
from firebase_webhooks.schemas.events import VerifiedEvent, WebhookEndpoint
from firebase_webhooks.services.directory import UserDirectory

logger = logging.getLogger(__name__)


class EventRouter:
    """
    Dispatch verified events to the user directory.

    Every downstream call is bounded by ``timeout`` seconds. There are no
    retries here; redelivery is the sender's job.
    """

    def __init__(self, directory: UserDirectory, timeout: float):
        self.directory = directory
        self.timeout = timeout
        self._handlers: dict[
            WebhookEndpoint, Callable[[VerifiedEvent], Awaitable[bool]]
        ] = {
            WebhookEndpoint.USER_CREATED: self.on_user_created,
            WebhookEndpoint.USER_UPDATED: self.on_user_updated,
            WebhookEndpoint.USER_DELETED: self.on_user_deleted,
        }

    async def on_user_created(self, event: VerifiedEvent) -> bool:
        return await self.directory.create_user(event.user)

    async def on_user_updated(self, event: VerifiedEvent) -> bool:
        return await self.directory.update_user(event.user)

    async def on_user_deleted(self, event: VerifiedEvent) -> bool:
        return await self.directory.delete_user(event.user.uid)

    async def dispatch(self, endpoint: str, event: VerifiedEvent) -> dict[str, Any]:
        try:
            kind = WebhookEndpoint(endpoint)
        except ValueError:
            raise UnknownEndpoint(f"No handler for {endpoint!r}")
        handler = self._handlers[kind]
        endpoint = kind.value

        uid = event.user.uid
        try:
            ok = await asyncio.wait_for(handler(event), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(f"{endpoint} for {uid} timed out after {self.timeout}s")
            raise DownstreamTimeout(f"{endpoint} timed out")
        except Exception:
            logger.exception(f"{endpoint} for {uid} failed")
            raise DownstreamFailure(f"{endpoint} raised")

        if not ok:
            logger.error(f"{endpoint} for {uid} reported failure")
            raise DownstreamFailure(f"{endpoint} reported failure")

        logger.info(f"Processed {endpoint} for {uid}")
        return {"status": "ok", "event": endpoint, "uid": uid}
