import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from firebase_webhooks.schemas.events import FirebaseUser

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    """
    Downstream owner of user records.

    Each operation returns True on success. Returning False or raising is
    treated as the downstream being unavailable.
    """

    async def create_user(self, user: FirebaseUser) -> bool:
        ...

    async def update_user(self, user: FirebaseUser) -> bool:
        ...

    async def delete_user(self, uid: str) -> bool:
        ...


class InMemoryUserDirectory:
    """
    Process-local directory.

    Used when no downstream service is configured, and in tests.
    """

    def __init__(self):
        self.users: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, Any]] = []

    async def create_user(self, user: FirebaseUser) -> bool:
        self.calls.append(("create_user", user))
        self.users[user.uid] = user.to_wire()
        return True

    async def update_user(self, user: FirebaseUser) -> bool:
        self.calls.append(("update_user", user))
        record = self.users.setdefault(user.uid, {"uid": user.uid})
        record.update(user.to_wire())
        return True

    async def delete_user(self, uid: str) -> bool:
        self.calls.append(("delete_user", uid))
        self.users.pop(uid, None)
        return True

    async def aclose(self) -> None:
        pass


class HttpUserDirectory:
    """Relays user events to a REST user service."""

    def __init__(self, client: httpx.AsyncClient, owns_client: bool = False):
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, base_url: str, timeout: float) -> "HttpUserDirectory":
        client = httpx.AsyncClient(base_url=base_url, timeout=timeout)
        return cls(client, owns_client=True)

    async def create_user(self, user: FirebaseUser) -> bool:
        r = await self._client.post("/users", json=user.to_wire())
        return self._succeeded("create_user", user.uid, r)

    async def update_user(self, user: FirebaseUser) -> bool:
        r = await self._client.put(
            f"/users/{quote(user.uid, safe='')}", json=user.to_wire()
        )
        return self._succeeded("update_user", user.uid, r)

    async def delete_user(self, uid: str) -> bool:
        r = await self._client.delete(f"/users/{quote(uid, safe='')}")
        return self._succeeded("delete_user", uid, r)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _succeeded(operation: str, uid: str, r: httpx.Response) -> bool:
        success = 200 <= r.status_code < 300
        if not success:
            logger.warning(f"{operation} for {uid} returned {r.status_code}")
        return success
