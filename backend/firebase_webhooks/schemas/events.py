from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from firebase_webhooks.core.errors import MalformedPayload, UnknownEndpoint

WEBHOOK_PREFIX = "/webhooks/firebase"


class WebhookEndpoint(str, Enum):
    USER_CREATED = "user-created"
    USER_UPDATED = "user-updated"
    USER_DELETED = "user-deleted"

    @classmethod
    def resolve(cls, name: str) -> "WebhookEndpoint":
        try:
            return cls(name)
        except ValueError:
            raise UnknownEndpoint(f"Unknown webhook endpoint {name!r}")


class FirebaseUser(BaseModel):
    """User record as sent by the Firebase auth trigger."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str = Field(..., min_length=1, description="Firebase user ID")
    email: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    photo_url: str | None = Field(default=None, alias="photoURL")
    metadata: dict[str, str | None] | None = Field(
        default=None, description="Auth timestamps, e.g. creationTime"
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FirebaseUserPayload(BaseModel):
    data: FirebaseUser


@dataclass(frozen=True)
class WebhookRequest:
    body: bytes
    headers: Mapping[str, str]
    endpoint: str
    client: str


@dataclass(frozen=True)
class SignedBody:
    """Raw request body whose signature has been checked.

    Only ``services.signature.verify`` creates these.
    """

    raw: bytes


@dataclass(frozen=True)
class VerifiedEvent:
    endpoint: WebhookEndpoint
    user: FirebaseUser

    @classmethod
    def parse(cls, endpoint: WebhookEndpoint, body: SignedBody) -> "VerifiedEvent":
        if not isinstance(body, SignedBody):
            raise TypeError("VerifiedEvent requires a SignedBody")
        try:
            payload = FirebaseUserPayload.model_validate_json(body.raw)
        except ValidationError as ve:
            raise MalformedPayload(f"{ve.error_count()} validation error(s)")
        return cls(endpoint=endpoint, user=payload.data)
