# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Webhook event payloads sent by the verification gateway."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookEventType(str, Enum):
    VERIFIED = "identity.verification_session.verified"
    FAILED = "identity.verification_session.failed"
    PROCESSING = "identity.verification_session.processing"
    CANCELED = "identity.verification_session.canceled"
    REQUIRES_INPUT = "identity.verification_session.requires_input"
    REDACTED = "identity.verification_session.redacted"


class VerificationSessionObject(BaseModel):
    """The verification session the event reports on."""

    id: str
    status: str
    verified_outputs: Optional[Dict[str, Any]] = None
    last_error: Optional[Dict[str, Any]] = None


class WebhookEventData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session: VerificationSessionObject = Field(alias="object")


class WebhookEvent(BaseModel):
    """A verified webhook callback.

    Only construct this from a payload that has passed signature
    verification; see :func:`authbound.webhooks.signature.construct_event`.
    """

    id: str
    type: WebhookEventType
    created: Optional[int] = None
    livemode: Optional[bool] = None
    api_version: Optional[str] = None
    data: WebhookEventData

    @property
    def session_id(self) -> str:
        return self.data.session.id
