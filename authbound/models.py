# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Verification session models shared by the push and polling channels."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Verification status
# =============================================================================

class VerificationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    PROCESSING = "processing"
    VERIFIED = "verified"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"


class Verdict(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    INCONCLUSIVE = "inconclusive"


# =============================================================================
# Verification result
# =============================================================================

class VerificationClaims(BaseModel):
    """Boolean claims from verified credentials. Contains no PII."""

    age_over_18: Optional[bool] = None
    age_over_21: Optional[bool] = None
    age_over_65: Optional[bool] = None
    driving_license_valid: Optional[bool] = None
    eu_resident: Optional[bool] = None


class VerificationAttributes(BaseModel):
    """Extended attributes. Contains PII; keep server-side."""

    full_name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    birth_date: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)
    nationality: Optional[str] = Field(default=None, min_length=2, max_length=2)
    resident_country: Optional[str] = Field(default=None, min_length=2, max_length=2)
    driving_privileges: Optional[List[str]] = None
    raw: Optional[Dict[str, Any]] = None


class VerificationResult(BaseModel):
    verdict: Verdict
    claims: VerificationClaims
    attributes: Optional[VerificationAttributes] = None
    credential_types: Optional[List[str]] = None
    verified_at: Optional[str] = None


class ErrorInfo(BaseModel):
    code: str
    message: str


# =============================================================================
# Status events
# =============================================================================

EventKind = Literal["status", "result", "error", "timeout", "heartbeat"]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class StatusEvent(BaseModel):
    """A single observation of the session's status.

    Both channels produce this shape so callers are channel-agnostic. The
    ``kind`` field travels as ``type`` on the wire. A ``result`` event must
    carry a result and an ``error`` event must carry error details;
    anything else fails validation and is never delivered.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: EventKind = Field(alias="type")
    status: VerificationStatus
    result: Optional[VerificationResult] = None
    error: Optional[ErrorInfo] = None
    timestamp: str = Field(default_factory=utc_timestamp)

    @model_validator(mode="after")
    def _check_variant(self) -> "StatusEvent":
        if self.kind == "result" and self.result is None:
            raise ValueError("result event carries no result")
        if self.kind == "error" and self.error is None:
            raise ValueError("error event carries no error details")
        return self

    @classmethod
    def timed_out(cls) -> "StatusEvent":
        return cls(kind="timeout", status=VerificationStatus.TIMEOUT)

    @classmethod
    def failed_with(cls, code: str, message: str) -> "StatusEvent":
        return cls(
            kind="error",
            status=VerificationStatus.ERROR,
            error=ErrorInfo(code=code, message=message),
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Gateway poll response
# =============================================================================

class GatewayStatusResponse(BaseModel):
    """Body of ``GET /v1/verifications/{id}/status``.

    ``status`` uses the gateway vocabulary (``pending``, ``processing``,
    ``verified``, ``failed``, ``canceled``, ``expired``) and is mapped to
    :class:`VerificationStatus` by the polling channel.
    """

    model_config = ConfigDict(populate_by_name=True)

    status: str
    result: Optional[VerificationResult] = None
    error: Optional[ErrorInfo] = None
    time_remaining: Optional[float] = Field(default=None, alias="timeRemaining")
