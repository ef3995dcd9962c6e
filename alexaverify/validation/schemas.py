"""Pydantic schemas for Alexa request bodies and validator settings."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Alexa allows at most 150 seconds between the request timestamp and receipt
PLATFORM_MAX_TOLERANCE_SECONDS = 150
DEFAULT_TOLERANCE_SECONDS = 120


class SkillApplication(BaseModel):
    """``application`` object carrying the skill id."""

    application_id: str = Field(..., alias="applicationId")


class SkillSession(BaseModel):
    application: SkillApplication


class SkillSystem(BaseModel):
    application: SkillApplication


class SkillContext(BaseModel):
    system: SkillSystem = Field(..., alias="System")


class SkillRequestPayload(BaseModel):
    """``request`` object; only the fields validation needs."""

    timestamp: datetime
    type: Optional[str] = None
    request_id: Optional[str] = Field(default=None, alias="requestId")

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_iso8601_utc(cls, value):
        # Unix epoch numbers are accepted by pydantic but are not Alexa's format
        if not isinstance(value, str):
            raise ValueError("timestamp must be an ISO-8601 string")
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            raise ValueError("timestamp must carry a UTC offset")
        return parsed


class SkillRequestEnvelope(BaseModel):
    """Alexa request body.

    Session-less requests (AudioPlayer, PlaybackController, ...) carry the
    application id under ``context.System.application`` instead of ``session``.
    """

    model_config = ConfigDict(extra="ignore")

    version: Optional[str] = None
    session: Optional[SkillSession] = None
    context: Optional[SkillContext] = None
    request: SkillRequestPayload

    @model_validator(mode="after")
    def require_application(self):
        if self.session is None and self.context is None:
            raise ValueError(
                "applicationId missing: expected session.application or context.System.application"
            )
        return self

    @property
    def application_id(self) -> str:
        if self.session is not None:
            return self.session.application.application_id
        return self.context.system.application.application_id


class ValidatorSettings(BaseModel):
    """Configuration supplied by the caller (see ``alexaverify.config``)."""

    application_id: str = Field(..., min_length=1)
    # Ceiling is not enforced; values above 150s are logged as a warning
    timestamp_tolerance_seconds: int = Field(default=DEFAULT_TOLERANCE_SECONDS, ge=0, le=3600)
    san_match: Literal["exact", "substring"] = "exact"
    cert_cache_backend: Literal["memory", "file", "redis"] = "memory"
    cert_cache_dir: Optional[str] = None
    cert_cache_ttl_seconds: int = Field(default=0, ge=0)
    redis_url: str = "redis://localhost:6379/0"
    http_timeout_seconds: float = Field(default=3.0, gt=0, le=30)
    cert_max_bytes: int = Field(default=64 * 1024, ge=1024)
