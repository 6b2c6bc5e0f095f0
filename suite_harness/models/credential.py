"""Models for bearer credentials and the token endpoint response."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    """Body returned by the token endpoint for a client-credentials grant."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(..., min_length=1)
    expires_in: int = Field(..., description="Token lifetime in seconds")
    token_type: str | None = None
    scope: str | None = None


@dataclass(frozen=True, kw_only=True)
class Credential:
    """An access token and the instant it stops being accepted."""

    value: str
    expires_at: datetime

    def is_valid(self, now: datetime, margin: timedelta) -> bool:
        """Check whether the token can still be used, keeping a safety margin."""
        return now < self.expires_at - margin
