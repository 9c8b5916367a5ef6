"""Domain models describing API rate limiting state."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitStatus(BaseModel):
    """Represents the outcome of a rate limit check."""

    allowed: bool = Field(
        description="Whether the request is permitted under the configured quota",
    )
    limit: int = Field(
        description="Maximum number of requests allowed within the window",
        ge=0,
    )
    remaining: int = Field(
        description="Number of requests still available before hitting the limit",
        ge=0,
    )
    reset_epoch: int = Field(
        description="Unix timestamp (seconds) at which the current window ends",
        ge=0,
    )
    retry_after_seconds: int = Field(
        description="Number of seconds until the quota resets if the request was blocked",
        ge=0,
    )

    def headers(self) -> dict[str, str]:
        values = {
            "x-ratelimit-limit": str(self.limit),
            "x-ratelimit-remaining": str(self.remaining),
            "x-ratelimit-reset": str(self.reset_epoch),
        }
        if not self.allowed:
            values["retry-after"] = str(self.retry_after_seconds)
        return values
