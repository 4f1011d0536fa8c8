"""Pydantic request models for batch checks."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from nodeprobe.config.settings import DecisionPolicy, ProbeSettings


class CheckOptions(BaseModel):
    """Per-batch overrides of ``ProbeSettings``. Unset fields keep the service defaults."""

    targets: list[str] | None = None
    custom_urls: list[str] | None = None
    decision_policy: DecisionPolicy | None = None
    stop_on_first_failure: bool | None = None
    cache_enabled: bool | None = None
    disable_failed_cache: bool | None = None
    concurrency: int | None = Field(default=None, ge=1, le=200)
    method: str | None = None
    request_timeout_ms: int | None = Field(default=None, ge=100)
    retries: int | None = Field(default=None, ge=0, le=10)
    retry_delay_ms: int | None = Field(default=None, ge=0)
    name_prefix: str | None = None

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str | None) -> str | None:
        return value.strip().upper() if value else value

    def apply(self, settings: ProbeSettings) -> ProbeSettings:
        """Return a copy of *settings* with every set option applied."""
        overrides = self.model_dump(exclude_none=True)
        if not overrides:
            return settings
        return settings.model_copy(update=overrides)


class CheckRequest(BaseModel):
    """Request model for one batch check."""

    nodes: list[dict] = Field(..., max_length=5000)
    options: CheckOptions | None = None
