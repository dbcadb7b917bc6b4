from typing import Annotated, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from webvitals.core.errors import ConfigurationMissing


class PollBudget(BaseModel):
    max_wait: float       # seconds
    poll_interval: float  # seconds


class RetryPolicy(BaseModel):
    initial_delay: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 5
    budget: float = 120.0  # overall seconds spent retrying one call


TECHNOLOGY_BUDGET = PollBudget(max_wait=180.0, poll_interval=10.0)
SECURITY_BUDGET = PollBudget(max_wait=300.0, poll_interval=15.0)
FIELD_DATA_TIMEOUT = 120.0


class Settings(BaseSettings):
    cloudflare_account_id: Optional[str] = None
    cloudflare_api_token: Optional[str] = None
    google_api_key: Optional[str] = None

    technology_max_wait: float = Field(
        TECHNOLOGY_BUDGET.max_wait, validation_alias=AliasChoices("TECH_SCAN_MAX_WAIT_S", "technology_max_wait"))
    technology_poll_interval: float = Field(
        TECHNOLOGY_BUDGET.poll_interval, validation_alias=AliasChoices("TECH_SCAN_POLL_INTERVAL_S", "technology_poll_interval"))
    security_max_wait: float = Field(
        SECURITY_BUDGET.max_wait, validation_alias=AliasChoices("SECURITY_SCAN_MAX_WAIT_S", "security_max_wait"))
    security_poll_interval: float = Field(
        SECURITY_BUDGET.poll_interval, validation_alias=AliasChoices("SECURITY_SCAN_POLL_INTERVAL_S", "security_poll_interval"))
    field_data_timeout: float = Field(
        FIELD_DATA_TIMEOUT, validation_alias=AliasChoices("FIELD_DATA_TIMEOUT_S", "field_data_timeout"))

    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    # Comma-separated in .env, e.g. WEBVITALS_CORS_ORIGINS=http://localhost:3000,https://app.example
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        validation_alias=AliasChoices("WEBVITALS_CORS_ORIGINS", "cors_origins"),
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    @property
    def technology_budget(self) -> PollBudget:
        return PollBudget(max_wait=self.technology_max_wait, poll_interval=self.technology_poll_interval)

    @property
    def security_budget(self) -> PollBudget:
        return PollBudget(max_wait=self.security_max_wait, poll_interval=self.security_poll_interval)

    def require_scanner_credentials(self) -> Tuple[str, str]:
        missing = [
            name
            for name, value in (
                ("CLOUDFLARE_ACCOUNT_ID", self.cloudflare_account_id),
                ("CLOUDFLARE_API_TOKEN", self.cloudflare_api_token),
            )
            if not value
        ]
        if missing:
            raise ConfigurationMissing(missing)
        return self.cloudflare_account_id, self.cloudflare_api_token

    def require_pagespeed_key(self) -> str:
        if not self.google_api_key:
            raise ConfigurationMissing(["GOOGLE_API_KEY"])
        return self.google_api_key
