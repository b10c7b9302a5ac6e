"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class AwsConfig(BaseModel):
    """AWS client configuration."""
    region: str | None = None  # falls back to the boto3 default chain
    endpoint_url: str | None = None  # e.g. a localstack URL for development


class TablesConfig(BaseModel):
    """DynamoDB table names. Empty values derive from ``Config.env``."""
    schedules: str = ""
    installations: str = ""


class SchedulerConfig(BaseModel):
    """EventBridge Scheduler settings for the one-shot wake-up trigger."""
    name_prefix: str = ""
    target_arn: str = ""  # the update-user-groups function
    role_arn: str = ""  # role EventBridge assumes to invoke the target
    group_name: str | None = None
    grace_seconds: int = 300


class SlackConfig(BaseModel):
    """Slack Web API settings."""
    api_base: str = "https://slack.com/api"
    signing_secret: str = ""  # overrides the value from Secrets Manager
    max_request_age_s: int = 300


class PagerDutyConfig(BaseModel):
    """PagerDuty REST API settings."""
    api_base: str = "https://api.pagerduty.com"
    window_minutes: int = 10


class RotationConfig(BaseModel):
    """Roster sync and orchestration behaviour."""
    max_concurrency: int = 4
    http_timeout_s: float = 30.0
    default_timezone: str = "UTC"
    # Tolerated surplus of current members over the on-call roster before the
    # group is suspected to be the wrong one.
    membership_surplus_threshold: int = 2
    membership_policy: Literal["warn", "abort"] = "warn"


class Config(BaseSettings):
    """Root configuration for oncallbot."""

    model_config = SettingsConfigDict(env_prefix="ONCALLBOT_", env_nested_delimiter="__")

    env: str = "dev"
    secret_name: str = "on-call-support/secrets"
    aws: AwsConfig = Field(default_factory=AwsConfig)
    tables: TablesConfig = Field(default_factory=TablesConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    pagerduty: PagerDutyConfig = Field(default_factory=PagerDutyConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats the values load_config passes in from the file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def schedules_table(self) -> str:
        return self.tables.schedules or f"on-call-support-schedules-{self.env}"

    @property
    def installations_table(self) -> str:
        return self.tables.installations or f"on-call-support-installations-{self.env}"

    @property
    def trigger_prefix(self) -> str:
        return self.scheduler.name_prefix or f"on-call-support-{self.env}_UpdateUserGroupSchedule_"
