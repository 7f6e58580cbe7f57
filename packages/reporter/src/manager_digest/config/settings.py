"""Configuration settings for the manager digest job."""

import json
from decimal import Decimal
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REPORT_KINDS = ("daily", "weekly", "balance")


class FlatSettings(BaseSettings):
    """Flat settings sourced from environment variables (or a .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Document store
    firebase_service: SecretStr = Field(..., validation_alias="FIREBASE_SERVICE")
    managers_collection: str = Field(default="musers", validation_alias="MANAGERS_COLLECTION")
    deposits_collection: str = Field(
        default="depositRequests", validation_alias="DEPOSITS_COLLECTION"
    )
    withdrawals_collection: str = Field(
        default="withdrawRequests", validation_alias="WITHDRAWALS_COLLECTION"
    )
    stats_range_pushdown: bool = Field(default=False, validation_alias="STATS_RANGE_PUSHDOWN")

    # Telegram
    bot_token: SecretStr = Field(..., validation_alias="BOT_TOKEN")
    telegram_api_url: str = Field(
        default="https://api.telegram.org", validation_alias="TELEGRAM_API_URL"
    )
    telegram_timeout: float = Field(default=15.0, validation_alias="TELEGRAM_TIMEOUT")

    # Health endpoint
    health_host: str = Field(default="0.0.0.0", validation_alias="HEALTH_HOST")
    port: int = Field(default=8080, validation_alias="PORT")

    # Reporting
    usdt_rate: Decimal = Field(default=Decimal("125.56"), gt=0, validation_alias="USDT_RATE")
    report_timezone: str = Field(default="Asia/Dhaka", validation_alias="REPORT_TIMEZONE")
    reports: str = Field(default="daily,balance", validation_alias="REPORTS")

    daily_report_cron: str = Field(default="0 12 * * *", validation_alias="DAILY_REPORT_CRON")
    weekly_report_cron: str = Field(default="0 21 * * 5", validation_alias="WEEKLY_REPORT_CRON")
    balance_report_cron: str = Field(
        default="0 20 * * *", validation_alias="BALANCE_REPORT_CRON"
    )

    # Both schedules of the dual deployment display the balance negated.
    daily_negate_balance: bool = Field(default=True, validation_alias="DAILY_NEGATE_BALANCE")
    weekly_negate_balance: bool = Field(default=True, validation_alias="WEEKLY_NEGATE_BALANCE")
    balance_negate_balance: bool = Field(
        default=True, validation_alias="BALANCE_NEGATE_BALANCE"
    )

    shutdown_grace_seconds: float = Field(
        default=10.0, validation_alias="SHUTDOWN_GRACE_SECONDS"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @field_validator("firebase_service")
    @classmethod
    def _check_service_account(cls, value: SecretStr) -> SecretStr:
        try:
            parsed = json.loads(value.get_secret_value())
        except json.JSONDecodeError as e:
            raise ValueError(f"FIREBASE_SERVICE is not valid JSON: {e.msg}") from e
        if not isinstance(parsed, dict):
            raise ValueError("FIREBASE_SERVICE must be a JSON object")
        return value

    @field_validator("reports")
    @classmethod
    def _check_reports(cls, value: str) -> str:
        kinds = [k.strip().lower() for k in value.split(",") if k.strip()]
        if not kinds:
            raise ValueError("REPORTS must name at least one report")
        unknown = sorted(set(kinds) - set(REPORT_KINDS))
        if unknown:
            raise ValueError(f"Unknown report kinds: {', '.join(unknown)}")
        return ",".join(kinds)

    @property
    def enabled_reports(self) -> list[str]:
        """Report kinds to schedule, in configured order without duplicates."""
        return list(dict.fromkeys(self.reports.split(",")))

    def service_account_info(self) -> dict[str, Any]:
        """Decoded service account credentials for the document store."""
        info: dict[str, Any] = json.loads(self.firebase_service.get_secret_value())
        return info


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
