"""
Configuration Management for the Obligation Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunables are centralized here.
Lead times, safety caps and tolerances live in one place instead of being
scattered as magic numbers through the scheduling code.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_int_list(value: str) -> list[int]:
    return [int(part.strip()) for part in value.split(",") if part.strip()]


class SchedulingSettings(BaseSettings):
    """Recurrence, cycle and tracking configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OBLIGATION_SCHEDULING_",
        extra="ignore"
    )

    default_lead_days: int = Field(
        default=3,
        ge=0,
        le=365,
        description="Days before a cycle's expected date to materialize tracking"
    )
    min_open_ended_cycles: int = Field(
        default=6,
        ge=1,
        description="Cycles generated for a container with no end date"
    )
    max_occurrences: int = Field(
        default=10000,
        ge=1,
        description="Safety cap on occurrences produced by one schedule generation"
    )
    default_reminder_days: str = Field(
        default="1,3,7",
        description="Comma-separated day offsets before a due date that deserve a reminder"
    )

    @field_validator('default_reminder_days')
    @classmethod
    def validate_reminder_days(cls, v: str) -> str:
        for day in _parse_int_list(v):
            if day < 0:
                raise ValueError("Reminder days cannot be negative")
        return v

    @property
    def reminder_days_list(self) -> list[int]:
        return _parse_int_list(self.default_reminder_days)


class AmortizationSettings(BaseSettings):
    """Liability schedule configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OBLIGATION_AMORTIZATION_",
        extra="ignore"
    )

    max_installments: int = Field(
        default=600,
        ge=1,
        description="Longest schedule ever generated (50 years of monthly payments)"
    )
    schedule_insert_batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Rows per insert when regenerating schedules"
    )


class BudgetSettings(BaseSettings):
    """Budget period configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OBLIGATION_BUDGET_",
        extra="ignore"
    )

    pace_tolerance: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Fraction above the ideal daily spend still considered on track"
    )
    ending_soon_days: int = Field(
        default=3,
        ge=0,
        description="Days before period end that count as 'ending soon'"
    )
    alert_thresholds: str = Field(
        default="50,80,100",
        description="Comma-separated percentage-used alert thresholds"
    )

    @property
    def alert_thresholds_list(self) -> list[int]:
        return _parse_int_list(self.alert_thresholds)


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    default_currency: str = Field(
        default="INR",
        min_length=3,
        max_length=3,
        description="Currency used when a record does not name one"
    )
    storage_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for idempotent storage writes on connection errors"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def scheduling(self) -> SchedulingSettings:
        return SchedulingSettings()

    @property
    def amortization(self) -> AmortizationSettings:
        return AmortizationSettings()

    @property
    def budget(self) -> BudgetSettings:
        return BudgetSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("scheduling", "amortization", "budget", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
