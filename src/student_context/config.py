"""Configuration management for student context retrieval."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    url: Optional[str] = Field(None, validation_alias="DATABASE_URL")
    pool_min_size: int = Field(1, validation_alias="DATABASE_POOL_MIN_SIZE")
    pool_max_size: int = Field(10, validation_alias="DATABASE_POOL_MAX_SIZE")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        """Validate database URL format."""
        if v is None:
            return v
        if not v.startswith("postgresql://"):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL connection string")
        if "[PASSWORD]" in v:
            raise ValueError("DATABASE_URL contains placeholder password - please set actual password")
        return v

    @property
    def is_configured(self) -> bool:
        return self.url is not None


class RetrievalSettings(BaseSettings):
    """Thresholds and caps used by the resolver, aggregator and metrics engine."""

    model_config = SettingsConfigDict(
        env_prefix="RETRIEVAL_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    chronic_absence_threshold: float = 90.0
    passing_grade: float = 60.0
    recent_grades_limit: int = 5
    recent_attendance_days: int = 30
    recent_attendance_limit: int = 10
    behavior_window_days: int = 30

    # Composite risk
    low_attendance_threshold: float = 85.0
    low_gpa_threshold: float = 2.0

    # Candidate set sizing
    analysis_sample_size: int = 50
    max_analysis_students: int = 100
    budget_student_threshold: int = 15

    # Deep mode
    deep_mode_enabled: bool = True
    deep_mode_max_students: int = 3

    # Summary classification
    focused_student_limit: int = 5
    group_query_limit: int = 10

    @field_validator("chronic_absence_threshold", "passing_grade", "low_attendance_threshold")
    @classmethod
    def validate_percentage(cls, v):
        if v < 0 or v > 100:
            raise ValueError("Percentage thresholds must be between 0 and 100")
        return v

    @field_validator(
        "recent_grades_limit", "recent_attendance_days", "recent_attendance_limit",
        "behavior_window_days", "analysis_sample_size", "max_analysis_students",
        "budget_student_threshold", "deep_mode_max_students",
    )
    @classmethod
    def validate_count(cls, v):
        if v < 0:
            raise ValueError("Counts and windows must not be negative")
        return v


class BudgetSettings(BaseSettings):
    """Per-category truncation caps applied by the context budgeter."""

    model_config = SettingsConfigDict(
        env_prefix="BUDGET_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    grade_focus_months: int = 3
    default_attendance_records: int = 5
    default_months: int = 6
    default_incidents: int = 2
    assessment_entries: int = 1

    @field_validator("*")
    @classmethod
    def validate_cap(cls, v):
        if v < 0:
            raise ValueError("Budget caps must not be negative")
        return v


class AppSettings(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    name: str = Field("student-context", validation_alias="APP_NAME")
    version: str = Field("0.1.0", validation_alias="APP_VERSION")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    debug: bool = Field(False, validation_alias="DEBUG")
    flag_rules_path: Optional[str] = Field(None, validation_alias="FLAG_RULES_PATH")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    budget: BudgetSettings = Field(default_factory=BudgetSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment."""
        return cls()
