"""
Configuration settings for the Knowledge Service.

IMPORTANT: Sensitive values (database credentials, URLs) are loaded from environment variables only.
Never hardcode sensitive values in this file as it's checked into version control.
"""

import math
from typing import Any, Dict

from pydantic import field_validator
from pydantic_settings import BaseSettings

from knowledge_service.core.exceptions import ConfigurationError

# Upper bounds keep the evaluation job schedulable and bulk runs finite
MAX_INTERVAL_HOURS = 24 * 30
MAX_DELAY_SECONDS = 60.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Service Configuration
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: str = "knowledge-service"
    API_V1_STR: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8010

    # Database
    DATABASE_URL: str = "sqlite:///./knowledge_service.db"

    # Retrieval
    RELEVANCE_CUTOFF: float = 0.1  # Minimum score to surface a match during live chat
    SEARCH_DEFAULT_LIMIT: int = 5

    # Gap Resolution & Deduplication
    RESOLUTION_THRESHOLD: float = 0.7  # Minimum score to auto-resolve a gap
    MERGE_SIMILARITY_THRESHOLD: float = 0.8
    DUPLICATE_SIMILARITY_THRESHOLD: float = 0.75  # Used when logging a new gap
    SIMILARITY_CHECK_THRESHOLD: float = 0.6  # Used to warn admins about likely duplicates

    # Scheduler & Background Jobs
    ENABLE_SCHEDULER: bool = True
    GAP_EVALUATION_INTERVAL_HOURS: float = 6
    EVALUATION_BATCH_SIZE: int = 10
    EVALUATION_ITEM_DELAY_SECONDS: float = 0.1
    EVALUATION_BATCH_DELAY_SECONDS: float = 1.0

    @field_validator(
        "RELEVANCE_CUTOFF",
        "RESOLUTION_THRESHOLD",
        "MERGE_SIMILARITY_THRESHOLD",
        "DUPLICATE_SIMILARITY_THRESHOLD",
        "SIMILARITY_CHECK_THRESHOLD",
    )
    @classmethod
    def validate_threshold(cls, value: float) -> float:
        if not math.isfinite(value) or not 0.0 <= value <= 1.0:
            raise ValueError(f"Threshold must be between 0 and 1, got {value}")
        return value

    @field_validator("GAP_EVALUATION_INTERVAL_HOURS", "EVALUATION_BATCH_SIZE")
    @classmethod
    def validate_positive(cls, value):
        if isinstance(value, float) and not math.isfinite(value) or value <= 0:
            raise ValueError(f"Value must be positive, got {value}")
        return value

    @field_validator("GAP_EVALUATION_INTERVAL_HOURS")
    @classmethod
    def validate_interval(cls, value: float) -> float:
        if value > MAX_INTERVAL_HOURS:
            raise ValueError(f"Interval cannot exceed {MAX_INTERVAL_HOURS} hours, got {value}")
        return value

    @field_validator("EVALUATION_ITEM_DELAY_SECONDS", "EVALUATION_BATCH_DELAY_SECONDS")
    @classmethod
    def validate_delay(cls, value: float) -> float:
        if not math.isfinite(value) or not 0 <= value <= MAX_DELAY_SECONDS:
            raise ValueError(f"Delay must be between 0 and {MAX_DELAY_SECONDS} seconds, got {value}")
        return value

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra environment variables


class ScoringConfig:
    """
    Runtime-tunable scoring thresholds and evaluation throttling.

    Initialized from Settings and adjustable by admins without a restart.
    Invalid values are rejected with ConfigurationError, never clamped.
    """

    THRESHOLD_FIELDS = (
        "relevance_cutoff",
        "resolution_threshold",
        "merge_similarity_threshold",
        "duplicate_similarity_threshold",
        "similarity_check_threshold",
    )
    POSITIVE_FIELDS = ("interval_hours", "batch_size")
    DELAY_FIELDS = ("item_delay_seconds", "batch_delay_seconds")

    def __init__(self, source: Settings):
        self.relevance_cutoff = source.RELEVANCE_CUTOFF
        self.resolution_threshold = source.RESOLUTION_THRESHOLD
        self.merge_similarity_threshold = source.MERGE_SIMILARITY_THRESHOLD
        self.duplicate_similarity_threshold = source.DUPLICATE_SIMILARITY_THRESHOLD
        self.similarity_check_threshold = source.SIMILARITY_CHECK_THRESHOLD
        self.interval_hours = source.GAP_EVALUATION_INTERVAL_HOURS
        self.batch_size = source.EVALUATION_BATCH_SIZE
        self.item_delay_seconds = source.EVALUATION_ITEM_DELAY_SECONDS
        self.batch_delay_seconds = source.EVALUATION_BATCH_DELAY_SECONDS

    def update(self, **changes: Any) -> Dict[str, Any]:
        """
        Validate and apply configuration changes.

        All changes are validated before any is applied, so a rejected
        update leaves the configuration untouched.

        Raises:
            ConfigurationError: unknown field or value out of range
        """
        for name, value in changes.items():
            self._validate(name, value)

        for name, value in changes.items():
            if name == "batch_size":
                value = int(value)
            setattr(self, name, value)

        return self.as_dict()

    def _validate(self, name: str, value: Any) -> None:
        if name not in self.THRESHOLD_FIELDS + self.POSITIVE_FIELDS + self.DELAY_FIELDS:
            raise ConfigurationError(f"Unknown configuration field '{name}'")

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"'{name}' must be a number, got {value!r}")

        if isinstance(value, float) and not math.isfinite(value):
            raise ConfigurationError(f"'{name}' must be finite, got {value}")

        if name in self.THRESHOLD_FIELDS and not 0.0 <= value <= 1.0:
            raise ConfigurationError(f"'{name}' must be between 0 and 1, got {value}")

        if name in self.POSITIVE_FIELDS and value <= 0:
            raise ConfigurationError(f"'{name}' must be positive, got {value}")

        if name == "batch_size" and int(value) != value:
            raise ConfigurationError(f"'batch_size' must be a whole number, got {value}")

        if name == "interval_hours" and value > MAX_INTERVAL_HOURS:
            raise ConfigurationError(f"'interval_hours' cannot exceed {MAX_INTERVAL_HOURS}, got {value}")

        if name in self.DELAY_FIELDS and not 0 <= value <= MAX_DELAY_SECONDS:
            raise ConfigurationError(f"'{name}' must be between 0 and {MAX_DELAY_SECONDS} seconds, got {value}")

    def as_dict(self) -> Dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in self.THRESHOLD_FIELDS + self.POSITIVE_FIELDS + self.DELAY_FIELDS
        }


# Global settings instance
settings = Settings()

# Global runtime scoring configuration
scoring_config = ScoringConfig(settings)
