"""
Verifier Configuration
======================

Immutable settings shared by every component, loaded from the environment.
"""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class VerifierConfig(BaseSettings):
    """
    Verification settings.

    Values come from keyword arguments, then ``VERIFIER_*`` environment
    variables, then a local ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="VERIFIER_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # Checksum matching
    relative_error_margin: float = Field(default=1e-4, gt=0)
    absolute_error_margin: float = Field(default=1e-12, ge=0)

    # Determinism analysis
    determinism_runs: int = Field(default=2, ge=1, le=10)

    # Resubmission
    resubmission_limit: int = Field(default=2, ge=0)
    resubmission_base_delay_seconds: float = Field(default=1.0, ge=0)
    resubmission_max_delay_seconds: float = Field(default=30.0, ge=0)

    # Scheduling
    max_concurrency: int = Field(default=10, ge=1)
    operation_timeout_seconds: float = Field(default=600.0, gt=0)
    run_teardown: bool = True

    # Rewriting
    control_table_prefix: str = "tmp_verifier_control"
    test_table_prefix: str = "tmp_verifier_test"

    # Failure resolution
    time_limit_ratio: float = Field(default=0.9, gt=0, le=1)
    memory_limit_bytes: Optional[int] = Field(default=None, ge=1)

    # SQLite-backed service clusters
    control_database: Optional[str] = None
    test_database: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_format: Optional[str] = None

    @model_validator(mode="after")
    def _check_delays(self) -> "VerifierConfig":
        if self.resubmission_max_delay_seconds < self.resubmission_base_delay_seconds:
            raise ValueError(
                "resubmission_max_delay_seconds must be >= resubmission_base_delay_seconds"
            )
        return self
