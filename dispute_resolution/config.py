"""Configuration module using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

class DisputePolicyConfig(BaseModel):
    # Filing rules
    filing_window_days: int = Field(
        default=5, description="Days after shipment/assignment during which a dispute may be filed"
    )
    negotiation_deadline_hours: int = Field(
        default=48, description="Hours of negotiation before auto-escalation to admin review"
    )
    max_evidence_images: int = Field(
        default=5, description="Maximum evidence images per dispute"
    )
    disputable_order_statuses: list[str] = Field(
        default_factory=lambda: ["shipped", "delivered"],
        description="Order statuses that permit filing a dispute",
    )
    disputable_customization_statuses: list[str] = Field(
        default_factory=lambda: ["in_progress", "awaiting_customer_approval"],
        description="Customization statuses that permit filing a dispute",
    )

class ResilienceConfig(BaseModel):
    # Settlement retries
    max_retries: int = Field(default=3, description="Maximum attempts per ledger call")
    retry_base_delay: float = Field(
        default=0.5, description="Initial delay in seconds, doubled after each attempt"
    )
    circuit_breaker_threshold: int = Field(
        default=5, description="Failed settlements before the circuit breaker opens"
    )
    circuit_breaker_recovery: float = Field(
        default=60.0, description="Seconds before an open circuit breaker half-opens"
    )
    # Per-actor throttling
    rate_limit_per_window: int = Field(
        default=30, description="Mutating dispute actions allowed per actor per window"
    )
    rate_limit_window_seconds: int = Field(
        default=60, description="Length of the rate limit window"
    )

class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    policy: DisputePolicyConfig = DisputePolicyConfig()

    resilience: ResilienceConfig = ResilienceConfig()

    default_currency: str = Field(default="PHP", description="Default currency code")

    pii_use_presidio: bool = Field(
        default=True, description="Run Presidio NLP detection when masking audit entries"
    )

    # Paths
    data_dir: Path = Field(default=Path("data"), description="Directory for data files")
    log_dir: Path = Field(default=Path("logs"), description="Directory for audit logs")
    log_level: str = Field(default="INFO", description="Logging level")

    # Default user for the CLI
    default_user_id: str = Field(
        default="user_001", description="Default user ID for the CLI"
    )


# Global settings instance
settings = Settings()
