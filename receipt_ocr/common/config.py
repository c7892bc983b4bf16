"""
Application configuration using Pydantic Settings
Reads from environment variables and .env file
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Receipt OCR settings from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_mode: str = Field(default="DEV", alias="APP_MODE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(default=True, alias="JSON_LOGS")

    # Claude Vision (precise provider)
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    claude_model: str = Field(default="claude-3-5-sonnet-20241022", alias="CLAUDE_MODEL")
    claude_max_tokens: int = Field(default=1024, alias="CLAUDE_MAX_TOKENS")

    # Groq (cheap provider)
    groq_api_key: Optional[str] = Field(default=None, alias="GROQ_API_KEY")
    groq_model: str = Field(default="mixtral-8x7b-32768", alias="GROQ_MODEL")
    groq_temperature: float = Field(default=0.1, alias="GROQ_TEMPERATURE")
    groq_max_tokens: int = Field(default=512, alias="GROQ_MAX_TOKENS")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")

    # Raw text extraction for the cheap path
    raw_text_backend: str = Field(default="static", alias="RAW_TEXT_BACKEND")
    aws_textract_region: str = Field(default="us-east-1", alias="AWS_TEXTRACT_REGION")

    # Receipt amounts are reported in the smallest unit of this currency
    currency: str = Field(default="THB", alias="RECEIPT_CURRENCY")

    # Routing
    simple_confidence_threshold: float = Field(default=0.85, ge=0.0, le=1.0, alias="SIMPLE_CONFIDENCE_THRESHOLD")
    brightness_threshold: float = Field(default=0.6, ge=0.0, le=1.0, alias="BRIGHTNESS_THRESHOLD")
    fallback_enabled: bool = Field(default=True, alias="FALLBACK_ENABLED")
    max_cheap_attempts: int = Field(default=1, ge=1, alias="MAX_CHEAP_ATTEMPTS")
    provider_timeout_seconds: Optional[float] = Field(default=None, gt=0, alias="PROVIDER_TIMEOUT_SECONDS")

    # Cost model (currency units per receipt)
    cheap_unit_cost: float = Field(default=0.05, ge=0.0, alias="CHEAP_UNIT_COST")
    precise_unit_cost: float = Field(default=0.50, ge=0.0, alias="PRECISE_UNIT_COST")
    manual_review_threshold: float = Field(default=0.95, ge=0.0, le=1.0, alias="MANUAL_REVIEW_THRESHOLD")

    # Development
    mock_latency_seconds: float = Field(default=0.0, ge=0.0, alias="MOCK_LATENCY_SECONDS")

    # Monitoring
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    @property
    def use_mock_providers(self) -> bool:
        """DEV mode returns deterministic mock results instead of calling APIs"""
        return self.app_mode == "DEV"

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, v):
        """Validate application mode"""
        valid_modes = ["DEV", "PROD"]
        if v.upper() not in valid_modes:
            raise ValueError(f"APP_MODE must be one of {valid_modes}")
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("raw_text_backend")
    @classmethod
    def validate_raw_text_backend(cls, v):
        """Validate raw text backend"""
        valid_backends = ["static", "textract"]
        if v.lower() not in valid_backends:
            raise ValueError(f"RAW_TEXT_BACKEND must be one of {valid_backends}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
