"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Matching thresholds and weights live here so they can be tuned per
deployment without code changes.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )

    # ===================
    # SEMANTIC MATCHING (ANTHROPIC)
    # ===================
    anthropic_api_key: Optional[str] = Field(
        None,
        description="Anthropic API key for the semantic match tier"
    )
    semantic_match_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used to verify medium-confidence matches"
    )
    semantic_match_max_tokens: int = Field(
        default=2048,
        ge=256,
        le=8192,
        description="Maximum tokens for the semantic match response"
    )

    # ===================
    # MATCHING THRESHOLDS
    # ===================
    match_high_confidence: float = Field(
        default=0.9,
        ge=0,
        le=1,
        description="Fuzzy score at or above which a match is accepted without AI"
    )
    match_medium_confidence: float = Field(
        default=0.7,
        ge=0,
        le=1,
        description="Fuzzy score at or above which candidates go to the AI tier"
    )
    match_min_confidence: float = Field(
        default=0.6,
        ge=0,
        le=1,
        description="Fuzzy score below which candidates are discarded"
    )
    ai_match_min_confidence: float = Field(
        default=0.85,
        ge=0,
        le=1,
        description="Minimum AI confidence to accept a semantic match"
    )
    match_max_candidates: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Candidates returned by the fuzzy tier / sent to the AI tier"
    )

    # ===================
    # MATCHING WEIGHTS
    # ===================
    match_weight_part_number: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Weight of part number similarity"
    )
    match_weight_manufacturer: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Weight of manufacturer similarity"
    )
    match_weight_name: float = Field(
        default=0.2,
        ge=0,
        le=1,
        description="Weight of name similarity"
    )

    # ===================
    # EXPORT / IMPORT
    # ===================
    import_batch_size: int = Field(
        default=100,
        ge=1,
        le=5000,
        description="Rows per upsert batch during import"
    )
    attachments_bucket: str = Field(
        default="supplier-quotes",
        description="Storage bucket holding supplier quote files"
    )
    export_format_version: str = Field(
        default="1.0.0",
        description="Bundle package format version"
    )
    export_schema_version: str = Field(
        default="1.0.0",
        description="Database schema version stamped into bundles"
    )
    bundle_min_password_length: int = Field(
        default=8,
        ge=4,
        le=128,
        description="Minimum password length for encrypted bundles"
    )
    bundle_kdf_iterations: int = Field(
        default=100000,
        ge=1000,
        description="PBKDF2 iterations for bundle encryption"
    )

    # ===================
    # DEFAULT TEAM SETTINGS
    # ===================
    default_usd_to_ils: float = Field(default=3.7, gt=0)
    default_eur_to_ils: float = Field(default=4.0, gt=0)
    default_markup_percent: float = Field(default=25, ge=0)
    default_profit_percent: float = Field(default=15, ge=0)
    default_risk_percent: float = Field(default=5, ge=0)
    default_vat_rate: float = Field(default=17, ge=0, le=100)
    default_day_work_cost: float = Field(default=1000, ge=0)
    default_currency: str = Field(
        default="NIS",
        pattern="^(NIS|USD|EUR)$"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def semantic_match_configured(self) -> bool:
        """Check if the Anthropic key is set."""
        return bool(self.anthropic_api_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
