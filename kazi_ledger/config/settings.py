"""
Configuration Management for Kazi Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: Configuration is assembled ONCE into a Settings object
and handed to every component that needs it. Core code never reads the
environment on its own, so tests can build isolated settings freely.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini generative model configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        default="",
        description="Gemini API key (empty means the assistant is unavailable)"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )
    request_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Caller-enforced timeout for a single parse request"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class StorageSettings(BaseSettings):
    """Local persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="KAZI_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: str = Field(
        default="file",
        pattern="^(file|memory)$",
        description="Where records are kept: a JSON file or process memory"
    )
    data_dir: Path = Field(
        default=Path(".kazi"),
        description="Directory holding the ledger file"
    )
    file_name: str = Field(
        default="ledger.json",
        description="Name of the ledger file inside data_dir"
    )
    namespace: str = Field(
        default="kazi",
        min_length=1,
        description="Prefix for every storage key"
    )
    schema_version: int = Field(
        default=2,
        ge=1,
        description="Record schema version, part of every key"
    )

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / self.file_name


class SupabaseSettings(BaseSettings):
    """Remote auth backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="",
        description="Project URL, e.g. https://<ref>.supabase.co"
    )
    anon_key: str = Field(
        default="",
        description="Public anon key sent as the apikey header"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout for auth calls"
    )

    @field_validator('url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key and "placeholder" not in self.url)


class GoogleSheetsSettings(BaseSettings):
    """Optional Google Sheets mirror configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        default="",
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        default="",
        description="ID of the spreadsheet that mirrors the ledger"
    )

    # Sheet names within the spreadsheet
    accounts_sheet_name: str = Field(
        default="Accounts",
        description="Name of the sheet for business accounts"
    )
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transactions"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.credentials_path and self.spreadsheet_id)


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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    # Ledger defaults
    default_account_name: str = Field(
        default="My Business",
        min_length=1,
        description="Name of the ledger seeded on first use"
    )
    default_currency: str = Field(
        default="UGX",
        min_length=1,
        description="Currency of the ledger seeded on first use"
    )
    supported_currencies: str = Field(
        default="UGX,KES,USD,TZS",
        description="Comma-separated list of currencies offered to the user"
    )
    demo_user_id: str = Field(
        default="demo-user",
        description="User id recorded when no auth session exists"
    )

    # Receipt capture limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt photo size in MB"
    )
    supported_image_mime_types: str = Field(
        default="image/jpeg,image/png,image/webp",
        description="Comma-separated list of accepted receipt photo types"
    )

    # Assistant context
    context_recent_count: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Recent transaction descriptions included in parse context"
    )
    insights_sample_size: int = Field(
        default=5,
        ge=0,
        le=20,
        description="Transactions sampled when asking for insights"
    )
    context_max_chars: int = Field(
        default=600,
        ge=100,
        description="Upper bound on the context string sent to the model"
    )

    @property
    def supported_currencies_list(self) -> list[str]:
        """Get supported currencies as a list."""
        return [c.strip().upper() for c in self.supported_currencies.split(",") if c.strip()]

    @property
    def supported_mime_types_list(self) -> list[str]:
        """Get accepted image types as a list."""
        return [
            m.strip().lower()
            for m in self.supported_image_mime_types.split(",")
            if m.strip()
        ]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseModel):
    """
    Root settings container.

    Built once at startup and passed down; every group can be
    overridden explicitly, which is how tests isolate themselves.
    """

    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    google_sheets: GoogleSheetsSettings = Field(default_factory=GoogleSheetsSettings)
    app: AppSettings = Field(default_factory=AppSettings)


def load_settings() -> Settings:
    """Assemble a fresh Settings object from the environment."""
    return Settings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Only entry points should call this. Call get_settings.cache_clear()
    to reload if needed.
    """
    return load_settings()


def describe_configuration(settings: Settings) -> dict[str, bool]:
    """
    Report which external services are configured.

    Returns a dict of {service_name: is_configured}.
    Useful for startup checks.
    """
    return {
        "gemini": settings.gemini.is_configured,
        "supabase": settings.supabase.is_configured,
        "google_sheets": settings.google_sheets.is_configured,
        "persistent_storage": settings.storage.backend == "file",
    }
