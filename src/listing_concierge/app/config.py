"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./listing_concierge.db"

    # AI
    gemini_api_key: str = ""
    # Most to least preferred
    model_chain: str = "gemini-2.5-flash,gemini-2.5-flash-lite,gemini-2.0-flash"
    # request | tenant | global
    model_fallback_scope: str = "tenant"
    model_temperature: float = 0.7
    model_top_p: float = 0.8
    model_top_k: int = 40
    model_max_output_tokens: int = 2048
    model_timeout_seconds: int = 60

    # Property catalog
    property_source: str = "local"  # local | gcs | document
    property_data_dir: str = "./data"
    gcs_bucket: str = ""
    gcs_base_url: str = "https://storage.googleapis.com"
    property_cache_ttl_seconds: int = 3600

    # Tenancy
    multi_tenant: bool = True
    default_tenant: str = "default"

    # Quotas (tokens per window)
    free_plan_monthly_tokens: int = 1_000_000
    pro_plan_monthly_tokens: int = 10_000_000
    quota_window_days: int = 30
    quota_warning_ratio: float = 0.8
    usage_serialize_per_tenant: bool = False

    # Email (SendGrid)
    sendgrid_api_key: str = ""
    email_from: str = ""
    email_from_name: str = "Property Concierge"
    agent_notification_email: str = ""

    # Guardrails
    allowed_link_domains: str = ""
    security_rules_path: str = ""

    # Feedback-driven model upgrade
    feedback_window: int = 20
    feedback_min_ratings: int = 5
    feedback_negative_threshold: float = 0.4

    # Conversation
    timezone: str = "Asia/Jakarta"
    default_language: str = "id"

    # CORS
    cors_origins: str = "*"

    # General
    debug: bool = True

    model_config = {
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "protected_namespaces": (),
    }

    @property
    def model_chain_list(self) -> list[str]:
        """Parse the comma-separated model chain into an ordered list."""
        return _split_csv(self.model_chain)

    @property
    def allowed_link_domains_list(self) -> list[str]:
        return [d.lower() for d in _split_csv(self.allowed_link_domains)]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return _split_csv(self.cors_origins)

    def plan_limit(self, plan: str) -> int:
        """Monthly token ceiling for a plan name (unknown plans get the free ceiling)."""
        if plan == "pro":
            return self.pro_plan_monthly_tokens
        return self.free_plan_monthly_tokens


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
