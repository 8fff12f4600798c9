"""Application configuration loaded from environment variables.

Settings for the KV namespaces, the source-of-truth Google Sheet, outbound
email, and the claim sync worker. Uses pydantic-settings for validation and
.env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Cloudflare KV rejects expiration TTLs below 60 seconds
_MIN_KV_TTL_SECONDS = 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Cloudflare KV (claims + verification tokens live in separate namespaces)
    cloudflare_api_base_url: str = "https://api.cloudflare.com/client/v4"
    cloudflare_account_id: str = ""
    cloudflare_api_token: SecretStr = SecretStr("")
    claims_namespace_id: str = ""
    verification_tokens_namespace_id: str = ""

    # Google Sheets
    # GOOGLE_SERVICE_ACCOUNT_KEY holds the full service-account JSON document
    google_sheet_id: str = ""
    google_service_account_key: SecretStr = SecretStr("")
    google_token_scope: str = "https://www.googleapis.com/auth/spreadsheets"
    sheet_claims_range: str = "API!A2:L"
    sheet_append_range: str = "API!A:L"
    sheet_catalog_range: str = "API!A1:L"
    sheet_log_range: str = "Logs!A:H"

    # Email (SendGrid)
    sendgrid_api_key: SecretStr = SecretStr("")
    email_from: str = "service@baby-registry.example"
    # Fallback origin for verification links when the caller has none
    base_url: str = "http://localhost:8788"

    # Outbound HTTP
    http_timeout_seconds: float = 10.0
    max_retries: int = 3
    retry_base_delay_ms: int = 500
    retry_max_delay_ms: int = 10000

    # Sync worker
    sync_interval_seconds: int = 15 * 60
    sync_phase_timeout_seconds: float = 120.0
    sync_lease_enabled: bool = True
    sync_lease_ttl_seconds: int = 300
    # Keys under these prefixes share the claims namespace but are not claims
    kv_reserved_prefixes: list[str] = ["ratelimit:", "sync:"]
    # Opt-in: default missing timestamps on both reads to the pass start time
    # instead of each read's own clock
    sync_shared_read_clock: bool = False

    @model_validator(mode="after")
    def check_sync_configuration(self) -> "Settings":
        """Validate worker timing and production credentials.

        Checks:
        - Sync interval and phase timeout must be positive (all environments)
        - Lease TTL must respect the KV minimum TTL (all environments)
        - KV and Sheet credentials must be present in production
        """
        if self.sync_interval_seconds <= 0:
            msg = (
                "SYNC_INTERVAL_SECONDS must be positive. "
                f"Got: {self.sync_interval_seconds}"
            )
            raise ValueError(msg)
        if self.sync_phase_timeout_seconds <= 0:
            msg = (
                "SYNC_PHASE_TIMEOUT_SECONDS must be positive. "
                f"Got: {self.sync_phase_timeout_seconds}"
            )
            raise ValueError(msg)
        if self.sync_lease_ttl_seconds < _MIN_KV_TTL_SECONDS:
            msg = (
                f"SYNC_LEASE_TTL_SECONDS must be at least {_MIN_KV_TTL_SECONDS} "
                f"(KV minimum expiration). Got: {self.sync_lease_ttl_seconds}"
            )
            raise ValueError(msg)

        if self.environment == "production":
            missing = [
                name
                for name, value in (
                    ("CLOUDFLARE_ACCOUNT_ID", self.cloudflare_account_id),
                    (
                        "CLOUDFLARE_API_TOKEN",
                        self.cloudflare_api_token.get_secret_value(),
                    ),
                    ("CLAIMS_NAMESPACE_ID", self.claims_namespace_id),
                    ("GOOGLE_SHEET_ID", self.google_sheet_id),
                    (
                        "GOOGLE_SERVICE_ACCOUNT_KEY",
                        self.google_service_account_key.get_secret_value(),
                    ),
                )
                if not value
            ]
            if missing:
                msg = (
                    "Missing required settings in production: "
                    + ", ".join(missing)
                )
                raise ValueError(msg)

        return self


settings = Settings()
