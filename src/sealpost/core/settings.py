"""Application settings and configuration.

This module defines all configuration options for the Sealpost relay.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the Sealpost relay.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Sealpost Relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server binding (used when running the module directly)
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="SERVER_PORT")

    # Database configuration
    database_url: str = Field(default="sqlite:///./sealpost.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Device identity limits
    user_id_max_length: int = Field(default=64, alias="USER_ID_MAX_LENGTH")
    public_key_min_bytes: int = Field(default=24, alias="PUBLIC_KEY_MIN_BYTES")
    public_key_max_bytes: int = Field(default=96, alias="PUBLIC_KEY_MAX_BYTES")
    signature_min_bytes: int = Field(default=48, alias="SIGNATURE_MIN_BYTES")
    signature_max_bytes: int = Field(default=192, alias="SIGNATURE_MAX_BYTES")

    # Key bundle limits
    max_one_time_pre_keys: int = Field(default=100, alias="MAX_ONE_TIME_PRE_KEYS")
    prekey_claim_attempts: int = Field(default=32, alias="PREKEY_CLAIM_ATTEMPTS")

    # Envelope limits
    max_ciphertext_bytes: int = Field(default=64 * 1024, alias="MAX_CIPHERTEXT_BYTES")
    max_nonce_bytes: int = Field(default=64, alias="MAX_NONCE_BYTES")
    inbox_max_limit: int = Field(default=100, alias="INBOX_MAX_LIMIT")
    ack_max_ids: int = Field(default=100, alias="ACK_MAX_IDS")

    # Retention sweep (envelopes older than this are dropped, delivered or not)
    retention_seconds: int = Field(default=7 * 24 * 60 * 60, alias="RETENTION_SECONDS")
    retention_sweep_enabled: bool = Field(default=True, alias="RETENTION_SWEEP_ENABLED")
    retention_sweep_interval_seconds: float = Field(
        default=3600.0,
        alias="RETENTION_SWEEP_INTERVAL_SECONDS",
    )
    retention_sweep_batch_size: int = Field(default=500, alias="RETENTION_SWEEP_BATCH_SIZE")

    # Presence push channel
    presence_keepalive_seconds: float = Field(default=30.0, alias="PRESENCE_KEEPALIVE_SECONDS")
    presence_send_queue_size: int = Field(default=64, alias="PRESENCE_SEND_QUEUE_SIZE")

    # CORS for browser clients
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(default=["GET", "POST", "DELETE"], alias="CORS_ALLOW_METHODS")
    cors_allow_headers: list[str] = Field(default=["Content-Type"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the active database URL with the driver spelled out.

        The test database wins when testing mode is on. Bare ``postgres://``
        and ``postgresql://`` URLs are pinned to psycopg 3, the driver shipped
        in the ``postgres`` extra.
        """
        url = self.database_url
        if self.use_testing_database and self.test_database_url:
            url = self.test_database_url
        for prefix in ("postgres://", "postgresql://"):
            if url.startswith(prefix):
                return "postgresql+psycopg://" + url[len(prefix):]
        return url


settings = Settings()
