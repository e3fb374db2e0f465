"""Application settings with environment variable loading.

Supports both local development (.env) and deployed webhook handlers
(plain environment variables).
"""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator, ConfigDict
from pydantic_settings import BaseSettings


load_dotenv()


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        sanity_project_id: Sanity project identifier.
        sanity_dataset: Sanity dataset to query.
        sanity_token: Read token (required for private datasets).
        sanity_api_version: Dated Sanity API version.
        sanity_use_cdn: Query the API CDN instead of the live API.
        webhook_secret: Shared secret for webhook signatures (optional).
        qdrant_url: Qdrant cluster URL.
        qdrant_api_key: Qdrant API key.
        qdrant_collection: Collection (alias) holding the search records.
        gemini_api_key: Google Gemini API key used for embeddings.
        embedding_model: Embedding model identifier.
        embedding_dimensions: Embedding vector size.
        sync_types: Comma separated document types to index.
        hidden_field: Document field that hides a document from search.
        expansion_enabled: Whether one document may yield many records.
        settle_delay_ms: Pause before fetching documents after a webhook.
        api_timeout: Timeout for outgoing HTTP calls in seconds.
        log_level: Application logging level.
        app_host: Webhook server host.
        app_port: Webhook server port.
    """

    # Sanity Configuration
    sanity_project_id: str = Field(default="", alias="SANITY_PROJECT_ID")
    sanity_dataset: str = Field(default="production", alias="SANITY_DATASET")
    sanity_token: str = Field(default="", alias="SANITY_TOKEN")
    sanity_api_version: str = Field(default="2021-03-25")
    sanity_use_cdn: bool = Field(default=False, alias="SANITY_USE_CDN")

    # Webhook Configuration
    webhook_secret: str = Field(
        default="",
        alias="SANITY_WEBHOOK_SECRET",
        description="Signature verification is skipped when empty",
    )

    # Qdrant Configuration
    qdrant_url: str = Field(default="", alias="QDRANT_URL")
    qdrant_api_key: str = Field(default="", alias="QDRANT_API_KEY")
    qdrant_collection: str = Field(default="sanity_documents", alias="QDRANT_COLLECTION")

    # Embedding Configuration
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    embedding_model: str = Field(default="gemini-embedding-001")
    embedding_dimensions: int = Field(default=768, ge=128, le=3072)

    # Sync Configuration
    sync_types: str = Field(
        default="",
        alias="SYNC_TYPES",
        description="Comma separated list of document types, e.g. 'post,article'",
    )
    hidden_field: str = Field(default="isHidden", alias="HIDDEN_FIELD")
    expansion_enabled: bool = Field(default=False, alias="EXPANSION_ENABLED")
    settle_delay_ms: int = Field(default=3000, ge=0, le=60000, alias="SETTLE_DELAY_MS")
    api_timeout: int = Field(default=30, ge=1, le=300, alias="API_TIMEOUT")

    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server Configuration
    app_port: int = Field(default=8000, ge=1024, le=65535, alias="APP_PORT")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator(
        "sanity_token", "webhook_secret", "qdrant_api_key", "gemini_api_key", mode="before"
    )
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from secrets."""
        return v.strip() if v else ""

    def get_sync_types(self) -> list[str]:
        """Get the configured document types.

        Returns:
            Document type names in declaration order, without blanks or repeats.
        """
        types: list[str] = []
        for name in self.sync_types.split(","):
            name = name.strip()
            if name and name not in types:
                types.append(name)
        return types

    def is_sanity_configured(self) -> bool:
        """Check if the Sanity project and dataset are set.

        Returns:
            True if Sanity can be queried.
        """
        return bool(self.sanity_project_id and self.sanity_dataset)

    def is_qdrant_configured(self) -> bool:
        """Check if Qdrant is configured.

        Returns:
            True if Qdrant URL and API key are set.
        """
        return bool(self.qdrant_url and self.qdrant_api_key)

    def is_gemini_configured(self) -> bool:
        """Check if the embedding API is configured.

        Returns:
            True if Gemini API key is set.
        """
        return bool(self.gemini_api_key)

    def is_signature_required(self) -> bool:
        """Check if incoming webhooks must carry a valid signature.

        Returns:
            True if a webhook secret is set.
        """
        return bool(self.webhook_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance with loaded configuration.
    """
    return Settings()


def refresh_settings() -> Settings:
    """Clear settings cache and reload.

    Useful for testing or when environment changes.

    Returns:
        Fresh Settings instance.
    """
    get_settings.cache_clear()
    return get_settings()
