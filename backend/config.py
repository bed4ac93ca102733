"""Centralized configuration: all env vars in one place."""

import os

CACHE_BACKENDS = {"auto", "memory", "datastore", "none"}


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # Hosted datastore (Supabase REST). Absent means mock mode.
        self.datastore_url: str | None = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
        self.datastore_key: str | None = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

        # Cache + realtime
        self.cache_backend: str = os.getenv("CACHE_BACKEND", "auto").lower()
        self.cache_default_ttl_minutes: int = int(os.getenv("CACHE_DEFAULT_TTL_MINUTES", "60"))
        self.external_timeout_seconds: float = float(os.getenv("EXTERNAL_TIMEOUT_SECONDS", "5"))
        self.broadcast_queue_size: int = int(os.getenv("BROADCAST_QUEUE_SIZE", "100"))

        # Azure Foundry (location extraction, image verification)
        self.foundry_endpoint: str | None = os.getenv("FOUNDRY_ENDPOINT")
        self.foundry_model: str = os.getenv("FOUNDRY_MODEL_DEPLOYMENT", "gpt-4.1")
        self.managed_identity_client_id: str | None = os.getenv("MANAGED_IDENTITY_CLIENT_ID")

        # Reported by /health only
        self.google_maps_api_key: str | None = os.getenv("GOOGLE_MAPS_API_KEY")
        self.mapbox_access_token: str | None = os.getenv("MAPBOX_ACCESS_TOKEN")
        self.twitter_bearer_token: str | None = os.getenv("TWITTER_BEARER_TOKEN")
        self.bluesky_api_key: str | None = os.getenv("BLUESKY_API_KEY")

        if self.cache_backend not in CACHE_BACKENDS:
            raise ValueError(f"CACHE_BACKEND must be one of {sorted(CACHE_BACKENDS)}, got {self.cache_backend!r}")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def datastore_configured(self) -> bool:
        return bool(self.datastore_url and self.datastore_key)

    @property
    def ai_configured(self) -> bool:
        return bool(self.foundry_endpoint and self.managed_identity_client_id)

    def resolved_cache_backend(self) -> str:
        """Pick the concrete cache backend for ``auto``."""
        if self.cache_backend == "auto":
            return "datastore" if self.datastore_configured else "memory"
        if self.cache_backend == "datastore" and not self.datastore_configured:
            return "none"
        return self.cache_backend

    def external_apis(self) -> dict[str, bool]:
        return {
            "foundry": self.ai_configured,
            "googleMaps": bool(self.google_maps_api_key),
            "mapbox": bool(self.mapbox_access_token),
            "twitter": bool(self.twitter_bearer_token),
            "bluesky": bool(self.bluesky_api_key),
        }

    def validate(self) -> list[str]:
        """Return list of missing env vars for optional features."""
        required = [
            "SUPABASE_URL",
            "SUPABASE_SERVICE_ROLE_KEY",
            "FOUNDRY_ENDPOINT",
            "MANAGED_IDENTITY_CLIENT_ID",
        ]
        return [var for var in required if not getattr(self, _attr_for(var))]


settings = Settings()


def _attr_for(env_var: str) -> str:
    """Map env var name to Settings attribute name."""
    mapping = {
        "SUPABASE_URL": "datastore_url",
        "SUPABASE_SERVICE_ROLE_KEY": "datastore_key",
        "FOUNDRY_ENDPOINT": "foundry_endpoint",
        "MANAGED_IDENTITY_CLIENT_ID": "managed_identity_client_id",
    }
    return mapping.get(env_var, env_var.lower())
