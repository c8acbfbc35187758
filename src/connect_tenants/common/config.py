"""Registry configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

CREDENTIAL_MODES = ("shared_secret", "public_key")

_DEV_ADDON_KEY = "connect-tenants-dev"


def _is_memory_db(url: str) -> bool:
    if not url.startswith("sqlite"):
        return False
    return ":memory:" in url or url.split("://", 1)[-1] in ("", "/")


class ConnectSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CONNECT_TENANTS_")

    environment: str = "development"
    log_level: str = "INFO"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/connect_tenants.db"
    storage_timeout: float = 5.0  # seconds, lock wait included

    # Add-on identity, used as the issuer of outbound tokens
    addon_key: str = _DEV_ADDON_KEY

    # Lifecycle policy
    allow_rotation: bool = True

    # Order in which stored key material is tried by verify_signature.
    # JSON list in the environment, e.g. '["public_key", "shared_secret"]'
    credential_precedence: list[str] = ["shared_secret", "public_key"]

    # JWT
    jwt_leeway: int = 0  # seconds
    jwt_ttl: int = 180  # seconds

    def validate_for_production(self) -> None:
        """Raise on unusable settings; warn on development defaults."""
        unknown = [m for m in self.credential_precedence if m not in CREDENTIAL_MODES]
        if unknown or not self.credential_precedence:
            raise ValueError(
                "CONNECT_TENANTS_CREDENTIAL_PRECEDENCE must list one or more of "
                f"{', '.join(CREDENTIAL_MODES)}, got: {self.credential_precedence!r}"
            )
        if len(set(self.credential_precedence)) != len(self.credential_precedence):
            raise ValueError("CONNECT_TENANTS_CREDENTIAL_PRECEDENCE has duplicate entries")

        if self.storage_timeout <= 0:
            raise ValueError("CONNECT_TENANTS_STORAGE_TIMEOUT must be positive")

        if self.environment == "development":
            return

        if _is_memory_db(self.db_url):
            raise RuntimeError(
                f"In-memory database configured in '{self.environment}' environment. "
                "Set CONNECT_TENANTS_DB_URL to a persistent database."
            )

        if self.addon_key == _DEV_ADDON_KEY:
            warnings.warn(
                "Using the development add-on key; set CONNECT_TENANTS_ADDON_KEY "
                "to the key from your app descriptor",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> ConnectSettings:
    settings = ConnectSettings()
    settings.validate_for_production()
    return settings
