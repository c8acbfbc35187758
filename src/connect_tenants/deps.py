"""Process-wide singletons for connect-tenants."""

from connect_tenants.common.config import get_settings
from connect_tenants.common.database import DatabaseManager
from connect_tenants.signing.jwt_auth import JWTAuthenticator
from connect_tenants.tenants.service import TenantRegistry

_db: DatabaseManager | None = None
_registry: TenantRegistry | None = None
_authenticator: JWTAuthenticator | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_registry() -> TenantRegistry:
    global _registry
    if _registry is None:
        _registry = TenantRegistry(get_db(), get_settings())
    return _registry


def get_authenticator() -> JWTAuthenticator:
    global _authenticator
    if _authenticator is None:
        _authenticator = JWTAuthenticator(get_registry(), get_settings())
    return _authenticator


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _registry, _authenticator
    _db = None
    _registry = None
    _authenticator = None
