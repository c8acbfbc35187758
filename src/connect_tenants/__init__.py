"""connect-tenants: tenant credential and lifecycle registry for Connect add-ons."""

from connect_tenants.common.exceptions import (
    AuthenticationError,
    ConflictError,
    CredentialMissingError,
    InvalidStateError,
    NotFoundError,
    RegistryError,
    StorageTimeoutError,
    ValidationError,
)
from connect_tenants.signing.jwt_auth import JWTAuthenticator, encode_token, query_string_hash
from connect_tenants.tenants.schemas import InstallEvent, TenantSnapshot, parse_install_event
from connect_tenants.tenants.service import TenantRegistry

__all__ = [
    "TenantRegistry",
    "InstallEvent",
    "TenantSnapshot",
    "parse_install_event",
    "JWTAuthenticator",
    "encode_token",
    "query_string_hash",
    "RegistryError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "InvalidStateError",
    "CredentialMissingError",
    "StorageTimeoutError",
    "AuthenticationError",
]
__version__ = "0.1.0"
