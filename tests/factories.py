"""Fixture data factories for tenants and lifecycle payloads."""

from typing import Any

from connect_tenants.common.config import ConnectSettings
from connect_tenants.tenants.schemas import TenantSnapshot
from connect_tenants.tenants.service import TenantRegistry

SHARED_SECRET = (
    "af7EKBf79AuaqBEthgiXIqEaEBsxYqndLFh/8VuSPeqE8flI6nJCCLRODOPwQpAX"
    "yasUm/f01/h7+diwqMdAYa"
)

TENANT_DATA: dict[str, Any] = {
    "addon_key": "test",
    "client_key": "c4fdbf9b-0a07-4654-9442-239406ae4e07",
    "public_key": None,
    "shared_secret": SHARED_SECRET,
    "server_version": "100058",
    "plugin_version": "1.3.175",
    "base_url": "https://test.atlassian.net",
    "product_type": "jira",
    "description": "Testing tenant",
    "event_type": "installed",
    "oauth_client_token": (
        "eyJob3N0S2V5IjoiZjhlMTEyMTYtMjRiYS1zNDRlLTkxYjgtODQ1YWYzZDk0NWYwIiwi"
        "YWRkb25LZXkiOiJzYW1wbGUtcGx1Z2luIn0="
    ),
}

# snake_case field -> name the host uses in the installed webhook body
WIRE_NAMES = {
    "addon_key": "key",
    "client_key": "clientKey",
    "public_key": "publicKey",
    "shared_secret": "sharedSecret",
    "server_version": "serverVersion",
    "plugin_version": "pluginsVersion",
    "base_url": "baseUrl",
    "product_type": "productType",
    "description": "description",
    "event_type": "eventType",
    "oauth_client_token": "oauthClientId",
}


def make_settings(**overrides) -> ConnectSettings:
    defaults = {"db_url": "sqlite+aiosqlite://", "addon_key": "test"}
    defaults.update(overrides)
    return ConnectSettings(**defaults)


def tenant_data(**overrides) -> dict[str, Any]:
    """Snake_case install payload with fixture defaults."""
    data = dict(TENANT_DATA)
    data.update(overrides)
    return data


def install_payload(**overrides) -> dict[str, Any]:
    """Install payload using the host's wire names."""
    return {WIRE_NAMES[k]: v for k, v in tenant_data(**overrides).items()}


async def create_tenant(registry: TenantRegistry, **overrides) -> TenantSnapshot:
    return await registry.handle_install(tenant_data(**overrides))
