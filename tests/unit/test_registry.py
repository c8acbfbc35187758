"""Tests for the tenant registry — lifecycle, rotation, soft delete, lookups."""

import pytest

from connect_tenants.common.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from connect_tenants.tenants.models import TenantModel
from connect_tenants.tenants.service import TenantRegistry

from factories import create_tenant, install_payload, make_settings, tenant_data


class TestInstall:
    async def test_install_creates_enabled_tenant(self, registry):
        tenant = await create_tenant(registry)
        assert tenant.client_key == tenant_data()["client_key"]
        assert tenant.addon_key == "test"
        assert tenant.event_type == "installed"
        assert tenant.enabled is True
        assert tenant.state == "enabled"
        assert tenant.is_deleted is False
        assert tenant.created_at is not None

    async def test_install_from_wire_payload(self, registry):
        tenant = await registry.handle_install(install_payload())
        assert tenant.shared_secret == tenant_data()["shared_secret"]
        assert tenant.plugin_version == "1.3.175"
        assert tenant.oauth_client_token == tenant_data()["oauth_client_token"]

    async def test_base_url_trailing_slash_stripped(self, registry):
        tenant = await create_tenant(registry, base_url="https://a.example/")
        assert tenant.base_url == "https://a.example"

    async def test_install_missing_client_key(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            await registry.handle_install(tenant_data(client_key=""))
        assert "client_key" in exc_info.value.fields

    async def test_install_bad_base_url(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            await create_tenant(registry, base_url="not a url")
        assert exc_info.value.fields == ["base_url"]

    async def test_install_without_key_material(self, registry):
        with pytest.raises(ValidationError):
            await create_tenant(registry, shared_secret=None, public_key=None)

    async def test_failed_install_stores_nothing(self, registry):
        with pytest.raises(ValidationError):
            await create_tenant(registry, base_url="ftp://a.example")
        assert await registry.list_tenants(include_deleted=True) == []

    async def test_secret_stored_verbatim(self, registry):
        tenant = await create_tenant(registry, client_key="c1", shared_secret="s1 ")
        assert tenant.shared_secret == "s1 "
        assert (await registry.lookup("c1")).shared_secret == "s1 "

    async def test_omitted_product_type_defaults_to_other(self, registry):
        payload = tenant_data(client_key="c1")
        del payload["product_type"]
        assert (await registry.handle_install(payload)).product_type == "other"

    async def test_row_default_product_type_matches_install_default(self, registry, db):
        async with db.get_session() as session:
            session.add(TenantModel(
                addon_key="test", client_key="raw",
                base_url="https://raw.example", shared_secret="s",
            ))
        assert (await registry.lookup("raw")).product_type == "other"

    async def test_distinct_client_keys_are_independent(self, registry):
        a = await create_tenant(registry, client_key="a", shared_secret="secret-a")
        b = await create_tenant(registry, client_key="b", shared_secret="secret-b")
        assert a.id != b.id
        assert (await registry.lookup("a")).shared_secret == "secret-a"
        assert (await registry.lookup("b")).shared_secret == "secret-b"


class TestRotation:
    async def test_reinstall_rotates_credentials(self, registry):
        await create_tenant(registry, client_key="c1", shared_secret="s1")
        rotated = await create_tenant(
            registry,
            client_key="c1",
            shared_secret="s2",
            base_url="https://moved.example",
            server_version="200000",
            plugin_version="2.0.0",
        )
        assert rotated.shared_secret == "s2"
        assert rotated.base_url == "https://moved.example"
        assert rotated.server_version == "200000"
        assert rotated.plugin_version == "2.0.0"
        assert len(await registry.list_tenants()) == 1

    async def test_rotation_replaces_key_material_wholesale(self, registry):
        await create_tenant(registry, client_key="c1", public_key="pk-1")
        rotated = await create_tenant(registry, client_key="c1", public_key=None)
        assert rotated.public_key is None

    async def test_rotation_keeps_disabled_flag(self, registry):
        await create_tenant(registry, client_key="c1")
        await registry.handle_disable("c1")
        rotated = await create_tenant(registry, client_key="c1", shared_secret="s2")
        assert rotated.enabled is False

    async def test_rotation_does_not_touch_descriptive_fields(self, registry):
        await create_tenant(registry, client_key="c1", description="first")
        rotated = await create_tenant(registry, client_key="c1", description="second")
        assert rotated.description == "first"

    async def test_addon_key_is_immutable(self, registry):
        await create_tenant(registry, client_key="c1")
        with pytest.raises(ValidationError) as exc_info:
            await create_tenant(registry, client_key="c1", addon_key="other")
        assert exc_info.value.fields == ["addon_key"]

    async def test_rotation_forbidden_by_policy(self, db):
        registry = TenantRegistry(db, make_settings(allow_rotation=False))
        await create_tenant(registry, client_key="c1", shared_secret="s1")
        with pytest.raises(ConflictError):
            await create_tenant(registry, client_key="c1", shared_secret="s2")
        assert (await registry.lookup("c1")).shared_secret == "s1"


class TestUninstall:
    async def test_uninstall_hides_tenant(self, registry):
        await create_tenant(registry, client_key="c1")
        snapshot = await registry.handle_uninstall("c1")
        assert snapshot.state == "uninstalled"
        assert snapshot.deleted_at is not None
        with pytest.raises(NotFoundError):
            await registry.lookup("c1")

    async def test_include_deleted_returns_record(self, registry):
        await create_tenant(registry, client_key="c1")
        await registry.handle_uninstall("c1")
        tenant = await registry.lookup("c1", include_deleted=True)
        assert tenant.state == "uninstalled"
        assert tenant.event_type == "uninstalled"
        assert tenant.shared_secret == tenant_data()["shared_secret"]

    async def test_uninstall_is_idempotent(self, registry):
        await create_tenant(registry, client_key="c1")
        first = await registry.handle_uninstall("c1")
        second = await registry.handle_uninstall("c1")
        assert second.state == first.state == "uninstalled"
        assert second.deleted_at == first.deleted_at
        events = [e.event_type for e in await registry.history("c1")]
        assert events.count("uninstalled") == 1

    async def test_uninstall_unknown(self, registry):
        with pytest.raises(NotFoundError):
            await registry.handle_uninstall("nope")

    async def test_list_excludes_uninstalled(self, registry):
        await create_tenant(registry, client_key="a")
        await create_tenant(registry, client_key="b")
        await registry.handle_uninstall("a")
        assert [t.client_key for t in await registry.list_tenants()] == ["b"]
        assert len(await registry.list_tenants(include_deleted=True)) == 2

    async def test_reinstall_after_uninstall_replaces_fields(self, registry):
        await create_tenant(
            registry, client_key="c1", shared_secret="s1",
            description="old", oauth_client_token="tok-1",
        )
        await registry.handle_disable("c1")
        await registry.handle_uninstall("c1")
        tenant = await create_tenant(
            registry, client_key="c1", shared_secret="s2",
            description="new", oauth_client_token=None, product_type="confluence",
        )
        assert tenant.state == "enabled"
        assert tenant.deleted_at is None
        assert tenant.shared_secret == "s2"
        assert tenant.description == "new"
        assert tenant.oauth_client_token is None
        assert tenant.product_type == "confluence"
        assert (await registry.lookup("c1")).id == tenant.id


class TestEnableDisable:
    async def test_disable_then_enable(self, registry):
        await create_tenant(registry, client_key="c1")
        disabled = await registry.handle_disable("c1")
        assert disabled.state == "disabled"
        assert disabled.event_type == "disabled"
        enabled = await registry.handle_enable("c1")
        assert enabled.state == "enabled"

    async def test_disable_keeps_credentials(self, registry):
        await create_tenant(registry, client_key="c1", shared_secret="s1")
        disabled = await registry.handle_disable("c1")
        assert disabled.shared_secret == "s1"

    async def test_enable_unknown(self, registry):
        with pytest.raises(NotFoundError):
            await registry.handle_enable("nope")

    async def test_disable_uninstalled(self, registry):
        await create_tenant(registry, client_key="c1")
        await registry.handle_uninstall("c1")
        with pytest.raises(InvalidStateError):
            await registry.handle_disable("c1")
        with pytest.raises(InvalidStateError):
            await registry.handle_enable("c1")


class TestHistory:
    async def test_events_recorded_in_order(self, registry):
        await create_tenant(registry, client_key="c1")
        await create_tenant(registry, client_key="c1", shared_secret="s2")
        await registry.handle_disable("c1")
        await registry.handle_enable("c1")
        await registry.handle_uninstall("c1")
        await create_tenant(registry, client_key="c1")

        events = await registry.history("c1")
        assert [e.event_type for e in events] == [
            "installed", "installed", "disabled", "enabled", "uninstalled", "installed",
        ]
        assert events[0].detail["created"] is True
        assert events[1].detail["rotation"] is True
        assert events[5].detail["reinstall"] is True

    async def test_history_never_holds_credentials(self, registry):
        await create_tenant(registry, client_key="c1", shared_secret="s-very-secret")
        events = await registry.history("c1")
        assert "s-very-secret" not in repr([e.detail for e in events])
        assert events[0].detail["credential_modes"] == ["shared_secret"]

    async def test_history_unknown(self, registry):
        with pytest.raises(NotFoundError):
            await registry.history("nope")


class TestLifecycleExample:
    async def test_install_rotate_uninstall(self, registry):
        await registry.handle_install(
            tenant_data(client_key="c1", shared_secret="s1", base_url="https://a.example")
        )
        tenant = await registry.lookup("c1")
        assert tenant.shared_secret == "s1"
        assert tenant.state == "enabled"

        await registry.handle_install(tenant_data(client_key="c1", shared_secret="s2"))
        assert (await registry.lookup("c1")).shared_secret == "s2"

        await registry.handle_uninstall("c1")
        with pytest.raises(NotFoundError):
            await registry.lookup("c1")
