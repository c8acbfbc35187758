"""Shared test fixtures for connect-tenants."""

import pytest

from connect_tenants.common.database import DatabaseManager
from connect_tenants.tenants.service import TenantRegistry

from factories import make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def registry(db, settings):
    return TenantRegistry(db, settings)
