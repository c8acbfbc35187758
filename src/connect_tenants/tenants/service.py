"""Tenant registry — lifecycle events, credential lookups, signature checks."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from connect_tenants.common.config import CREDENTIAL_MODES, ConnectSettings
from connect_tenants.common.database import DatabaseManager
from connect_tenants.common.exceptions import (
    ConflictError,
    CredentialMissingError,
    InvalidStateError,
    NotFoundError,
    StorageTimeoutError,
    ValidationError,
)
from connect_tenants.common.logging import get_logger
from connect_tenants.common.models import utcnow
from connect_tenants.signing import verifier
from connect_tenants.tenants.models import TenantEventModel, TenantModel
from connect_tenants.tenants.schemas import (
    DISABLED,
    ENABLED,
    INSTALLED,
    REPLACED_FIELDS,
    ROTATED_FIELDS,
    UNINSTALLED,
    InstallEvent,
    TenantEventRecord,
    TenantSnapshot,
    parse_install_event,
)

logger = get_logger("tenants")

T = TypeVar("T")


def ensure_usable(tenant: TenantSnapshot) -> None:
    """Raise InvalidStateError unless the tenant is installed and enabled."""
    if tenant.is_deleted:
        raise InvalidStateError(f"Tenant {tenant.client_key!r} is uninstalled")
    if not tenant.enabled:
        raise InvalidStateError(f"Tenant {tenant.client_key!r} is disabled")


def select_credential(tenant: TenantSnapshot, precedence: list[str]) -> tuple[str, str]:
    """Return ``(mode, key_material)`` for the first stored mode in ``precedence``."""
    modes = tenant.credential_modes(precedence)
    if not modes:
        raise CredentialMissingError(
            f"Tenant {tenant.client_key!r} has no stored key material"
        )
    return modes[0], getattr(tenant, modes[0])


class TenantRegistry:
    """Tenant records keyed by client key.

    Mutations for one client key are serialized by a per-key lock held for
    the whole transaction, commit included. Every operation, lock wait
    included, is bounded by ``settings.storage_timeout``.
    """

    def __init__(self, db: DatabaseManager, settings: ConnectSettings):
        self.db = db
        self.settings = settings
        # client_key -> [lock, holders and waiters]
        self._locks: dict[str, list] = {}

    # ── Lifecycle events ──

    async def handle_install(
        self, event: InstallEvent | Mapping[str, Any]
    ) -> TenantSnapshot:
        """Create, rotate or reinstall the tenant named by ``event``."""
        event = parse_install_event(event)

        async def apply(session: AsyncSession) -> TenantSnapshot:
            tenant = await self._get_row(session, event.client_key)
            if tenant is None:
                tenant = TenantModel(
                    addon_key=event.addon_key,
                    client_key=event.client_key,
                    event_type=INSTALLED,
                    enabled=True,
                    **{field: getattr(event, field) for field in REPLACED_FIELDS},
                )
                session.add(tenant)
                detail = {"created": True}
            else:
                if tenant.addon_key != event.addon_key:
                    raise ValidationError(
                        f"addon_key of tenant {event.client_key!r} cannot change",
                        fields=["addon_key"],
                    )
                if tenant.is_deleted:
                    fields = REPLACED_FIELDS
                    tenant.is_deleted = False
                    tenant.deleted_at = None
                    tenant.enabled = True
                    detail = {"reinstall": True}
                else:
                    if not self.settings.allow_rotation:
                        raise ConflictError(
                            f"Tenant {event.client_key!r} is already installed "
                            "and credential rotation is disabled"
                        )
                    fields = ROTATED_FIELDS
                    detail = {"rotation": True}
                for field in fields:
                    setattr(tenant, field, getattr(event, field))
                tenant.event_type = INSTALLED
            detail["base_url"] = event.base_url
            detail["credential_modes"] = [
                mode for mode in CREDENTIAL_MODES if getattr(event, mode)
            ]
            try:
                return await self._record(session, tenant, INSTALLED, detail)
            except IntegrityError as exc:
                raise ConflictError(
                    f"Tenant {event.client_key!r} was created by a concurrent writer"
                ) from exc

        return await self._mutate("install", event.client_key, apply)

    async def handle_uninstall(self, client_key: str) -> TenantSnapshot:
        """Soft-delete the tenant. Repeated calls are a no-op."""

        async def apply(session: AsyncSession) -> TenantSnapshot:
            tenant = await self._require_row(session, client_key)
            if tenant.is_deleted:
                return TenantSnapshot.model_validate(tenant)
            tenant.is_deleted = True
            tenant.deleted_at = utcnow()
            tenant.event_type = UNINSTALLED
            return await self._record(session, tenant, UNINSTALLED, {})

        return await self._mutate("uninstall", client_key, apply)

    async def handle_enable(self, client_key: str) -> TenantSnapshot:
        return await self._set_enabled(client_key, True)

    async def handle_disable(self, client_key: str) -> TenantSnapshot:
        return await self._set_enabled(client_key, False)

    async def _set_enabled(self, client_key: str, enabled: bool) -> TenantSnapshot:
        event_type = ENABLED if enabled else DISABLED

        async def apply(session: AsyncSession) -> TenantSnapshot:
            tenant = await self._require_row(session, client_key)
            if tenant.is_deleted:
                logger.warning(
                    "Rejected lifecycle event for uninstalled tenant",
                    extra={"client_key": client_key, "event_type": event_type},
                )
                raise InvalidStateError(
                    f"Cannot apply '{event_type}' to uninstalled tenant {client_key!r}"
                )
            tenant.enabled = enabled
            tenant.event_type = event_type
            return await self._record(session, tenant, event_type, {})

        return await self._mutate(event_type, client_key, apply)

    # ── Reads ──

    async def lookup(
        self, client_key: str, include_deleted: bool = False
    ) -> TenantSnapshot:
        """Current snapshot of a tenant; uninstalled tenants need ``include_deleted``."""

        async def run() -> TenantSnapshot:
            async with self.db.get_session() as session:
                tenant = await self._get_row(session, client_key)
                if tenant is None or (tenant.is_deleted and not include_deleted):
                    raise NotFoundError(f"No tenant for client key {client_key!r}")
                return TenantSnapshot.model_validate(tenant)

        return await self._bounded("lookup", client_key, run())

    async def list_tenants(self, include_deleted: bool = False) -> list[TenantSnapshot]:
        async def run() -> list[TenantSnapshot]:
            async with self.db.get_session() as session:
                query = select(TenantModel).order_by(TenantModel.client_key)
                if not include_deleted:
                    query = query.where(TenantModel.is_deleted == False)  # noqa: E712
                result = await session.execute(query)
                return [TenantSnapshot.model_validate(t) for t in result.scalars().all()]

        return await self._bounded("list", "*", run())

    async def history(self, client_key: str) -> list[TenantEventRecord]:
        """Applied lifecycle events for a tenant, oldest first."""

        async def run() -> list[TenantEventRecord]:
            async with self.db.get_session() as session:
                await self._require_row(session, client_key)
                result = await session.execute(
                    select(TenantEventModel)
                    .where(TenantEventModel.client_key == client_key)
                    .order_by(TenantEventModel.id.asc())
                )
                return [TenantEventRecord.model_validate(e) for e in result.scalars().all()]

        return await self._bounded("history", client_key, run())

    # ── Verification ──

    async def verify_signature(
        self, client_key: str, request_digest: str, signature: str
    ) -> bool:
        """Check ``signature`` over ``request_digest`` with the tenant's stored key.

        The mode is the first entry of ``settings.credential_precedence`` the
        tenant has key material for.
        """
        tenant = await self.lookup(client_key, include_deleted=True)
        ensure_usable(tenant)
        mode, key_material = select_credential(tenant, self.settings.credential_precedence)
        valid = verifier.verify(mode, key_material, request_digest, signature)
        if not valid:
            logger.warning(
                "Signature mismatch",
                extra={"client_key": client_key, "mode": mode},
            )
        return valid

    # ── Internal helpers ──

    @asynccontextmanager
    async def _key_lock(self, client_key: str) -> AsyncIterator[None]:
        """Hold the lock for ``client_key``; it is dropped once nobody holds or awaits it."""
        entry = self._locks.get(client_key)
        if entry is None:
            entry = self._locks[client_key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if not entry[1]:
                del self._locks[client_key]

    async def _bounded(self, operation: str, client_key: str, coro: Awaitable[T]) -> T:
        timeout = self.settings.storage_timeout
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except (asyncio.TimeoutError, PoolTimeoutError):
            logger.warning(
                "Storage timeout",
                extra={"operation": operation, "client_key": client_key, "timeout": timeout},
            )
            raise StorageTimeoutError(
                f"{operation} for tenant {client_key!r} timed out after {timeout}s"
            ) from None

    async def _mutate(
        self,
        operation: str,
        client_key: str,
        apply: Callable[[AsyncSession], Awaitable[TenantSnapshot]],
    ) -> TenantSnapshot:
        async def run() -> TenantSnapshot:
            async with self._key_lock(client_key):
                async with self.db.get_session() as session:
                    return await apply(session)

        snapshot = await self._bounded(operation, client_key, run())
        logger.info(
            "Tenant %s", snapshot.event_type,
            extra={"client_key": client_key, "state": snapshot.state},
        )
        return snapshot

    @staticmethod
    async def _get_row(session: AsyncSession, client_key: str) -> TenantModel | None:
        result = await session.execute(
            select(TenantModel).where(TenantModel.client_key == client_key)
        )
        return result.scalar_one_or_none()

    async def _require_row(self, session: AsyncSession, client_key: str) -> TenantModel:
        tenant = await self._get_row(session, client_key)
        if tenant is None:
            raise NotFoundError(f"No tenant for client key {client_key!r}")
        return tenant

    @staticmethod
    async def _record(
        session: AsyncSession,
        tenant: TenantModel,
        event_type: str,
        detail: dict[str, Any],
    ) -> TenantSnapshot:
        """Append the audit row, flush, and snapshot the flushed record."""
        session.add(TenantEventModel(
            client_key=tenant.client_key,
            event_type=event_type,
            detail=detail,
        ))
        await session.flush()
        await session.refresh(tenant)
        return TenantSnapshot.model_validate(tenant)
