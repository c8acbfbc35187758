"""SQLAlchemy models for tenants and their lifecycle trail."""

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from connect_tenants.common.models import Base, SoftDeleteMixin, TimestampMixin, generate_uuid


class TenantModel(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    addon_key: Mapped[str] = mapped_column(String(255), nullable=False)
    client_key: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    public_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    shared_secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    base_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    product_type: Mapped[str] = mapped_column(String(50), nullable=False, default="other")
    server_version: Mapped[str] = mapped_column(String(50), default="")
    plugin_version: Mapped[str] = mapped_column(String(50), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    oauth_client_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False, default="installed")
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class TenantEventModel(Base, TimestampMixin):
    """Append-only record of applied lifecycle events. Holds no credentials."""

    __tablename__ = "tenant_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    detail: Mapped[dict] = mapped_column(JSON, default=dict)
