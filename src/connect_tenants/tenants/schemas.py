"""Pydantic schemas for lifecycle payloads and tenant snapshots."""

from datetime import datetime
from typing import Annotated, Any, Mapping, Optional
from urllib.parse import urlsplit

from pydantic import AliasChoices, BaseModel, Field, StringConstraints, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from connect_tenants.common.exceptions import ValidationError

INSTALLED = "installed"
UNINSTALLED = "uninstalled"
ENABLED = "enabled"
DISABLED = "disabled"

LIFECYCLE_EVENTS: frozenset[str] = frozenset({INSTALLED, UNINSTALLED, ENABLED, DISABLED})

PRODUCT_TYPES: frozenset[str] = frozenset({
    "jira",
    "confluence",
    "bitbucket",
    "compass",
    "statuspage",
    "other",
})

# Fields a re-install of an active tenant overwrites.
ROTATED_FIELDS = ("shared_secret", "public_key", "base_url", "server_version", "plugin_version")

# Fields a re-install of an uninstalled tenant replaces.
REPLACED_FIELDS = ROTATED_FIELDS + ("product_type", "description", "oauth_client_token")

# Credentials are stored byte for byte; every other text field is stripped.
StrippedStr = Annotated[str, StringConstraints(strip_whitespace=True)]


class InstallEvent(BaseModel):
    """An ``installed`` lifecycle payload.

    Accepts snake_case names as well as the camelCase names the host sends
    on the wire (``clientKey``, ``sharedSecret``, ``pluginsVersion``...).
    """

    addon_key: StrippedStr = Field(..., min_length=1, max_length=255, validation_alias=AliasChoices("addon_key", "key"))
    client_key: StrippedStr = Field(..., min_length=1, max_length=255, validation_alias=AliasChoices("client_key", "clientKey"))
    base_url: StrippedStr = Field(..., min_length=1, max_length=2048, validation_alias=AliasChoices("base_url", "baseUrl"))
    shared_secret: Optional[str] = Field(default=None, repr=False, validation_alias=AliasChoices("shared_secret", "sharedSecret"))
    public_key: Optional[str] = Field(default=None, repr=False, validation_alias=AliasChoices("public_key", "publicKey"))
    product_type: StrippedStr = Field(default="other", validation_alias=AliasChoices("product_type", "productType"))
    server_version: StrippedStr = Field(default="", max_length=50, validation_alias=AliasChoices("server_version", "serverVersion"))
    plugin_version: StrippedStr = Field(default="", max_length=50, validation_alias=AliasChoices("plugin_version", "pluginsVersion"))
    description: StrippedStr = ""
    oauth_client_token: Optional[str] = Field(
        default=None, repr=False, validation_alias=AliasChoices("oauth_client_token", "oauthClientId"),
    )
    event_type: StrippedStr = Field(default=INSTALLED, validation_alias=AliasChoices("event_type", "eventType"))

    model_config = {
        "extra": "ignore",
        "frozen": True,
        "coerce_numbers_to_str": True,
    }

    @field_validator("shared_secret", "public_key", "oauth_client_token")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value if value and value.strip() else None

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError("must be an absolute http(s) URL")
        return value.rstrip("/")

    @field_validator("product_type")
    @classmethod
    def _check_product_type(cls, value: str) -> str:
        value = value.lower()
        if value not in PRODUCT_TYPES:
            raise ValueError(f"must be one of {', '.join(sorted(PRODUCT_TYPES))}")
        return value

    @field_validator("event_type")
    @classmethod
    def _check_event_type(cls, value: str) -> str:
        if value != INSTALLED:
            raise ValueError(f"must be '{INSTALLED}'")
        return value

    @model_validator(mode="after")
    def _require_key_material(self) -> "InstallEvent":
        if not self.shared_secret and not self.public_key:
            raise ValueError("one of shared_secret or public_key is required")
        return self


def _field_names() -> dict[str, str]:
    names = {}
    for name, info in InstallEvent.model_fields.items():
        names[name] = name
        if isinstance(info.validation_alias, AliasChoices):
            for choice in info.validation_alias.choices:
                names[str(choice)] = name
    return names


_FIELD_BY_ALIAS = _field_names()


def parse_install_event(payload: Mapping[str, Any] | InstallEvent) -> InstallEvent:
    """Build a validated InstallEvent, raising the registry's ValidationError.

    Error messages name the offending fields only; input values are never
    echoed since they may be credentials.
    """
    if isinstance(payload, InstallEvent):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError("Install payload must be a mapping", fields=[])
    try:
        return InstallEvent.model_validate(dict(payload))
    except PydanticValidationError as exc:
        fields = []
        problems = []
        for error in exc.errors():
            loc = error.get("loc") or ()
            field = _FIELD_BY_ALIAS.get(str(loc[0]), str(loc[0])) if loc else "payload"
            if field not in fields:
                fields.append(field)
            problems.append(f"{field}: {error.get('msg', 'invalid')}")
        raise ValidationError(
            "Invalid install payload — " + "; ".join(problems), fields=fields,
        ) from None


class TenantSnapshot(BaseModel):
    """Immutable view of a tenant record as of one committed transaction."""

    id: str
    addon_key: str
    client_key: str
    public_key: Optional[str] = Field(default=None, repr=False)
    shared_secret: Optional[str] = Field(default=None, repr=False)
    base_url: str
    product_type: str
    server_version: str = ""
    plugin_version: str = ""
    description: StrippedStr = ""
    oauth_client_token: Optional[str] = Field(default=None, repr=False)
    event_type: str
    enabled: bool
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def state(self) -> str:
        """``uninstalled``, ``enabled`` or ``disabled``."""
        if self.is_deleted:
            return UNINSTALLED
        return ENABLED if self.enabled else DISABLED

    @property
    def is_active(self) -> bool:
        return not self.is_deleted

    def credential_modes(self, precedence: list[str] | tuple[str, ...]) -> list[str]:
        """Credential modes with stored key material, in ``precedence`` order."""
        return [mode for mode in precedence if getattr(self, mode, None)]


class TenantEventRecord(BaseModel):
    id: int
    client_key: str
    event_type: str
    detail: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}
