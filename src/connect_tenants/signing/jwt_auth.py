"""
Connect JWT authentication.

Hosts sign every request to the add-on with a JWT whose ``iss`` is the
tenant's client key and whose ``qsh`` claim is the SHA-256 of the canonical
request (method, path, sorted query). The same scheme is used for outbound
calls the add-on makes to a tenant, with the add-on key as issuer.
"""

import hashlib
import hmac
import time
from collections import defaultdict
from urllib.parse import parse_qsl, quote, urlsplit

import jwt

from connect_tenants.common.config import ConnectSettings, get_settings
from connect_tenants.common.exceptions import AuthenticationError, CredentialMissingError
from connect_tenants.common.logging import get_logger
from connect_tenants.signing.verifier import SYMMETRIC, load_public_key
from connect_tenants.tenants.schemas import TenantSnapshot
from connect_tenants.tenants.service import TenantRegistry, ensure_usable, select_credential

logger = get_logger("signing.jwt")

# qsh value hosts put in tokens that are not bound to a specific request
CONTEXT_QSH = "context-qsh"

_REQUIRED_CLAIMS = ["iss", "iat", "exp", "qsh"]


def _encode(value: str) -> str:
    return quote(value, safe="")


def canonical_path(path: str) -> str:
    if not path or path == "/":
        return "/"
    if not path.startswith("/"):
        path = "/" + path
    path = path.rstrip("/") or "/"
    return path.replace("&", _encode("&"))


def canonical_query(query: str) -> str:
    params: dict[str, list[str]] = defaultdict(list)
    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == "jwt":
            continue
        params[key].append(value)
    return "&".join(
        f"{_encode(key)}={','.join(_encode(v) for v in sorted(params[key]))}"
        for key in sorted(params)
    )


def canonical_request(method: str, url: str) -> str:
    """``METHOD&path&query`` as hashed into the ``qsh`` claim."""
    parts = urlsplit(url)
    return "&".join([
        method.upper(),
        canonical_path(parts.path),
        canonical_query(parts.query),
    ])


def query_string_hash(method: str, url: str) -> str:
    return hashlib.sha256(canonical_request(method, url).encode("utf-8")).hexdigest()


def encode_token(
    tenant: TenantSnapshot,
    method: str,
    url: str,
    issuer: str,
    ttl: int = 180,
    now: int | None = None,
) -> str:
    """Mint an HS256 token for an outbound request to ``tenant``."""
    if not tenant.shared_secret:
        raise CredentialMissingError(
            f"Tenant {tenant.client_key!r} has no shared secret to sign with"
        )
    issued_at = int(time.time() if now is None else now)
    claims = {
        "iss": issuer,
        "iat": issued_at,
        "exp": issued_at + ttl,
        "qsh": query_string_hash(method, url),
    }
    return jwt.encode(claims, tenant.shared_secret, algorithm="HS256")


class JWTAuthenticator:
    """Authenticates inbound host requests against the tenant registry."""

    def __init__(self, registry: TenantRegistry, settings: ConnectSettings | None = None):
        self.registry = registry
        self.settings = settings or get_settings()

    async def authenticate(
        self,
        token: str,
        method: str,
        url: str,
        allow_context_qsh: bool = False,
    ) -> TenantSnapshot:
        """Return the tenant that signed ``token`` for this request.

        Raises AuthenticationError on a bad token, and the registry's
        NotFoundError / InvalidStateError / CredentialMissingError for
        unknown, disabled or keyless tenants.
        """
        try:
            unverified = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise AuthenticationError("Malformed token") from exc

        client_key = unverified.get("iss")
        if not client_key or not isinstance(client_key, str):
            raise AuthenticationError("Token has no issuer")

        tenant = await self.registry.lookup(client_key, include_deleted=True)
        ensure_usable(tenant)
        mode, key_material = select_credential(tenant, self.settings.credential_precedence)

        if mode == SYMMETRIC:
            key, algorithms = key_material, ["HS256"]
        else:
            try:
                key, algorithms = load_public_key(key_material), ["RS256"]
            except ValueError as exc:
                raise AuthenticationError("Stored public key is unusable") from exc

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=algorithms,
                leeway=self.settings.jwt_leeway,
                options={"require": _REQUIRED_CLAIMS, "verify_aud": False},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token expired") from exc
        except jwt.PyJWTError as exc:
            logger.warning(
                "Rejected token",
                extra={"client_key": client_key, "mode": mode, "reason": type(exc).__name__},
            )
            raise AuthenticationError("Invalid token") from exc

        qsh = str(claims["qsh"])
        if allow_context_qsh and qsh == CONTEXT_QSH:
            return tenant
        expected = query_string_hash(method, url)
        if not hmac.compare_digest(qsh.encode("utf-8", "surrogatepass"), expected.encode("ascii")):
            raise AuthenticationError("Query string hash mismatch")
        return tenant
