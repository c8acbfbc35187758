"""Registry exception hierarchy.

Every error carries a human-readable ``message`` and a stable machine
``code`` that a transport adapter can map onto its own status codes.
Messages name client keys and field names, never credential values.
"""


class RegistryError(Exception):
    """Base exception for all registry errors."""

    retryable = False

    def __init__(self, message: str = "", code: str = "REGISTRY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(RegistryError):
    """Raised when a lifecycle payload is missing fields or malformed."""

    def __init__(self, message: str = "Invalid payload", fields: list[str] | None = None):
        super().__init__(message, code="VALIDATION_ERROR")
        self.fields = fields or []


class ConflictError(RegistryError):
    """Raised when credential rotation is disabled and a tenant re-installs."""

    def __init__(self, message: str = "Credential rotation is not allowed"):
        super().__init__(message, code="CONFLICT")


class NotFoundError(RegistryError):
    """Raised when no tenant exists for a client key."""

    def __init__(self, message: str = "Tenant not found"):
        super().__init__(message, code="NOT_FOUND")


class InvalidStateError(RegistryError):
    """Raised when an operation is not valid for the tenant's lifecycle state."""

    def __init__(self, message: str = "Operation not valid for tenant state"):
        super().__init__(message, code="INVALID_STATE")


class CredentialMissingError(RegistryError):
    """Raised when a tenant has neither a shared secret nor a public key."""

    def __init__(self, message: str = "Tenant has no stored key material"):
        super().__init__(message, code="CREDENTIAL_MISSING")


class StorageTimeoutError(RegistryError):
    """Raised when a storage call exceeds the configured timeout.

    Transient; callers may retry with backoff.
    """

    retryable = True

    def __init__(self, message: str = "Storage operation timed out"):
        super().__init__(message, code="STORAGE_TIMEOUT")


class AuthenticationError(RegistryError):
    """Raised when an inbound JWT fails verification."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTHENTICATION_FAILED")
