"""
Platform-wide exception hierarchy.

Services raise these types; blueprints translate them to HTTP responses
with ``ora.utils.errors.api_error`` so every endpoint reports the same
status code for the same failure.

Usage:
    from ora.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Lifecycle", resource_id=lifecycle_id)
    raise ValidationError("name is required", details={"name": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant lookups, so a
    caller cannot discover records in another tenant.

    Args:
        resource: Human-readable entity name (e.g. "Scan", "Lifecycle").
        resource_id: The id that was looked up. Included in logs and message.
        tenant_id: Optional — the tenant scope that was enforced.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is missing or violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value or clash with
    an active resource (e.g. a second recording session on a lifecycle).

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class VersionConflictError(Exception):
    """Raised when a full-replace write carries a stale version token.

    The caller read version ``expected`` but the stored aggregate is at
    ``actual``; it must reload before writing again. Maps to HTTP 409.
    """

    def __init__(self, resource: str, expected: int, actual: int) -> None:
        self.resource = resource
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{resource} was modified concurrently (expected version {expected}, found {actual})"
        )


class RecordingError(Exception):
    """Raised when a speech-recognition session cannot start or is canceled."""

    def __init__(self, message: str, code: str | int | None = None) -> None:
        self.code = code
        super().__init__(message)


class UpstreamError(Exception):
    """Raised when an external AI call fails and no fallback applies. HTTP 502."""
