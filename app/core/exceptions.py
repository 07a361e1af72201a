"""
Service-wide exception hierarchy.

Services raise these types; route handlers let them propagate and the
lifecycle blueprint maps them to HTTP responses in one place.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Phase", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the tenant.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Phase", "Item").
        resource_id: The PK that was looked up.
        tenant_id: Optional tenant namespace that was searched.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: str | None = None,
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
    """Raised when input fails validation in the service layer.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NoFieldsToUpdateError(ValidationError):
    """Raised when a partial update carries none of the updatable fields."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__("No fields to update")


class TenantIdentifierError(ValidationError):
    """Raised when a tenant identifier fails the allow-list check.

    No connection is opened and no statement is issued once this is raised.
    """

    def __init__(self, tenant_id) -> None:
        self.tenant_id = tenant_id
        super().__init__(
            "Invalid tenant identifier",
            details={"tenant_id": "must be 1-30 characters of A-Z, a-z, 0-9 or _"},
        )


class ConflictError(Exception):
    """Raised when an operation conflicts with the current state of a resource.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The field whose state blocks the operation.
        value: The conflicting value.
        message: Optional override for the default "already exists" text.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ProvisioningError(Exception):
    """Raised when installing or uninstalling the tenant tables fails.

    The message carries the stage prefix ("Installation failed: ...",
    "Uninstallation failed: ..."); the original error is chained.
    """

    def __init__(self, stage: str, cause: Exception) -> None:
        self.stage = stage
        super().__init__(f"{stage} failed: {cause}")
