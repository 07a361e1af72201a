"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Phase not found")
    return api_error(E.VALIDATION_REQUIRED, "fileId is required")
    return exception_response(exc)   # domain exception -> JSON error
"""

from __future__ import annotations

from flask import jsonify

from app.core.exceptions import (
    ConflictError,
    NoFieldsToUpdateError,
    NotFoundError,
    ProvisioningError,
    TenantIdentifierError,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (all ``ERR_`` prefixed)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NO_FIELDS = "ERR_NO_FIELDS_TO_UPDATE"
    TENANT_INVALID = "ERR_TENANT_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Method – HTTP 405
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Content type – HTTP 415
    UNSUPPORTED_MEDIA_TYPE = "ERR_UNSUPPORTED_MEDIA_TYPE"

    # Throttling – HTTP 429
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    PROVISIONING = "ERR_PROVISIONING"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NO_FIELDS: 400,
    E.TENANT_INVALID: 400,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_STATE: 409,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.RATE_LIMITED: 429,
    E.PROVISIONING: 500,
    E.INTERNAL: 500,
}

# Most specific first; subclasses precede ValidationError.
_EXCEPTION_CODES: tuple[tuple[type[Exception], str], ...] = (
    (NoFieldsToUpdateError, E.NO_FIELDS),
    (TenantIdentifierError, E.TENANT_INVALID),
    (ValidationError, E.VALIDATION_INVALID),
    (NotFoundError, E.NOT_FOUND),
    (ConflictError, E.CONFLICT_STATE),
    (ProvisioningError, E.PROVISIONING),
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Field-level breakdown (validation errors, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_code_for(exc: Exception) -> str | None:
    """Error code of a domain exception, or None for anything unexpected."""
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            return code
    return None


def exception_response(exc: Exception):
    """Map a domain exception onto ``api_error``.

    Raises the exception again when it is not a domain exception so the
    caller's generic handler sees it.
    """
    code = error_code_for(exc)
    if code is None:
        raise exc
    return api_error(code, str(exc), details=getattr(exc, "details", None))
