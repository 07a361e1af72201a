"""
Request Context Middleware — resolves tenant, user and organization per request.

For every request under the lifecycle API prefix:
  1. Tenant is resolved (X-Tenant-ID → TENANT_ID env → DEFAULT_TENANT_ID)
     and checked against the allow-list. A bad identifier ends the request
     with 400 before any database work.
  2. g.tenant_id, g.user_id and g.organization_id are set for handlers,
     the rate-limit key and the logging filter.

Chain order:
  timing.py  →  request_context.py  →  lifecycle blueprint
"""

import logging

from flask import g, request

from app.core.exceptions import TenantIdentifierError
from app.tenant import resolve_tenant, validate_tenant_id
from app.utils.errors import E, api_error
from app.utils.helpers import as_int
from app.utils.route_table import RouteContext

logger = logging.getLogger(__name__)

CONTEXT_PREFIXES = ("/api/v1/plugins/",)


def build_route_context(path: str, body: dict) -> RouteContext:
    """Collect the ambient request data into a RouteContext."""
    upload = None
    uploaded = request.files.get("file") if request.files else None
    if uploaded is not None:
        upload = {
            "name": uploaded.filename,
            "mimetype": uploaded.mimetype,
            "size": uploaded.content_length,
        }
    return RouteContext(
        tenant_id=g.tenant_id,
        user_id=g.user_id,
        organization_id=g.organization_id,
        method=request.method,
        path=path,
        query=request.args.to_dict(),
        body=body,
        file=upload,
    )


def init_request_context(app):
    """Register the request context hook."""

    @app.before_request
    def _request_context():
        g.tenant_id = None
        g.user_id = as_int(request.headers.get("X-User-Id"))
        g.organization_id = as_int(request.headers.get("X-Organization-Id"))

        if not request.path.startswith(CONTEXT_PREFIXES):
            return None

        try:
            g.tenant_id = validate_tenant_id(resolve_tenant())
        except TenantIdentifierError as exc:
            return api_error(E.TENANT_INVALID, str(exc), details=exc.details)
        return None

    logger.info("Request context middleware installed")
