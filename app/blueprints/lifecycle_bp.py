"""
Model Lifecycle — HTTP surface.

Blueprint: lifecycle_bp
Prefix: /api/v1/plugins/model-lifecycle

Every request under the prefix goes through one catch-all view into the
route table below. Handlers receive a RouteContext and return a
RouteResponse; they never catch service exceptions.

Endpoints:
  Catalogue:
    GET    /config                                   -- Phases with nested items (?includeInactive)
    POST   /phases                                   -- Create phase
    PUT    /phases/reorder                           -- Reorder phases {orderedIds}
    PUT/DELETE /phases/:id                           -- Update / delete phase
    POST   /phases/:phaseId/items                    -- Create item
    PUT    /phases/:phaseId/items/reorder            -- Reorder items {orderedIds}
    PUT/DELETE /items/:id                            -- Update / delete item

  Tracked entity:
    GET    /models/:id/lifecycle                     -- Catalogue + values + files
    GET    /models/:id/lifecycle/progress            -- Completion statistics
    GET    /models/:id/lifecycle/history             -- Change history (?itemId&limit&offset)
    PUT    /models/:id/lifecycle/items/:itemId       -- Upsert value
    POST   /models/:id/lifecycle/items/:itemId/files             -- Attach file {fileId}
    DELETE /models/:id/lifecycle/items/:itemId/files/:fileId     -- Detach file
    POST   /models/:id/lifecycle/items/:itemId/approvals         -- Add approver {userId}
    PUT    /models/:id/lifecycle/items/:itemId/approvals/:approverId  -- Decide {status}
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import MethodNotAllowed, NotFound

from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    ProvisioningError,
    ValidationError,
)
from app.middleware.request_context import build_route_context
from app.services import (
    lifecycle_definition_service as definitions,
    lifecycle_file_service as files,
    lifecycle_history_service as history,
    lifecycle_progress_service as progress,
    lifecycle_value_service as values,
)
from app.utils.errors import E, api_error, exception_response
from app.utils.helpers import as_int, parse_bool
from app.utils.route_table import RouteContext, RouteResponse, RouteTable

logger = logging.getLogger(__name__)

LIFECYCLE_PREFIX = "/api/v1/plugins/model-lifecycle"

lifecycle_bp = Blueprint("lifecycle", __name__, url_prefix=LIFECYCLE_PREFIX)

_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def _ok(data, status: int = 200) -> RouteResponse:
    return RouteResponse(status=status, data=data)


# ── Catalogue ────────────────────────────────────────────────────────────

def handle_get_config(ctx: RouteContext) -> RouteResponse:
    include_inactive = parse_bool(ctx.query.get("includeInactive"))
    return _ok(definitions.list_config(ctx.tenant_id, include_inactive=include_inactive))


def handle_create_phase(ctx: RouteContext) -> RouteResponse:
    return _ok(definitions.create_phase(ctx.tenant_id, ctx.body), 201)


def handle_update_phase(ctx: RouteContext) -> RouteResponse:
    return _ok(definitions.update_phase(ctx.tenant_id, ctx.params["id"], ctx.body))


def handle_delete_phase(ctx: RouteContext) -> RouteResponse:
    definitions.delete_phase(ctx.tenant_id, ctx.params["id"])
    return _ok({"success": True})


def handle_reorder_phases(ctx: RouteContext) -> RouteResponse:
    definitions.reorder_phases(ctx.tenant_id, ctx.body.get("orderedIds"))
    return _ok({"success": True})


def handle_create_item(ctx: RouteContext) -> RouteResponse:
    return _ok(definitions.create_item(ctx.tenant_id, ctx.params["phaseId"], ctx.body), 201)


def handle_update_item(ctx: RouteContext) -> RouteResponse:
    return _ok(definitions.update_item(ctx.tenant_id, ctx.params["id"], ctx.body))


def handle_delete_item(ctx: RouteContext) -> RouteResponse:
    definitions.delete_item(ctx.tenant_id, ctx.params["id"])
    return _ok({"success": True})


def handle_reorder_items(ctx: RouteContext) -> RouteResponse:
    definitions.reorder_items(ctx.tenant_id, ctx.params["phaseId"], ctx.body.get("orderedIds"))
    return _ok({"success": True})


# ── Tracked entity ───────────────────────────────────────────────────────

def handle_get_lifecycle(ctx: RouteContext) -> RouteResponse:
    return _ok(values.get_lifecycle(ctx.tenant_id, ctx.params["id"]))


def handle_get_progress(ctx: RouteContext) -> RouteResponse:
    return _ok(progress.get_progress(ctx.tenant_id, ctx.params["id"]))


def handle_get_history(ctx: RouteContext) -> RouteResponse:
    limit = as_int(ctx.query.get("limit"))
    offset = as_int(ctx.query.get("offset"))
    return _ok(history.list_history(
        ctx.tenant_id,
        ctx.params["id"],
        item_id=as_int(ctx.query.get("itemId")),
        limit=limit if limit is not None else 100,
        offset=offset or 0,
    ))


def handle_upsert_value(ctx: RouteContext) -> RouteResponse:
    return _ok(values.upsert_value(
        ctx.tenant_id, ctx.params["id"], ctx.params["itemId"], ctx.body, user_id=ctx.user_id,
    ))


def handle_add_file(ctx: RouteContext) -> RouteResponse:
    file_id = ctx.body.get("fileId")
    if isinstance(file_id, str):
        file_id = as_int(file_id)
    return _ok(files.add_file(
        ctx.tenant_id, ctx.params["id"], ctx.params["itemId"], file_id, user_id=ctx.user_id,
    ), 201)


def handle_remove_file(ctx: RouteContext) -> RouteResponse:
    return _ok(files.remove_file(
        ctx.tenant_id, ctx.params["id"], ctx.params["itemId"], ctx.params["fileId"],
        user_id=ctx.user_id,
    ))


def handle_add_approver(ctx: RouteContext) -> RouteResponse:
    return _ok(values.add_approver(
        ctx.tenant_id, ctx.params["id"], ctx.params["itemId"], ctx.body.get("userId"),
        user_id=ctx.user_id,
    ), 201)


def handle_decide_approval(ctx: RouteContext) -> RouteResponse:
    return _ok(values.decide_approval(
        ctx.tenant_id, ctx.params["id"], ctx.params["itemId"], ctx.params["approverId"],
        ctx.body.get("status"), user_id=ctx.user_id,
    ))


ROUTES = {
    # Catalogue
    "GET /config": handle_get_config,
    "POST /phases": handle_create_phase,
    "PUT /phases/reorder": handle_reorder_phases,
    "PUT /phases/:id": handle_update_phase,
    "DELETE /phases/:id": handle_delete_phase,
    "POST /phases/:phaseId/items": handle_create_item,
    "PUT /phases/:phaseId/items/reorder": handle_reorder_items,
    "PUT /items/:id": handle_update_item,
    "DELETE /items/:id": handle_delete_item,
    # Tracked entity
    "GET /models/:id/lifecycle": handle_get_lifecycle,
    "GET /models/:id/lifecycle/progress": handle_get_progress,
    "GET /models/:id/lifecycle/history": handle_get_history,
    "PUT /models/:id/lifecycle/items/:itemId": handle_upsert_value,
    "POST /models/:id/lifecycle/items/:itemId/files": handle_add_file,
    "DELETE /models/:id/lifecycle/items/:itemId/files/:fileId": handle_remove_file,
    "POST /models/:id/lifecycle/items/:itemId/approvals": handle_add_approver,
    "PUT /models/:id/lifecycle/items/:itemId/approvals/:approverId": handle_decide_approval,
}

ROUTE_TABLE = RouteTable(ROUTES)


# ── Flask entry point ────────────────────────────────────────────────────

def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        if request.is_json and request.get_data():
            raise ValidationError("Malformed JSON body", details={"body": "must be valid JSON"})
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "must be an object"})
    return body


@lifecycle_bp.route("/", defaults={"subpath": ""}, methods=_METHODS)
@lifecycle_bp.route("/<path:subpath>", methods=_METHODS)
def dispatch_lifecycle_route(subpath):
    """Forward the request to the route table and render its response."""
    try:
        ctx = build_route_context("/" + subpath, _json_body())
        response = ROUTE_TABLE.dispatch(ctx)
    except NotFound:
        return api_error(E.NOT_FOUND, f"No route for {request.method} /{subpath}")
    except MethodNotAllowed:
        return api_error(E.METHOD_NOT_ALLOWED, f"Method {request.method} not allowed on /{subpath}")
    except (NotFoundError, ValidationError, ConflictError, ProvisioningError) as exc:
        if isinstance(exc, ProvisioningError):
            logger.error("Provisioning error on %s /%s: %s", request.method, subpath, exc)
        return exception_response(exc)
    except Exception:
        logger.exception("Unhandled error on %s /%s", request.method, subpath)
        return api_error(E.INTERNAL, "Internal server error")
    return jsonify(response.data), response.status
