"""
Route table — "METHOD /path/:param" strings mapped onto handler callables.

Patterns are compiled once into a werkzeug ``Map``; ``:name`` segments
become bounded integer converters, so ``PUT /phases/reorder`` and
``PUT /phases/:id`` never shadow each other.

    table = RouteTable({"GET /config": handle_get_config})
    response = table.dispatch(RouteContext(tenant_id="acme", method="GET", path="/config"))

Unknown paths raise ``werkzeug.exceptions.NotFound``; a known path with
the wrong verb raises ``MethodNotAllowed``. Handlers keep no state
between calls.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from werkzeug.routing import Map, Rule

logger = logging.getLogger(__name__)

_PARAM_RE = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")

# Ids are stored as 32-bit INTEGER columns
MAX_PARAM_ID = 2147483647


@dataclass(frozen=True)
class RouteContext:
    """Ambient request data handed to every handler."""
    tenant_id: str
    user_id: int | None = None
    organization_id: int | None = None
    method: str = "GET"
    path: str = "/"
    params: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)
    file: dict[str, Any] | None = None


@dataclass(frozen=True)
class RouteResponse:
    status: int
    data: Any


Handler = Callable[[RouteContext], RouteResponse]


def pattern_to_rule(pattern: str) -> str:
    """Translate ``/models/:id/files`` into ``/models/<int(max=...):id>/files``."""
    return _PARAM_RE.sub(rf"<int(max={MAX_PARAM_ID}):\1>", pattern)


class RouteTable:
    """Fixed dispatch table built from a ``{"METHOD /pattern": handler}`` dict."""

    def __init__(self, routes: dict[str, Handler]):
        self._handlers: dict[str, Handler] = {}
        rules = []
        for key, handler in routes.items():
            method, _, pattern = key.partition(" ")
            method = method.upper()
            if not pattern.startswith("/"):
                raise ValueError(f"Route {key!r} must be 'METHOD /path'")
            endpoint = f"{method} {pattern}"
            self._handlers[endpoint] = handler
            rules.append(Rule(pattern_to_rule(pattern), methods=[method], endpoint=endpoint))
        # strict_slashes off: no redirects, a path either matches or not
        self._map = Map(rules, strict_slashes=False, merge_slashes=False)

    @property
    def routes(self) -> list[str]:
        return list(self._handlers)

    def match(self, method: str, path: str) -> tuple[Handler, dict]:
        """Resolve a handler and its path parameters.

        Raises:
            NotFound: No pattern matches the path.
            MethodNotAllowed: The path matches, the verb does not.
        """
        adapter = self._map.bind("localhost")
        endpoint, params = adapter.match(path or "/", method=method.upper())
        return self._handlers[endpoint], params

    def dispatch(self, ctx: RouteContext) -> RouteResponse:
        handler, params = self.match(ctx.method, ctx.path)
        logger.debug("Dispatch %s %s -> %s params=%s", ctx.method, ctx.path, handler.__name__, params)
        return handler(replace(ctx, params=params))
