"""
Shared pytest fixtures for the Model Lifecycle test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite on a StaticPool)
    - tenant: Per-test install/uninstall of tenant "acme" (autouse)
    - client: Flask test client (function-scoped)
    - headers: Default request headers for tenant "acme"
    - phase / item helpers for building catalogue rows via the services
"""

import pytest

from app import create_app
from app.services import lifecycle_definition_service as definitions
from app.services.lifecycle_schema_service import install, uninstall

TENANT = "acme"
API = "/api/v1/plugins/model-lifecycle"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(autouse=True)
def tenant(app):
    """Per-test: provision tenant "acme" with the default catalogue, drop it afterwards."""
    with app.app_context():
        install(TENANT)
        yield TENANT
        uninstall(TENANT)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def headers():
    return {"X-Tenant-ID": TENANT, "X-User-Id": "7", "X-Organization-Id": "1"}


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def empty_catalogue(tenant):
    """Remove the seeded phases so tests start from a blank catalogue."""
    for phase in definitions.list_config(tenant, include_inactive=True):
        definitions.delete_phase(tenant, phase["id"])
    return tenant


@pytest.fixture()
def phase(empty_catalogue):
    return definitions.create_phase(TENANT, {"name": "Registration"})


@pytest.fixture()
def text_item(phase):
    return definitions.create_item(
        TENANT, phase["id"], {"name": "Owner notes", "item_type": "text", "is_required": True},
    )


@pytest.fixture()
def documents_item(phase):
    return definitions.create_item(
        TENANT, phase["id"],
        {"name": "Model card", "item_type": "documents", "config": {"maxFiles": 2}},
    )


@pytest.fixture()
def approval_item(phase):
    return definitions.create_item(
        TENANT, phase["id"],
        {"name": "Sign-off", "item_type": "approval", "config": {"requiredApprovers": 2}},
    )
