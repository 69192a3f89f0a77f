# tests/test_app.py

"""
Tests for application startup.
"""

from fastapi.testclient import TestClient
from starlette.routing import BaseRoute, Mount
from starlette.applications import Starlette

from main import create_app


class BareRoute(BaseRoute):
    """A route with neither path nor methods."""


def test_startup_lists_routes_without_path_or_methods():
    app = create_app()
    app.router.routes.append(BareRoute())
    app.router.routes.append(Mount("/static", app=Starlette()))

    with TestClient(app) as client:
        response = client.get("/api/auth/me")

    assert response.status_code == 401
