"""
API fixtures: the real app over the seeded repo catalog.

The TestClient is used without a `with` block so the lifespan (and with it the
file-backed `init_db`) never runs; the security config and DB are wired here.
"""
from __future__ import annotations

from pathlib import Path

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from orgauthz.catalog import load_catalog
from orgauthz.db.init_db import seed
from orgauthz.db.session import get_db
from orgauthz.main import app
from orgauthz.security.config import load_security_config

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


@pytest.fixture
def client(db_session):
    seed(db_session, load_catalog(CONFIG_DIR / "org_catalog.yaml"))
    app.state.security_config = load_security_config(CONFIG_DIR / "security_config.yaml")

    def _get_test_db(request: Request):
        authz = getattr(request.state, "authz", None)
        if authz is not None:
            db_session.info["authz"] = authz
        else:
            db_session.info.pop("authz", None)
        try:
            yield db_session
        finally:
            db_session.info.pop("authz", None)

    app.dependency_overrides[get_db] = _get_test_db
    yield TestClient(app)
    app.dependency_overrides.clear()
