"""
Shared test fixtures for the OINSTEC forms test suite.

Provides the packaged seed templates and a TestClient wired to a
fresh template repository and session store.
"""

from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from oinstec.api.routes import configure_routes, router
from oinstec.core.schema import FormTemplate
from oinstec.core.session import SessionStore
from oinstec.core.templates import TemplateRepository, load_template_file

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


@pytest.fixture
def inspection_template() -> FormTemplate:
    """The standard GNV cylinder inspection template."""
    return load_template_file(SCHEMAS_DIR / "inspeccion_gnv_2024.json")


@pytest.fixture
def registration_template() -> FormTemplate:
    """The YAML cylinder registration template."""
    return load_template_file(SCHEMAS_DIR / "registro_cilindro.yaml")


@pytest.fixture
def template_repo() -> TemplateRepository:
    repo = TemplateRepository()
    repo.load_directory(SCHEMAS_DIR)
    return repo


@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore(timeout_seconds=3600)


@pytest.fixture
def client(template_repo, session_store) -> TestClient:
    """A TestClient for the API routes mounted under /api."""
    app = FastAPI()
    configure_routes(template_repo, session_store)
    app.include_router(router, prefix="/api")
    return TestClient(app)
