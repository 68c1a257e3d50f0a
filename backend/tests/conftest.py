"""
Pytest fixtures for store, façade, service and API tests.

Every test gets a fresh registry and its own SQLite file.
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from intercamb.database import DocumentStore, QueryFacade, build_default_registry
from intercamb.database.registry import EntityRegistry


@pytest.fixture
def registry() -> EntityRegistry:
    return build_default_registry()


@pytest.fixture
def store(tmp_path, registry) -> DocumentStore:
    store = DocumentStore(tmp_path / "intercamb-test.db", registry)
    store.ensure_collections()
    return store


@pytest.fixture
def queries(registry, store) -> QueryFacade:
    return QueryFacade(registry, store)


@pytest.fixture
def app(tmp_path):
    from intercamb.main import create_app
    return create_app(tmp_path / "intercamb-api.db")


@pytest.fixture
def client(app):
    """Test client for the FastAPI app (runs the lifespan)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def base_url():
    """Base URL for API v1 endpoints."""
    return "/api/v1"


@pytest.fixture
def seed(client):
    """Insert documents straight into the API's store."""
    store = client.app.state.queries.store

    def _seed(entity_type, *docs):
        return asyncio.run(store.insert_many(entity_type, docs))

    return _seed
