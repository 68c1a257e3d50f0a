"""Configuration, store construction and request dependencies for the API."""
import os
from pathlib import Path

from fastapi import Depends, Request

from .database import DocumentStore, QueryFacade, build_default_registry
from .services import ClientService, CompanyService, InstitutionService

# Database path - configurable via env var, defaults to intercamb.db next to the package
DB_PATH = Path(os.environ.get("DATABASE_PATH", str(Path(__file__).parent.parent / "intercamb.db")))

# Query timeout in seconds (configurable via environment variable)
DB_QUERY_TIMEOUT = int(os.environ.get("DB_QUERY_TIMEOUT", "30"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def create_query_facade(db_path: Path | None = None) -> QueryFacade:
    """Build the registry, open the store and make sure every collection exists."""
    registry = build_default_registry()
    store = DocumentStore(db_path or DB_PATH, registry, timeout=DB_QUERY_TIMEOUT)
    store.ensure_collections()
    return QueryFacade(registry, store)


def get_queries(request: Request) -> QueryFacade:
    return request.app.state.queries


def get_client_service(queries: QueryFacade = Depends(get_queries)) -> ClientService:
    return ClientService(queries)


def get_company_service(queries: QueryFacade = Depends(get_queries)) -> CompanyService:
    return CompanyService(queries)


def get_institution_service(queries: QueryFacade = Depends(get_queries)) -> InstitutionService:
    return InstitutionService(queries)
