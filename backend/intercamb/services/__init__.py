"""
Service layer for the Intercamb backend.

Domain services compose the query façade with domain filters and own the
write paths. Routers become thin: parse request → call service → return response.
"""
from .base_service import BaseService, CursorPage
from .client_service import ClientService
from .company_service import CompanyService
from .institution_service import InstitutionService, SyncResult

__all__ = [
    "BaseService",
    "ClientService",
    "CompanyService",
    "CursorPage",
    "InstitutionService",
    "SyncResult",
]
