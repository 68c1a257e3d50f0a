# API routers
from .clients import router as clients_router
from .companies import router as companies_router
from .institutions import router as institutions_router

__all__ = [
    "clients_router",
    "companies_router",
    "institutions_router",
]
