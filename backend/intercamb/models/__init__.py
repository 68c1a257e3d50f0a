"""Pydantic request/response models."""
from .client import ClientCreate, ClientUpdate, PaymentOrderCreate, PaymentOrdersCreate, PlanAssociation, TaskCreate
from .common import CountResponse, CursorPageResponse, serialize
from .company import CompanyCreate, CompanyUpdate

__all__ = [
    "ClientCreate",
    "ClientUpdate",
    "CompanyCreate",
    "CompanyUpdate",
    "CountResponse",
    "CursorPageResponse",
    "PaymentOrderCreate",
    "PaymentOrdersCreate",
    "PlanAssociation",
    "TaskCreate",
    "serialize",
]
