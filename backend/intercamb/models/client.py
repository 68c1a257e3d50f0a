"""Pydantic models for client endpoints."""
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientCreate(BaseModel):
    """New client. Profile sections beyond contact data are free-form."""

    forename: str = Field(..., min_length=1)
    surname: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="allow")


class ClientUpdate(BaseModel):
    forename: Optional[str] = None
    surname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class TaskCreate(BaseModel):
    name: str = Field(..., min_length=1)


class PlanAssociation(BaseModel):
    plan: str = Field(..., description="Plan ID")


class PaymentOrderCreate(BaseModel):
    method: str = Field(..., description="Payment method, e.g. 'boleto' or 'credit_card'")
    amount: float = Field(..., gt=0)
    due_date: date


class PaymentOrdersCreate(BaseModel):
    payment_orders: List[PaymentOrderCreate] = Field(..., min_length=1)
