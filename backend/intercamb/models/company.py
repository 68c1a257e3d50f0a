"""Pydantic models for company endpoints."""
from typing import Optional

from pydantic import BaseModel, Field


class CompanyCreate(BaseModel):
    account: str = Field(..., description="ID of the owner account")
    name: str = Field(..., min_length=1)


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    primary_color: Optional[str] = None
    text_color: Optional[str] = None
