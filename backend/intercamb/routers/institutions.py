"""API router for institution endpoints."""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from ..database import QueryOptions
from ..dependencies import get_institution_service
from ..models import serialize
from ..services import InstitutionService
from .params import list_options

router = APIRouter(prefix="/institutions", tags=["institutions"])


@router.get("")
async def list_institutions(
    country: Optional[str] = Query(None, min_length=2, max_length=2, description="ISO country code"),
    options: QueryOptions = Depends(list_options),
    service: InstitutionService = Depends(get_institution_service),
) -> Any:
    institutions = await service.list_institutions(country.upper() if country else None, options)
    return {"data": serialize(institutions)}
