"""API router for company endpoints."""
from datetime import date
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Path, Query

from ..database import QueryOptions
from ..dependencies import get_client_service, get_company_service
from ..models import (
    ClientCreate,
    CompanyCreate,
    CompanyUpdate,
    CountResponse,
    CursorPageResponse,
    serialize,
)
from ..services import ClientService, CompanyService
from .params import detail_options, list_options

router = APIRouter(prefix="/companies", tags=["companies"])


@router.post("", status_code=201)
async def create_company(
    body: CompanyCreate,
    service: CompanyService = Depends(get_company_service),
) -> Any:
    return serialize(await service.create_company(body.account, body.name))


@router.get("/{company_id}")
async def get_company(
    company_id: str = Path(..., description="Company ID"),
    options: QueryOptions = Depends(detail_options),
    service: CompanyService = Depends(get_company_service),
) -> Any:
    return serialize(await service.get_company(company_id, options))


@router.put("/{company_id}")
async def update_company(
    body: CompanyUpdate,
    company_id: str = Path(..., description="Company ID"),
    service: CompanyService = Depends(get_company_service),
) -> Any:
    company = await service.update_company(company_id, body.model_dump(exclude_unset=True))
    return serialize(company)


@router.get("/{company_id}/accounts")
async def list_accounts(
    company_id: str = Path(..., description="Company ID"),
    service: CompanyService = Depends(get_company_service),
) -> Any:
    accounts = await service.list_accounts(company_id, QueryOptions(select="-password", lean=True))
    return {"data": serialize(accounts)}


@router.get("/{company_id}/plans")
async def list_plans(
    company_id: str = Path(..., description="Company ID"),
    service: CompanyService = Depends(get_company_service),
) -> Any:
    plans = await service.list_plans(company_id, QueryOptions(lean=True))
    return {"data": serialize(plans)}


@router.get("/{company_id}/clients", response_model=CursorPageResponse)
async def list_clients(
    company_id: str = Path(..., description="Company ID"),
    search: Optional[str] = Query(None, min_length=1, description="Search name, email or phone"),
    ids: Optional[List[str]] = Query(None, description="Restrict to these client IDs"),
    options: QueryOptions = Depends(list_options),
    service: CompanyService = Depends(get_company_service),
) -> CursorPageResponse:
    """
    List a company's clients, newest first by default.

    Pass the returned `next_cursor` as `last` to fetch the following page.
    """
    if search:
        page = await service.search_clients(company_id, search, options)
    else:
        page = await service.list_clients(company_id, ids, options)
    return CursorPageResponse(data=serialize(page.data), next_cursor=page.next_cursor)


@router.post("/{company_id}/clients", status_code=201)
async def create_client(
    body: ClientCreate,
    company_id: str = Path(..., description="Company ID"),
    service: ClientService = Depends(get_client_service),
) -> Any:
    return serialize(await service.create_client(company_id, body.model_dump()))


@router.get("/{company_id}/clients/count", response_model=CountResponse)
async def count_clients(
    company_id: str = Path(..., description="Company ID"),
    service: CompanyService = Depends(get_company_service),
) -> CountResponse:
    return CountResponse(count=await service.count_clients(company_id))


@router.get("/{company_id}/tasks")
async def list_tasks(
    company_id: str = Path(..., description="Company ID"),
    start_date: date = Query(..., description="First schedule date (inclusive)"),
    end_date: date = Query(..., description="Last schedule date (inclusive)"),
    service: CompanyService = Depends(get_company_service),
) -> Any:
    tasks = await service.list_tasks(company_id, start_date, end_date)
    return {"data": serialize(tasks)}
