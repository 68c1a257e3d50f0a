"""API router for client endpoints."""
from typing import Any

from fastapi import APIRouter, Depends, Path

from ..database import QueryOptions
from ..dependencies import get_client_service
from ..models import (
    ClientUpdate,
    CursorPageResponse,
    PaymentOrdersCreate,
    PlanAssociation,
    TaskCreate,
    serialize,
)
from ..services import ClientService
from .params import detail_options, list_options

router = APIRouter(prefix="/clients", tags=["clients"])


@router.get("/{client_id}")
async def get_client(
    client_id: str = Path(..., description="Client ID"),
    options: QueryOptions = Depends(detail_options),
    service: ClientService = Depends(get_client_service),
) -> Any:
    """Client details, optionally with `populate`d relations (e.g. plan, tasks)."""
    return serialize(await service.get_client(client_id, options))


@router.put("/{client_id}")
async def update_client(
    body: ClientUpdate,
    client_id: str = Path(..., description="Client ID"),
    service: ClientService = Depends(get_client_service),
) -> Any:
    client = await service.update_client(client_id, body.model_dump(exclude_unset=True))
    return serialize(client)


@router.delete("/{client_id}", status_code=204)
async def delete_client(
    client_id: str = Path(..., description="Client ID"),
    service: ClientService = Depends(get_client_service),
) -> None:
    await service.delete_client(client_id)


@router.get("/{client_id}/tasks", response_model=CursorPageResponse)
async def list_tasks(
    client_id: str = Path(..., description="Client ID"),
    options: QueryOptions = Depends(list_options),
    service: ClientService = Depends(get_client_service),
) -> CursorPageResponse:
    page = await service.list_tasks(client_id, options)
    return CursorPageResponse(data=serialize(page.data), next_cursor=page.next_cursor)


@router.post("/{client_id}/tasks", status_code=201)
async def create_task(
    body: TaskCreate,
    client_id: str = Path(..., description="Client ID"),
    service: ClientService = Depends(get_client_service),
) -> Any:
    return serialize(await service.create_task(client_id, body.name))


@router.put("/{client_id}/plan", status_code=204)
async def associate_plan(
    body: PlanAssociation,
    client_id: str = Path(..., description="Client ID"),
    service: ClientService = Depends(get_client_service),
) -> None:
    await service.associate_plan(client_id, body.plan)


@router.delete("/{client_id}/plan", status_code=204)
async def dissociate_plan(
    client_id: str = Path(..., description="Client ID"),
    service: ClientService = Depends(get_client_service),
) -> None:
    await service.dissociate_plan(client_id)


@router.get("/{client_id}/payment-orders", response_model=CursorPageResponse)
async def list_payment_orders(
    client_id: str = Path(..., description="Client ID"),
    options: QueryOptions = Depends(list_options),
    service: ClientService = Depends(get_client_service),
) -> CursorPageResponse:
    page = await service.list_payment_orders(client_id, options)
    return CursorPageResponse(data=serialize(page.data), next_cursor=page.next_cursor)


@router.post("/{client_id}/payment-orders", status_code=201)
async def create_payment_orders(
    body: PaymentOrdersCreate,
    client_id: str = Path(..., description="Client ID"),
    service: ClientService = Depends(get_client_service),
) -> Any:
    orders = await service.create_payment_orders(
        client_id, [order.model_dump() for order in body.payment_orders],
    )
    return serialize(orders)
