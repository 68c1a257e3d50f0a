"""
Client domain service.

Client lifecycle, the client's tasks, plan association and payment orders.
Router becomes thin: parse request → call service → return response.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

import structlog

from ..database import BuilderFilter, Document, EntityType, MatchFilter, QueryOptions
from .base_service import BaseService, CursorPage

logger = structlog.get_logger("intercamb.services.client")

DEFAULT_PHOTO_URL = "https://cdn.intercamb.me/images/client_default_photo.png"
UNALLOWED_ATTRS = frozenset({"_id", "id", "company", "photo_url", "registration_date"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_body(
    *,
    company: Any,
    client: Any,
    name: str,
    registration_date: datetime,
    plan: Any = None,
    template: Mapping[str, Any] | Document | None = None,
) -> dict:
    """Body of a pending task, optionally copied from a default task."""
    body = {
        "company": company,
        "client": client,
        "name": name,
        "status": "pending",
        "counters": {"attachments": 0, "comments": 0},
        "registration_date": registration_date,
    }
    if plan is not None:
        body["plan"] = plan
    if template is not None:
        for key in ("checklists", "fields"):
            value = template.get(key)
            if value is not None:
                body[key] = value
    return body


class ClientService(BaseService):
    """Business logic for clients."""

    async def get_client(self, client_id: Any, options: QueryOptions | None = None):
        return await self.queries.fetch_by_id(EntityType.CLIENT, client_id, options)

    async def create_client(self, company_id: Any, data: Mapping[str, Any]) -> Document:
        """Create a client and copy the company's plan-less default tasks to it."""
        company = await self.queries.fetch_by_id(EntityType.COMPANY, company_id, QueryOptions(select="_id"))

        def plan_less_defaults(query):
            query.where("company").equals(company.id)
            query.or_([
                {"plan": {"$exists": False}},
                {"plan": {"$eq": None}},
            ])

        default_tasks = await self.queries.fetch_many(
            EntityType.DEFAULT_TASK, BuilderFilter(plan_less_defaults), QueryOptions(lean=True),
        )

        now = _utcnow()
        client = self.store.new(EntityType.CLIENT, {k: v for k, v in data.items() if k not in UNALLOWED_ATTRS})
        client.set({
            "company": company.id,
            "registration_date": now,
            "photo_url": DEFAULT_PHOTO_URL,
            "metadata": {"messages_sent": []},
        })
        tasks = [
            new_task_body(
                company=company.id,
                client=client.id,
                name=default_task["name"],
                registration_date=now,
                template=default_task,
            )
            for default_task in default_tasks
        ]
        await client.save()
        await self.store.insert_many(EntityType.TASK, tasks)
        logger.info("client_created", client_id=client.id, company_id=company.id, tasks=len(tasks))
        return client

    async def update_client(self, client_id: Any, data: Mapping[str, Any]) -> Document:
        attrs = {k: v for k, v in data.items() if k not in UNALLOWED_ATTRS}
        client = await self.queries.fetch_by_id(EntityType.CLIENT, client_id)
        attrs["needs_revision"] = False
        client.set(attrs)
        return await client.save()

    async def delete_client(self, client_id: Any) -> None:
        """Delete a client with its tasks, task attachments/comments and payment orders."""
        client = await self.queries.fetch_by_id(EntityType.CLIENT, client_id, QueryOptions(select="_id"))
        tasks = await self.queries.fetch_many(
            EntityType.TASK, MatchFilter({"client": client.id}), QueryOptions(select="_id", lean=True),
        )
        task_ids = [task["_id"] for task in tasks]
        await self.store.delete_many(EntityType.TASK_ATTACHMENT, {"task": {"$in": task_ids}})
        await self.store.delete_many(EntityType.TASK_COMMENT, {"task": {"$in": task_ids}})
        await self.store.delete_many(EntityType.TASK, {"client": client.id})
        await self.store.delete_many(EntityType.PAYMENT_ORDER, {"client": client.id})
        await client.delete()
        logger.info("client_deleted", client_id=client.id, tasks=len(task_ids))

    async def create_task(self, client_id: Any, name: str) -> Document:
        client = await self.queries.fetch_by_id(EntityType.CLIENT, client_id, QueryOptions(select="company"))
        task = self.store.new(EntityType.TASK, new_task_body(
            company=client.company,
            client=client.id,
            name=name,
            registration_date=_utcnow(),
        ))
        return await task.save()

    async def list_tasks(self, client_id: Any, options: QueryOptions | None = None) -> CursorPage:
        tasks = await self.queries.fetch_many(EntityType.TASK, MatchFilter({"client": client_id}), options)
        return self._cursor_page(tasks, options)

    async def associate_plan(self, client_id: Any, plan_id: Any) -> None:
        """Move the client to ``plan_id``, replacing the previous plan's tasks."""
        plan = await self.queries.fetch_by_id(
            EntityType.PLAN, plan_id, QueryOptions(select="default_tasks", populate="default_tasks"),
        )
        client = await self.queries.fetch_by_id(EntityType.CLIENT, client_id, QueryOptions(select="company plan"))
        if client.get("plan"):
            plan_tasks = await self.queries.fetch_many(
                EntityType.TASK,
                MatchFilter({"client": client.id, "plan": client.plan}),
                QueryOptions(select="_id", lean=True),
            )
            await self.store.delete_many(EntityType.TASK, {"_id": {"$in": [t["_id"] for t in plan_tasks]}})
        client.plan = plan.id
        await client.save()

        now = _utcnow()
        tasks = [
            new_task_body(
                company=client.company,
                client=client.id,
                plan=plan.id,
                name=default_task["name"],
                registration_date=now,
                template=default_task,
            )
            for default_task in plan.get("default_tasks") or []
        ]
        await self.store.insert_many(EntityType.TASK, tasks)
        logger.info("plan_associated", client_id=client.id, plan_id=plan.id, tasks=len(tasks))

    async def dissociate_plan(self, client_id: Any) -> None:
        client = await self.queries.fetch_by_id(EntityType.CLIENT, client_id, QueryOptions(select="plan"))
        plan_id = client.get("plan")
        if plan_id:
            client.plan = None
            await client.save()
            await self.store.delete_many(EntityType.TASK, {"client": client.id, "plan": plan_id})
            logger.info("plan_dissociated", client_id=client.id, plan_id=plan_id)

    async def create_payment_orders(
        self,
        client_id: Any,
        payment_orders: Iterable[Mapping[str, Any]],
    ) -> list[dict]:
        client = await self.queries.fetch_by_id(EntityType.CLIENT, client_id, QueryOptions(select="company"))
        now = _utcnow()
        orders = [
            {
                "client": client.id,
                "company": client.company,
                "method": order.get("method"),
                "amount": order.get("amount"),
                "due_date": order.get("due_date"),
                "registration_date": now,
            }
            for order in payment_orders
        ]
        return await self.store.insert_many(EntityType.PAYMENT_ORDER, orders)

    async def list_payment_orders(self, client_id: Any, options: QueryOptions | None = None) -> CursorPage:
        orders = await self.queries.fetch_many(EntityType.PAYMENT_ORDER, MatchFilter({"client": client_id}), options)
        return self._cursor_page(orders, options)
