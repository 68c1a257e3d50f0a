"""
Company domain service.

Company profile, its accounts, plans, clients and the task agenda.
"""
from __future__ import annotations

import re
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping

import structlog

from ..database import BuilderFilter, Document, EntityType, MatchFilter, QueryOptions
from ..errors import InvalidFilterError
from .base_service import BaseService, CursorPage

logger = structlog.get_logger("intercamb.services.company")

DEFAULT_LOGO_URL = "https://cdn.intercamb.me/images/company_default_logo.png"
DEFAULT_CURRENCY = "BRL"
ALLOWED_ATTRS = ("name", "primary_color", "text_color")
SEARCH_FIELDS = ("forename", "surname", "email", "phone")

# Client listings are newest first unless the caller sorts otherwise.
NEWEST_FIRST = "-registration_date"


class CompanyService(BaseService):
    """Business logic for companies."""

    async def get_company(self, company_id: Any, options: QueryOptions | None = None):
        return await self.queries.fetch_by_id(EntityType.COMPANY, company_id, options)

    async def create_company(self, account_id: Any, name: str) -> Document:
        """Create a company owned by ``account_id`` and link the account to it."""
        account = await self.queries.fetch_by_id(EntityType.ACCOUNT, account_id, QueryOptions(select="_id"))
        company = self.store.new(EntityType.COMPANY, {
            "name": name,
            "owner": account.id,
            "logo_url": DEFAULT_LOGO_URL,
            "currency": DEFAULT_CURRENCY,
            "registration_date": datetime.now(timezone.utc),
        })
        await company.save()
        account.company = company.id
        await account.save()
        logger.info("company_created", company_id=company.id, owner=account.id)
        return company

    async def update_company(self, company_id: Any, data: Mapping[str, Any]) -> Document:
        attrs = {k: data[k] for k in ALLOWED_ATTRS if k in data}
        company = await self.queries.fetch_by_id(EntityType.COMPANY, company_id)
        company.set(attrs)
        return await company.save()

    async def list_accounts(self, company_id: Any, options: QueryOptions | None = None) -> list:
        return await self.queries.fetch_many(EntityType.ACCOUNT, MatchFilter({"company": company_id}), options)

    async def list_plans(self, company_id: Any, options: QueryOptions | None = None) -> list:
        return await self.queries.fetch_many(EntityType.PLAN, MatchFilter({"company": company_id}), options)

    async def list_clients(
        self,
        company_id: Any,
        ids: Iterable[Any] | None = None,
        options: QueryOptions | None = None,
    ) -> CursorPage:
        """Clients of a company, optionally restricted to ``ids``."""
        options = _with_default_sort(options, NEWEST_FIRST)

        def company_clients(query):
            query.where("company").equals(company_id)
            if ids is not None:
                query.where("_id").in_(ids)

        clients = await self.queries.fetch_many(EntityType.CLIENT, BuilderFilter(company_clients), options)
        return self._cursor_page(clients, options)

    async def search_clients(self, company_id: Any, search: str, options: QueryOptions | None = None) -> CursorPage:
        """Case-insensitive search on name, email and phone."""
        options = _with_default_sort(options, NEWEST_FIRST)
        pattern = re.compile(re.escape(search), re.IGNORECASE)

        def matching_clients(query):
            query.where("company").equals(company_id)
            query.or_([{name: pattern} for name in SEARCH_FIELDS])

        clients = await self.queries.fetch_many(EntityType.CLIENT, BuilderFilter(matching_clients), options)
        return self._cursor_page(clients, options)

    async def count_clients(self, company_id: Any) -> int:
        return await self.store.count(EntityType.CLIENT, {"company": company_id})

    async def list_tasks(self, company_id: Any, start_date: date, end_date: date) -> list:
        """Pending tasks scheduled within ``[start_date, end_date]``."""
        if start_date > end_date:
            raise InvalidFilterError(
                "start_date must not be after end_date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        def scheduled_tasks(query):
            query.where("company").equals(company_id)
            query.where("status").equals("pending")
            query.where("schedule_date").gte(start_date).lte(end_date)
            query.sort("schedule_date")
            query.sort("name")

        return await self.queries.fetch_many(EntityType.TASK, BuilderFilter(scheduled_tasks))


def _with_default_sort(options: QueryOptions | None, sort: str) -> QueryOptions:
    options = options or QueryOptions()
    if options.sort is None:
        return replace(options, sort=sort)
    return options
