"""
Institution domain service.

Institutions are reference data shared by every company (intended courses
point at them). They are loaded from bundled JSON by
``scripts/load_institutions.py``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import structlog

from ..database import EntityType, MatchFilter, QueryOptions
from .base_service import BaseService

logger = structlog.get_logger("intercamb.services.institution")

INSTITUTION_FIELDS = ("country", "name", "acronym")


@dataclass
class SyncResult:
    inserted: int = 0
    updated: int = 0


class InstitutionService(BaseService):
    """Business logic for institutions."""

    async def list_institutions(self, country: str | None = None, options: QueryOptions | None = None) -> list:
        constraints = {"country": country} if country else {}
        return await self.queries.fetch_many(EntityType.INSTITUTION, MatchFilter(constraints), options)

    async def sync_institutions(self, records: Iterable[Mapping[str, Any]]) -> SyncResult:
        """Insert institutions missing by name and refresh the existing ones."""
        existing = await self.queries.fetch_many(
            EntityType.INSTITUTION, options=QueryOptions(select="name", lean=True),
        )
        known_names = {institution.get("name") for institution in existing}

        result = SyncResult()
        to_insert = []
        for record in records:
            body = {k: record.get(k) for k in INSTITUTION_FIELDS}
            if body["name"] in known_names:
                await self.store.update_one(EntityType.INSTITUTION, {"name": body["name"]}, body)
                result.updated += 1
            else:
                to_insert.append(body)
                known_names.add(body["name"])
        await self.store.insert_many(EntityType.INSTITUTION, to_insert)
        result.inserted = len(to_insert)
        logger.info("institutions_synced", inserted=result.inserted, updated=result.updated)
        return result
