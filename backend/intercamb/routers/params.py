"""Shared query-parameter dependencies for list and detail endpoints."""
from typing import List, Optional

from fastapi import Query

from ..database import QueryOptions

MAX_PAGE_SIZE = 200


def list_options(
    limit: Optional[int] = Query(None, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    last: Optional[str] = Query(None, description="ID of the last item of the previous page"),
    sort: Optional[str] = Query(
        None,
        pattern=r"^-?[A-Za-z_][A-Za-z0-9_.]*( -?[A-Za-z_][A-Za-z0-9_.]*)*$",
        description="Space-separated fields, '-' prefix for descending",
    ),
) -> QueryOptions:
    """Options for read-only listings."""
    return QueryOptions(limit=limit, last=last, sort=sort, lean=True)


def detail_options(
    populate: Optional[List[str]] = Query(None, description="Relations to expand inline"),
    select: Optional[str] = Query(None, description="Space-separated fields to return"),
) -> QueryOptions:
    return QueryOptions(populate=populate, select=select, lean=True)
