"""Shared dependencies for the query routers: store, paging, dates, rate limit."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Query
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.sql_store import SqlStore

# Rate limiter (in-memory, no Redis needed)
limiter = Limiter(key_func=get_remote_address)

RATE_LIMIT = settings.RATE_LIMIT


def get_store(db: Session = Depends(get_db)) -> SqlStore:
    """FastAPI dependency wrapping the request's session in a Store."""
    return SqlStore(db)


@dataclass
class Paging:
    start: int
    limit: int


def parse_paging(
    start: int = Query(0, ge=0, description="Index of the first record to return"),
    limit: int = Query(
        settings.DEFAULT_LIMIT, ge=0, le=settings.MAX_LIMIT,
        description="Maximum number of records to return",
    ),
) -> Paging:
    return Paging(start=start, limit=limit)


@dataclass
class DateRange:
    start_date: Optional[str] = None
    end_date: Optional[str] = None


def parse_date_range(
    start_date: Optional[str] = Query(None, description="Range start, YYYY / YYYYMM / YYYYMMDD"),
    end_date: Optional[str] = Query(None, description="Range end, YYYY / YYYYMM / YYYYMMDD"),
) -> DateRange:
    """Dates are validated by the query plan, which reports malformed values as 422."""
    return DateRange(start_date=start_date, end_date=end_date)
