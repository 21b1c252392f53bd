from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel
import math


def reject_null(value: Any) -> Any:
    """For patch fields whose column is NOT NULL: omitting is fine, null is not."""
    if value is None:
        raise ValueError("may be omitted but not null")
    return value


def utc_naive(value: datetime) -> datetime:
    """Aware datetimes are shifted to UTC; naive ones are already UTC."""
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0)


class PageParams(BaseModel):
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
