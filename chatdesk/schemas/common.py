from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ApiError(BaseModel):
    success: bool = False
    error: str
    details: list[dict[str, Any]] | None = None


class ApiMessage(BaseModel):
    detail: str
    timestamp: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class Page(BaseModel, Generic[T]):
    items: list[T]
    pagination: Pagination


def ok(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}
