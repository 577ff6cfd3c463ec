from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    data: None = None
    message: str
    code: str


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int
