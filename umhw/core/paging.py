import math
from typing import Generic, Sequence, TypeVar
from pydantic import BaseModel, Field

T = TypeVar("T")

class PageParams(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

class PageInfo(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int

class Page(BaseModel, Generic[T]):
    data: list[T]
    pagination: PageInfo

def make_page(items: Sequence[T], total: int, params: PageParams) -> Page[T]:
    total_pages = math.ceil(total / params.limit) if total else 0
    return Page(
        data=list(items),
        pagination=PageInfo(page=params.page, limit=params.limit, total=total, totalPages=total_pages),
    )
