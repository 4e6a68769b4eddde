from typing import Generic, TypeVar

from pydantic import BaseModel

ItemT = TypeVar("ItemT")


class PageOut(BaseModel, Generic[ItemT]):
    data: list[ItemT]
    total: int
    limit: int
    offset: int


class MessageOut(BaseModel):
    message: str
