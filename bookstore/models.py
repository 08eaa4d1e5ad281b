from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Book(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    title: str = Field(min_length=1, max_length=200)
    author: str = Field(min_length=1, max_length=200)
    genre: str
    published_year: int
    price: float = Field(ge=0)
    in_stock: bool
    pages: int = Field(ge=0)
    publisher: str


BOOK_FIELDS: tuple[str, ...] = tuple(Book.model_fields)


class BookPatch(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=200)
    author: str | None = Field(default=None, min_length=1, max_length=200)
    genre: str | None = None
    published_year: int | None = None
    price: float | None = Field(default=None, ge=0)
    in_stock: bool | None = None
    pages: int | None = Field(default=None, ge=0)
    publisher: str | None = None


class PartialBook(BaseModel):
    """A projected book. Only the fields in ``model_fields_set`` were requested."""

    title: str | None = None
    author: str | None = None
    genre: str | None = None
    published_year: int | None = None
    price: float | None = None
    in_stock: bool | None = None
    pages: int | None = None
    publisher: str | None = None

    def fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SortDirection(str, Enum):
    asc = "asc"
    desc = "desc"

    @classmethod
    def parse(cls, value: "SortDirection | str | int") -> "SortDirection":
        if isinstance(value, cls):
            return value
        if value in (1, "1"):
            return cls.asc
        if value in (-1, "-1"):
            return cls.desc
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            raise ValueError(f"Invalid sort direction: {value!r}") from exc


Operator = Literal["eq", "ne", "gt", "gte", "lt", "lte", "in"]


class Predicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: Operator = "eq"
    value: Any


class GroupStats(BaseModel):
    count: int = 0
    average: float | None = None


class IndexHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    keys: tuple[tuple[str, int], ...]

    @field_validator("keys")
    @classmethod
    def _check_directions(cls, keys: tuple[tuple[str, int], ...]) -> tuple[tuple[str, int], ...]:
        if not keys:
            raise ValueError("An index needs at least one key")
        for _, direction in keys:
            if direction not in (1, -1):
                raise ValueError(f"Index direction must be 1 or -1, got {direction!r}")
        return keys

    @property
    def leading_field(self) -> str:
        return self.keys[0][0]


class ExplainStats(BaseModel):
    stage: Literal["IXSCAN", "COLLSCAN"]
    index_name: str | None = None
    docs_examined: int
    keys_examined: int
    returned: int
