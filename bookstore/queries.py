"""Pure query helpers over sequences of books.

Every function here takes a sequence of records and returns a new list or
mapping. None of them mutate their input, so they compose freely::

    page = paginate(sort_by(books, "price", "asc"), 5, 1)
"""

from __future__ import annotations

import math
import operator
from collections.abc import Callable, Hashable, Iterable, Sequence
from typing import Any, Literal, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidFieldError, ValidationError
from .models import BOOK_FIELDS, Book, GroupStats, PartialBook, Predicate, SortDirection

T = TypeVar("T")

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "in": lambda actual, expected: actual in expected,
}


def check_field(field: str) -> str:
    if field not in BOOK_FIELDS:
        raise InvalidFieldError(field)
    return field


def coerce_value(field: str, raw: Any) -> Any:
    """Convert ``raw`` (typically a query string) to the declared type of ``field``."""
    annotation = Book.model_fields[check_field(field)].annotation
    try:
        return TypeAdapter(annotation).validate_python(raw, strict=False)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid value for {field!r}: {raw!r}") from exc


def field_value(record: Book | PartialBook, field: str) -> Any:
    return getattr(record, check_field(field))


def matches(record: Book, predicate: Predicate) -> bool:
    actual = field_value(record, predicate.field)
    compare = _OPERATORS[predicate.op]
    try:
        return compare(actual, predicate.value)
    except TypeError:
        # ordering a str against an int is a non-match, not a failure
        return False


def filter_books(records: Iterable[Book], predicates: Sequence[Predicate]) -> list[Book]:
    for predicate in predicates:
        check_field(predicate.field)
    return [record for record in records if all(matches(record, p) for p in predicates)]


def project(records: Iterable[Book], fields: Iterable[str]) -> list[PartialBook]:
    wanted = [check_field(field) for field in fields]
    return [PartialBook(**{field: getattr(record, field) for field in wanted}) for record in records]


def sort_by(records: Iterable[T], field: str, direction: SortDirection | str | int = SortDirection.asc) -> list[T]:
    check_field(field)
    descending = SortDirection.parse(direction) is SortDirection.desc
    # sorted() is stable with reverse=True too, so ties keep their input order
    return sorted(records, key=operator.attrgetter(field), reverse=descending)


def paginate(records: Sequence[T], page_size: int, page_index: int) -> list[T]:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    if page_index < 0:
        raise ValueError("page_index must not be negative")
    start = page_index * page_size
    return list(records[start : start + page_size])


def top_n(records: Iterable[T], field: str, direction: SortDirection | str | int, n: int) -> list[T]:
    if n < 0:
        raise ValueError("n must not be negative")
    return sort_by(records, field, direction)[:n]


def decade_of(record: Book) -> int:
    return math.floor(record.published_year / 10) * 10


def group_by(
    records: Iterable[Book],
    key: str | Callable[[Book], Hashable],
    *,
    average_of: str | None = None,
    order_by: Literal["count", "average", "key"] = "count",
    descending: bool = True,
) -> dict[Hashable, GroupStats]:
    """Group ``records`` and compute a count (and optionally an average) per group.

    ``key`` is either a book field name or a callable such as :func:`decade_of`.
    The returned dict iterates in the order asked for by ``order_by``; groups
    with equal sort values keep the order in which they were first seen.
    """
    if isinstance(key, str):
        key_fn = operator.attrgetter(check_field(key))
    else:
        key_fn = key
    if average_of is not None:
        check_field(average_of)
    if order_by == "average" and average_of is None:
        raise ValueError("order_by='average' needs average_of")

    counts: dict[Hashable, int] = {}
    totals: dict[Hashable, float] = {}
    for record in records:
        group = key_fn(record)
        counts[group] = counts.get(group, 0) + 1
        if average_of is not None:
            totals[group] = totals.get(group, 0.0) + getattr(record, average_of)

    stats = {
        group: GroupStats(
            count=count,
            average=totals[group] / count if average_of is not None else None,
        )
        for group, count in counts.items()
    }

    if order_by == "key":
        ordered = sorted(stats.items(), key=lambda item: item[0], reverse=descending)
    elif order_by == "average":
        ordered = sorted(stats.items(), key=lambda item: item[1].average, reverse=descending)
    else:
        ordered = sorted(stats.items(), key=lambda item: item[1].count, reverse=descending)
    return dict(ordered)
