"""The fixed catalog of named bookstore reports.

Each report is a single step over a :class:`QueryCatalog` with defaults taken
from the bookstore exercise (Fiction, after 1950, George Orwell, pages of
five, and so on). Callers may override a report's parameters but cannot add
reports at runtime.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from opentelemetry import trace
from pydantic import BaseModel

from .catalog import QueryCatalog
from .errors import UnknownReportError
from .models import PartialBook, Predicate
from .queries import decade_of, group_by, paginate, project, sort_by, top_n

logger = logging.getLogger("bookstore.reports")
tracer = trace.get_tracer("bookstore.reports")


@dataclass(frozen=True, slots=True)
class Report:
    name: str
    description: str
    run: Callable[..., Any]
    mutates: bool = False


def books_in_genre(catalog: QueryCatalog, genre: str = "Fiction"):
    return catalog.find_by_field("genre", genre)


def published_after(catalog: QueryCatalog, year: int = 1950):
    return catalog.find_by_range("published_year", minimum=year, include_min=False)


def books_by_author(catalog: QueryCatalog, author: str = "George Orwell"):
    return catalog.find_by_field("author", author)


def update_price(catalog: QueryCatalog, title: str = "1984", price: float = 13.99) -> bool:
    return catalog.update_one("title", title, {"price": price})


def delete_by_title(catalog: QueryCatalog, title: str = "Moby Dick") -> bool:
    return catalog.delete_one("title", title)


def in_stock_published_after(catalog: QueryCatalog, year: int = 2010):
    return catalog.find_combined(
        [
            Predicate(field="in_stock", op="eq", value=True),
            Predicate(field="published_year", op="gt", value=year),
        ]
    )


def title_author_price(catalog: QueryCatalog):
    return project(catalog.all(), ["title", "author", "price"])


def price_ascending(catalog: QueryCatalog):
    return sort_by(catalog.all(), "price", "asc")


def price_descending(catalog: QueryCatalog):
    return sort_by(catalog.all(), "price", "desc")


def page(catalog: QueryCatalog, page_index: int = 0, page_size: int = 5):
    return paginate(catalog.all(), page_size, page_index)


def average_price_by_genre(catalog: QueryCatalog):
    return group_by(catalog.all(), "genre", average_of="price", order_by="average")


def top_author(catalog: QueryCatalog, limit: int = 1):
    if limit < 0:
        raise ValueError("limit must not be negative")
    groups = group_by(catalog.all(), "author", order_by="count")
    return dict(list(groups.items())[:limit])


def count_by_decade(catalog: QueryCatalog):
    return group_by(catalog.all(), decade_of, order_by="key", descending=False)


def index_title(catalog: QueryCatalog):
    return catalog.create_index([("title", 1)])


def index_author_year(catalog: QueryCatalog):
    return catalog.create_index([("author", 1), ("published_year", -1)])


def explain_title_lookup(catalog: QueryCatalog, title: str = "The Hobbit"):
    return catalog.explain("title", title)


def most_expensive(catalog: QueryCatalog, n: int = 3):
    return top_n(catalog.all(), "price", "desc", n)


_REPORTS = [
    Report("books_in_genre", "Books in a genre", books_in_genre),
    Report("published_after", "Books published after a year", published_after),
    Report("books_by_author", "Books by an author", books_by_author),
    Report("update_price", "Set the price of a book by title", update_price, mutates=True),
    Report("delete_by_title", "Delete a book by title", delete_by_title, mutates=True),
    Report("in_stock_published_after", "In-stock books published after a year", in_stock_published_after),
    Report("title_author_price", "Title, author and price of every book", title_author_price),
    Report("price_ascending", "Books by price, cheapest first", price_ascending),
    Report("price_descending", "Books by price, most expensive first", price_descending),
    Report("page", "One page of books", page),
    Report("average_price_by_genre", "Average price and count per genre", average_price_by_genre),
    Report("top_author", "Author with the most books", top_author),
    Report("count_by_decade", "Books per publication decade", count_by_decade),
    Report("index_title", "Index on title", index_title, mutates=True),
    Report("index_author_year", "Compound index on author and published year", index_author_year, mutates=True),
    Report("explain_title_lookup", "Execution stats of a title lookup", explain_title_lookup),
    Report("most_expensive", "The most expensive books", most_expensive),
]

REPORTS: Mapping[str, Report] = MappingProxyType({report.name: report for report in _REPORTS})


def get_report(name: str) -> Report:
    try:
        return REPORTS[name]
    except KeyError as exc:
        raise UnknownReportError(name) from exc


def coerce_params(report: Report, raw: Mapping[str, str]) -> dict[str, Any]:
    """Turn string parameters (query strings) into the types the report expects."""
    signature = inspect.signature(report.run)
    params: dict[str, Any] = {}
    for key, value in raw.items():
        parameter = signature.parameters.get(key)
        if parameter is None or key == "catalog":
            raise ValueError(f"Report {report.name!r} has no parameter {key!r}")
        default = parameter.default
        if isinstance(default, bool):
            params[key] = value.strip().lower() in {"1", "true", "yes"}
        elif isinstance(default, (int, float)):
            try:
                params[key] = type(default)(value)
            except ValueError as exc:
                raise ValueError(f"Parameter {key!r} must be a {type(default).__name__}") from exc
        else:
            params[key] = value
    return params


def run_report(catalog: QueryCatalog, name: str, **params: Any) -> Any:
    report = get_report(name)
    with tracer.start_as_current_span(f"report.{name}") as span:
        span.set_attribute("report.mutates", report.mutates)
        result = report.run(catalog, **params)
    logger.info("report.run", extra={"report": name, "params": params})
    return result


def to_jsonable(result: Any) -> Any:
    """Convert a report result into plain JSON-compatible data.

    Projected books keep only their requested fields; group keys become
    strings the way a JSON object requires.
    """
    if isinstance(result, PartialBook):
        return result.fields()
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, Mapping):
        return {str(key): to_jsonable(value) for key, value in result.items()}
    if isinstance(result, (list, tuple)):
        return [to_jsonable(item) for item in result]
    return result
