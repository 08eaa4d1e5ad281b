import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError as PydanticValidationError

from bookstore.catalog import QueryCatalog
from bookstore.errors import InvalidFieldError, ValidationError
from bookstore.models import Book, BookPatch, IndexHandle, SortDirection

VALID = {
    "title": "Dune",
    "author": "Frank Herbert",
    "genre": "Science Fiction",
    "published_year": 1965,
    "price": 15.0,
    "in_stock": True,
    "pages": 412,
    "publisher": "Chilton Books",
}


@given(st.floats(max_value=-0.01, allow_nan=False, allow_infinity=False))
def test_book_rejects_negative_price(price):
    with pytest.raises(PydanticValidationError):
        Book(**{**VALID, "price": price})


def test_book_rejects_overlong_title():
    with pytest.raises(PydanticValidationError):
        Book(**{**VALID, "title": "t" * 201})


@pytest.mark.parametrize("missing", ["title", "genre", "price", "publisher"])
def test_insert_rejects_missing_field(missing):
    catalog = QueryCatalog()
    record = {key: value for key, value in VALID.items() if key != missing}
    with pytest.raises(ValidationError):
        catalog.insert_one(record)
    assert len(catalog) == 0


@pytest.mark.parametrize(
    "field,value",
    [("published_year", "1965"), ("in_stock", "yes"), ("pages", 412.5), ("price", "15.00")],
)
def test_insert_rejects_wrong_types(field, value):
    catalog = QueryCatalog()
    with pytest.raises(ValidationError):
        catalog.insert_one({**VALID, field: value})


def test_insert_rejects_non_mapping():
    with pytest.raises(ValidationError):
        QueryCatalog().insert_one(["Dune"])


def test_validation_error_is_a_value_error():
    assert issubclass(ValidationError, ValueError)
    assert issubclass(InvalidFieldError, KeyError)


def test_patch_forbids_unknown_fields():
    with pytest.raises(PydanticValidationError):
        BookPatch(isbn="123")


def test_index_handle_rejects_bad_direction():
    with pytest.raises(PydanticValidationError):
        IndexHandle(name="title_2", keys=(("title", 2),))


@pytest.mark.parametrize(
    "raw,expected",
    [("asc", SortDirection.asc), ("DESC", SortDirection.desc), (1, SortDirection.asc), (-1, SortDirection.desc)],
)
def test_sort_direction_parse(raw, expected):
    assert SortDirection.parse(raw) is expected


def test_sort_direction_rejects_garbage():
    with pytest.raises(ValueError):
        SortDirection.parse("sideways")
