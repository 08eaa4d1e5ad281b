import threading

import pytest
from pydantic import ValidationError as PydanticValidationError

from bookstore.catalog import QueryCatalog
from bookstore.errors import InvalidFieldError, ValidationError
from bookstore.models import BookPatch, Predicate


def make_book(title, **overrides):
    record = {
        "title": title,
        "author": "Anon",
        "genre": "Fiction",
        "published_year": 2000,
        "price": 10.0,
        "in_stock": True,
        "pages": 100,
        "publisher": "Acme",
    }
    record.update(overrides)
    return record


@pytest.fixture()
def catalog():
    return QueryCatalog(
        [
            make_book("1984", author="George Orwell", genre="Dystopian", published_year=1949, price=10.0),
            make_book("Dune", author="Frank Herbert", genre="Sci-Fi", published_year=1965, price=15.0),
            make_book("Animal Farm", author="George Orwell", genre="Satire", published_year=1945, price=8.5, in_stock=False),
            make_book("The Road", author="Cormac McCarthy", published_year=2006, price=13.5),
            make_book("The Martian", author="Andy Weir", genre="Sci-Fi", published_year=2014, price=16.99, in_stock=False),
            make_book("The Night Circus", author="Erin Morgenstern", published_year=2011, price=15.99),
        ]
    )


def titles(books):
    return [book.title for book in books]


def test_find_by_field_keeps_order(catalog):
    assert titles(catalog.find_by_field("author", "George Orwell")) == ["1984", "Animal Farm"]


def test_find_by_field_no_match_is_empty(catalog):
    assert catalog.find_by_field("genre", "Poetry") == []


def test_find_by_field_rejects_unknown_field(catalog):
    with pytest.raises(InvalidFieldError):
        catalog.find_by_field("isbn", "123")


def test_find_by_range_exclusive_lower_bound(catalog):
    assert titles(catalog.find_by_range("published_year", 1949, include_min=False)) == [
        "Dune",
        "The Road",
        "The Martian",
        "The Night Circus",
    ]


def test_find_by_range_inclusive_both_bounds(catalog):
    assert titles(catalog.find_by_range("price", 10.0, 15.0)) == ["1984", "Dune", "The Road"]


def test_find_by_range_without_bounds_returns_everything(catalog):
    assert len(catalog.find_by_range("price")) == len(catalog)


def test_find_combined_is_logical_and(catalog):
    found = catalog.find_combined(
        [
            Predicate(field="in_stock", value=True),
            Predicate(field="published_year", op="gt", value=2010),
        ]
    )
    assert titles(found) == ["The Night Circus"]


def test_find_combined_in_operator(catalog):
    found = catalog.find_combined([Predicate(field="genre", op="in", value=["Sci-Fi", "Satire"])])
    assert titles(found) == ["Dune", "Animal Farm", "The Martian"]


def test_find_combined_mismatched_types_do_not_match(catalog):
    assert catalog.find_combined([Predicate(field="published_year", op="gt", value="2000")]) == []


def test_insert_then_find(catalog):
    catalog.insert_one(make_book("Neuromancer", published_year=1984))
    found = catalog.find_by_field("title", "Neuromancer")
    assert len(found) == 1
    assert found[0].published_year == 1984


def test_update_scenario():
    catalog = QueryCatalog([make_book("1984", price=10.0), make_book("Dune", price=15.0)])
    assert catalog.update_one("title", "1984", {"price": 13.99}) is True
    assert catalog.find_by_field("title", "1984")[0].price == 13.99
    assert catalog.find_by_field("title", "Dune")[0].price == 15.0


def test_update_accepts_patch_model(catalog):
    assert catalog.update_one("title", "Dune", BookPatch(in_stock=False)) is True
    assert catalog.find_by_field("title", "Dune")[0].in_stock is False


def test_update_miss_returns_false(catalog):
    before = catalog.all()
    assert catalog.update_one("title", "Missing", {"price": 1.0}) is False
    assert catalog.all() == before


def test_update_rejects_unknown_patch_field(catalog):
    with pytest.raises(InvalidFieldError):
        catalog.update_one("title", "Dune", {"isbn": "x"})


def test_update_rejects_bad_patch_value(catalog):
    with pytest.raises(ValidationError):
        catalog.update_one("title", "Dune", {"price": "cheap"})


def test_update_and_delete_target_first_duplicate():
    catalog = QueryCatalog([make_book("Twin", price=1.0), make_book("Twin", price=2.0)])
    catalog.update_one("title", "Twin", {"price": 5.0})
    assert [book.price for book in catalog.all()] == [5.0, 2.0]
    assert catalog.delete_one("title", "Twin") is True
    assert [book.price for book in catalog.all()] == [2.0]


def test_delete_then_find_is_empty(catalog):
    assert catalog.delete_one("title", "Dune") is True
    assert catalog.find_by_field("title", "Dune") == []
    assert catalog.delete_one("title", "Dune") is False


def test_update_does_not_touch_earlier_snapshots(catalog):
    snapshot = catalog.find_by_field("title", "Dune")
    catalog.update_one("title", "Dune", {"price": 1.0})
    assert snapshot[0].price == 15.0


def test_create_index_names_like_mongo(catalog):
    handle = catalog.create_index([("author", 1), ("published_year", -1)])
    assert handle.name == "author_1_published_year_-1"
    assert handle.keys == (("author", 1), ("published_year", -1))
    assert catalog.create_index([("author", "asc"), ("published_year", "desc")]) == handle
    assert catalog.list_indexes() == [handle]


def test_create_index_rejects_unknown_field(catalog):
    with pytest.raises(InvalidFieldError):
        catalog.create_index([("isbn", 1)])


def test_indexed_lookup_matches_scan(catalog):
    scanned = catalog.find_by_field("author", "George Orwell")
    catalog.create_index([("author", 1)])
    assert catalog.find_by_field("author", "George Orwell") == scanned


def test_index_follows_writes(catalog):
    catalog.create_index([("title", 1)])
    catalog.insert_one(make_book("Solaris"))
    catalog.delete_one("title", "1984")
    catalog.update_one("title", "Dune", {"title": "Dune Messiah"})
    assert titles(catalog.find_by_field("title", "Solaris")) == ["Solaris"]
    assert catalog.find_by_field("title", "1984") == []
    assert catalog.find_by_field("title", "Dune") == []
    assert titles(catalog.find_by_field("title", "Dune Messiah")) == ["Dune Messiah"]


def test_explain_reports_collection_scan_without_index(catalog):
    stats = catalog.explain("title", "Dune")
    assert stats.stage == "COLLSCAN"
    assert stats.index_name is None
    assert stats.docs_examined == len(catalog)
    assert stats.returned == 1


def test_explain_reports_index_scan(catalog):
    catalog.create_index([("title", 1)])
    stats = catalog.explain("title", "Dune")
    assert stats.stage == "IXSCAN"
    assert stats.index_name == "title_1"
    assert stats.docs_examined == 1
    assert stats.returned == 1


def test_concurrent_inserts_are_all_kept():
    catalog = QueryCatalog()
    catalog.create_index([("title", 1)])

    def worker(offset):
        for i in range(50):
            catalog.insert_one(make_book(f"book-{offset}-{i}"))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(catalog) == 200
    assert len(catalog.find_by_field("title", "book-3-49")) == 1


def test_returned_records_are_read_only(catalog):
    catalog.create_index([("title", 1)])
    found = catalog.find_by_field("title", "1984")[0]
    with pytest.raises(PydanticValidationError):
        found.title = "Renamed"
    assert titles(catalog.find_by_field("title", "1984")) == ["1984"]
    assert titles(catalog.find_by_field("title", "1984")) == [b.title for b in catalog.all() if b.title == "1984"]


def test_find_one_and_update_returns_the_written_record():
    catalog = QueryCatalog([make_book("1984", price=10.0), make_book("Dune", price=15.0)])
    updated = catalog.find_one_and_update("title", "Dune", {"title": "1984", "price": 20.0})
    assert updated is not None
    assert (updated.title, updated.price) == ("1984", 20.0)
    assert [book.price for book in catalog.find_by_field("title", "1984")] == [10.0, 20.0]
    assert catalog.find_one_and_update("title", "Missing", {"price": 1.0}) is None
