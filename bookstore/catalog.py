import logging
import threading
from collections.abc import Hashable, Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidFieldError, ValidationError
from .models import BOOK_FIELDS, Book, BookPatch, ExplainStats, IndexHandle, Predicate, SortDirection
from .queries import check_field, filter_books

logger = logging.getLogger("bookstore.catalog")


def _index_name(keys: Sequence[tuple[str, int]]) -> str:
    return "_".join(f"{field}_{direction}" for field, direction in keys)


class _Index:
    def __init__(self, handle: IndexHandle):
        self.handle = handle
        self.positions: dict[Hashable, list[int]] = {}

    def rebuild(self, books: Sequence[Book]) -> None:
        field = self.handle.leading_field
        positions: dict[Hashable, list[int]] = {}
        for position, book in enumerate(books):
            positions.setdefault(getattr(book, field), []).append(position)
        self.positions = positions

    def lookup(self, value: Any) -> list[int]:
        try:
            return self.positions.get(value, [])
        except TypeError:
            return []


class QueryCatalog:
    """In-memory book record set with a fixed set of query and write operations.

    Writes are serialized by one lock. Reads copy the record list under the
    same lock and work on that snapshot, so they never see a half-applied
    write. Records are replaced on update, never mutated in place.
    """

    def __init__(self, books: Iterable[Book | Mapping[str, Any]] = ()):
        self._lock = threading.RLock()
        self._books: list[Book] = [self._validate(book) for book in books]
        self._indexes: dict[str, _Index] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._books)

    def all(self) -> list[Book]:
        with self._lock:
            return list(self._books)

    def find_by_field(self, field: str, value: Any) -> list[Book]:
        check_field(field)
        with self._lock:
            books = list(self._books)
            index = self._index_for(field)
            if index is not None and isinstance(value, Hashable):
                return [books[position] for position in index.lookup(value)]
        return [book for book in books if getattr(book, field) == value]

    def find_by_range(
        self,
        field: str,
        minimum: Any = None,
        maximum: Any = None,
        *,
        include_min: bool = True,
        include_max: bool = True,
    ) -> list[Book]:
        check_field(field)
        predicates: list[Predicate] = []
        if minimum is not None:
            predicates.append(Predicate(field=field, op="gte" if include_min else "gt", value=minimum))
        if maximum is not None:
            predicates.append(Predicate(field=field, op="lte" if include_max else "lt", value=maximum))
        return filter_books(self.all(), predicates)

    def find_combined(self, predicates: Sequence[Predicate]) -> list[Book]:
        return filter_books(self.all(), predicates)

    def insert_one(self, record: Book | Mapping[str, Any]) -> Book:
        book = self._validate(record)
        with self._lock:
            self._books.append(book)
            self._rebuild_indexes()
        logger.info("book.insert", extra={"title": book.title})
        return book

    def update_one(self, field: str, value: Any, patch: BookPatch | Mapping[str, Any]) -> bool:
        return self.find_one_and_update(field, value, patch) is not None

    def find_one_and_update(self, field: str, value: Any, patch: BookPatch | Mapping[str, Any]) -> Book | None:
        """Patch the first matching book and return the stored result, or ``None`` on a miss."""
        check_field(field)
        changes = self._validate_patch(patch)
        with self._lock:
            position = self._first_position(field, value)
            if position is None:
                logger.info("book.update.miss", extra={"field": field, "value": value})
                return None
            current = self._books[position]
            updated = self._validate({**current.model_dump(), **changes})
            self._books[position] = updated
            self._rebuild_indexes()
        logger.info("book.update", extra={"title": current.title, "fields": sorted(changes)})
        return updated

    def delete_one(self, field: str, value: Any) -> bool:
        check_field(field)
        with self._lock:
            position = self._first_position(field, value)
            if position is None:
                logger.info("book.delete.miss", extra={"field": field, "value": value})
                return False
            removed = self._books.pop(position)
            self._rebuild_indexes()
        logger.info("book.delete", extra={"title": removed.title})
        return True

    def create_index(self, keys: Sequence[tuple[str, int | SortDirection | str]]) -> IndexHandle:
        normalized = tuple(
            (check_field(field), 1 if SortDirection.parse(direction) is SortDirection.asc else -1)
            for field, direction in keys
        )
        handle = IndexHandle(name=_index_name(normalized), keys=normalized)
        with self._lock:
            existing = self._indexes.get(handle.name)
            if existing is not None:
                return existing.handle
            index = _Index(handle)
            index.rebuild(self._books)
            self._indexes[handle.name] = index
        logger.info("index.create", extra={"index": handle.name})
        return handle

    def list_indexes(self) -> list[IndexHandle]:
        with self._lock:
            return [index.handle for index in self._indexes.values()]

    def explain(self, field: str, value: Any) -> ExplainStats:
        check_field(field)
        with self._lock:
            index = self._index_for(field)
            total = len(self._books)
            if index is not None and isinstance(value, Hashable):
                positions = index.lookup(value)
                return ExplainStats(
                    stage="IXSCAN",
                    index_name=index.handle.name,
                    docs_examined=len(positions),
                    keys_examined=len(positions),
                    returned=len(positions),
                )
            returned = sum(1 for book in self._books if getattr(book, field) == value)
        return ExplainStats(stage="COLLSCAN", docs_examined=total, keys_examined=0, returned=returned)

    def _index_for(self, field: str) -> _Index | None:
        for index in self._indexes.values():
            if index.handle.leading_field == field:
                return index
        return None

    def _first_position(self, field: str, value: Any) -> int | None:
        for position, book in enumerate(self._books):
            if getattr(book, field) == value:
                return position
        return None

    def _rebuild_indexes(self) -> None:
        for index in self._indexes.values():
            index.rebuild(self._books)

    @staticmethod
    def _validate(record: Book | Mapping[str, Any]) -> Book:
        if isinstance(record, Book):
            return record
        if not isinstance(record, Mapping):
            raise ValidationError(f"Expected a book mapping, got {type(record).__name__}")
        try:
            return Book.model_validate(dict(record))
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc

    @staticmethod
    def _validate_patch(patch: BookPatch | Mapping[str, Any]) -> dict[str, Any]:
        if isinstance(patch, BookPatch):
            return patch.model_dump(exclude_unset=True)
        unknown = [key for key in patch if key not in BOOK_FIELDS]
        if unknown:
            raise InvalidFieldError(unknown[0])
        try:
            return BookPatch.model_validate(dict(patch)).model_dump(exclude_unset=True)
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc
