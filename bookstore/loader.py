"""Load book records into memory.

Reading from an external database is left to callers; this module only
understands JSON documents (a file, or raw text) and already-parsed mappings.
The packaged ``data/books.json`` is the bookstore sample dataset used when no
source is configured.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import Book

logger = logging.getLogger("bookstore.loader")

SAMPLE_DATASET = Path(__file__).resolve().parent / "data" / "books.json"

_BOOK_LIST = TypeAdapter(list[Book])


def _read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Could not parse books file at {path}: {exc}") from exc


def load_books(source: str | Path | bytes | Iterable[Mapping[str, Any]] | None = None) -> list[Book]:
    """Return validated books from ``source``.

    ``source`` may be a path to a JSON file, raw JSON text (``str`` starting
    with ``[`` or ``bytes``), or an iterable of mappings. ``None`` loads the
    sample dataset. A malformed document raises :class:`ValidationError`.
    """
    if source is None:
        source = SAMPLE_DATASET

    if isinstance(source, bytes) or (isinstance(source, str) and source.lstrip().startswith("[")):
        try:
            raw = json.loads(source)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Could not parse books JSON: {exc}") from exc
        origin = "<json>"
    elif isinstance(source, (str, Path)):
        path = Path(source).expanduser()
        raw = _read_json(path)
        origin = str(path)
    else:
        raw = [dict(entry) for entry in source]
        origin = "<records>"

    if not isinstance(raw, list):
        raise ValidationError(f"Books document must be a JSON array, got {type(raw).__name__}")

    # mongo exports carry an _id the record set has no use for
    cleaned = [{k: v for k, v in entry.items() if k != "_id"} if isinstance(entry, dict) else entry for entry in raw]
    try:
        books = _BOOK_LIST.validate_python(cleaned)
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc

    logger.info("books.load", extra={"source": origin, "count": len(books)})
    return books
