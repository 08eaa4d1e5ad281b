import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, List

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware

from .catalog import QueryCatalog
from .config import get_settings
from .errors import InvalidFieldError, UnknownReportError, ValidationError
from .loader import load_books
from .models import Book, ExplainStats, IndexHandle, Predicate, SortDirection
from .queries import coerce_value, paginate, project, sort_by
from .reports import REPORTS, coerce_params, get_report, run_report, to_jsonable
from .telemetry import configure_logging, configure_telemetry

settings = get_settings()
configure_logging(settings)

_catalog: QueryCatalog | None = None


def get_catalog() -> QueryCatalog:
    global _catalog
    if _catalog is None:
        _catalog = QueryCatalog(load_books(settings.dataset_path))
    return _catalog


@asynccontextmanager
async def lifespan(app: FastAPI):
    catalog = get_catalog()
    logging.getLogger("bookstore.app").info("catalog.ready", extra={"count": len(catalog)})
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Read-oriented reports over an in-memory bookstore catalog.",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)
configure_telemetry(app, settings)

if settings.allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
router_v1 = APIRouter(prefix="/api/v1", tags=["v1"])


def _bad_field(exc: InvalidFieldError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _invalid(exc: ValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(exc))


@router_v1.get("/health", tags=["health"])
def health() -> dict:
    return {"status": "ok"}


@router_v1.get("/books")
def list_books(
    genre: str | None = None,
    author: str | None = None,
    published_after: int | None = None,
    in_stock: bool | None = None,
    sort: str | None = None,
    direction: SortDirection = SortDirection.asc,
    page: int = Query(default=0, ge=0),
    page_size: int | None = Query(default=None, gt=0),
    fields: str | None = None,
    catalog: QueryCatalog = Depends(get_catalog),
) -> List[Any]:
    predicates: list[Predicate] = []
    if genre is not None:
        predicates.append(Predicate(field="genre", value=genre))
    if author is not None:
        predicates.append(Predicate(field="author", value=author))
    if published_after is not None:
        predicates.append(Predicate(field="published_year", op="gt", value=published_after))
    if in_stock is not None:
        predicates.append(Predicate(field="in_stock", value=in_stock))
    books = catalog.find_combined(predicates)
    try:
        if sort:
            books = sort_by(books, sort, direction)
        books = paginate(books, page_size or settings.page_size, page)
        if fields:
            return [partial.fields() for partial in project(books, fields.split(","))]
    except InvalidFieldError as exc:
        raise _bad_field(exc) from exc
    return books


@router_v1.post("/books", response_model=Book, status_code=status.HTTP_201_CREATED)
def create_book(payload: dict = Body(...), catalog: QueryCatalog = Depends(get_catalog)) -> Book:
    try:
        return catalog.insert_one(payload)
    except ValidationError as exc:
        raise _invalid(exc) from exc


@router_v1.get("/books/{title}", response_model=Book)
def get_book(title: str, catalog: QueryCatalog = Depends(get_catalog)) -> Book:
    matches = catalog.find_by_field("title", title)
    if not matches:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return matches[0]


@router_v1.put("/books/{title}", response_model=Book)
def update_book(title: str, payload: dict = Body(...), catalog: QueryCatalog = Depends(get_catalog)) -> Book:
    try:
        updated = catalog.find_one_and_update("title", title, payload)
    except InvalidFieldError as exc:
        raise _bad_field(exc) from exc
    except ValidationError as exc:
        raise _invalid(exc) from exc
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return updated


@router_v1.delete("/books/{title}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(title: str, catalog: QueryCatalog = Depends(get_catalog)) -> None:
    if not catalog.delete_one("title", title):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")


@router_v1.get("/reports")
def list_reports() -> List[dict]:
    return [
        {"name": report.name, "description": report.description, "mutates": report.mutates}
        for report in REPORTS.values()
    ]


def _run(catalog: QueryCatalog, name: str, raw_params: dict[str, Any], *, allow_mutation: bool) -> Any:
    try:
        report = get_report(name)
    except UnknownReportError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if report.mutates and not allow_mutation:
        raise HTTPException(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, detail="Report changes data; use POST")
    try:
        params = coerce_params(report, {key: str(value) for key, value in raw_params.items()})
        result = run_report(catalog, name, **params)
    except InvalidFieldError as exc:
        raise _bad_field(exc) from exc
    except ValidationError as exc:
        raise _invalid(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"report": name, "result": to_jsonable(result)}


@router_v1.get("/reports/{name}")
def read_report(name: str, request: Request, catalog: QueryCatalog = Depends(get_catalog)) -> dict:
    return _run(catalog, name, dict(request.query_params), allow_mutation=False)


@router_v1.post("/reports/{name}")
def write_report(
    name: str,
    params: dict[str, Any] | None = Body(default=None),
    catalog: QueryCatalog = Depends(get_catalog),
) -> dict:
    return _run(catalog, name, params or {}, allow_mutation=True)


@router_v1.get("/indexes", response_model=List[IndexHandle])
def list_indexes(catalog: QueryCatalog = Depends(get_catalog)) -> List[IndexHandle]:
    return catalog.list_indexes()


@router_v1.post("/indexes", response_model=IndexHandle, status_code=status.HTTP_201_CREATED)
def create_index(keys: List[tuple[str, int]] = Body(...), catalog: QueryCatalog = Depends(get_catalog)) -> IndexHandle:
    try:
        return catalog.create_index(keys)
    except InvalidFieldError as exc:
        raise _bad_field(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router_v1.get("/explain", response_model=ExplainStats)
def explain(field: str, value: str, catalog: QueryCatalog = Depends(get_catalog)) -> ExplainStats:
    try:
        return catalog.explain(field, coerce_value(field, value))
    except InvalidFieldError as exc:
        raise _bad_field(exc) from exc
    except ValidationError as exc:
        raise _invalid(exc) from exc


app.include_router(router_v1)


request_logger = logging.getLogger("bookstore.requests")


@app.middleware("http")
async def request_logging_middleware(request, call_next):
    request_logger.info("request.start", extra={"path": request.url.path, "method": request.method})
    response = await call_next(request)
    request_logger.info(
        "request.end",
        extra={"path": request.url.path, "method": request.method, "status": response.status_code},
    )
    return response


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response
