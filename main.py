import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import verify_token
from cache import Cache, build_cache
from config import get_settings
from database import SessionLocal, engine, init_models
from errors import (
    AuthenticationError,
    BusinessRuleViolation,
    DomainError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from models import TransactionType
from periods import parse_iso_date
from schemas import (
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    GoalIn,
    GoalUpdate,
    TransactionFilters,
    TransactionImportIn,
    TransactionIn,
    TransactionUpdate,
)
from services import (
    BudgetService,
    CategoryService,
    GoalService,
    Page,
    ReportService,
    STORE_ERROR_MESSAGE,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_models()
    app.state.cache = build_cache(settings.redis_url, settings.cache_ttl_secs)
    logger.info(
        f"startup: cache={'redis' if settings.redis_url else 'memory'} "
        f"ttl={settings.cache_ttl_secs}"
    )
    try:
        yield
    finally:
        await app.state.cache.close()
        await engine.dispose()


app = FastAPI(title="Finance API", lifespan=lifespan)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as db:
        yield db


def get_cache(request: Request) -> Cache:
    return request.app.state.cache


def current_user_id(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("User not authenticated")
    return verify_token(token.strip())


_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (BusinessRuleViolation, 400),
    (AuthenticationError, 401),
    (StoreError, 500),
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status = code
            break
    if status == 500:
        logger.error(f"request_failed: path={request.url.path} error={exc!r}")
        return JSONResponse({"detail": STORE_ERROR_MESSAGE}, status_code=500)
    body: dict[str, object] = {"detail": str(exc)}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    return JSONResponse(body, status_code=status)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query")]
    return JSONResponse(
        {"detail": first.get("msg", "Invalid request"), "field": ".".join(loc) or None},
        status_code=400,
    )


def _int_param(
    request: Request, name: str, default: Optional[int] = None
) -> Optional[int]:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer", field=name) from exc


def _type_param(request: Request) -> Optional[TransactionType]:
    raw = request.query_params.get("type")
    if not raw:
        return None
    try:
        return TransactionType(raw.upper())
    except ValueError as exc:
        raise ValidationError(f"Invalid type: {raw}", field="type") from exc


def _date_param(request: Request, name: str):
    raw = request.query_params.get(name)
    if not raw:
        return None
    return parse_iso_date(raw, name)


def filters_from_request(request: Request) -> TransactionFilters:
    sort = request.query_params.get("sort", "asc").lower()
    if sort not in ("asc", "desc"):
        raise ValidationError("sort must be asc or desc", field="sort")
    return TransactionFilters(
        type=_type_param(request),
        date=_date_param(request, "date"),
        date_gte=_date_param(request, "date__gte"),
        date_lte=_date_param(request, "date__lte"),
        sort=sort,
        search=request.query_params.get("search") or None,
    )


def paginate(response: Response, page: Page) -> list[dict[str, object]]:
    response.headers["x-total-count"] = str(page.total)
    response.headers["x-current-page"] = str(page.page)
    response.headers["x-per-page"] = str(page.per_page)
    response.headers["x-total-pages"] = str(page.total_pages)
    return page.items


def _paging(request: Request) -> tuple[int, int]:
    return _int_param(request, "page", 1), _int_param(request, "perPage", 10)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/category", status_code=201)
async def create_category(
    payload: CategoryIn,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await CategoryService(db, cache, user_id).create(payload)


@app.get("/category")
async def list_categories(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    page, per_page = _paging(request)
    result = await CategoryService(db, cache, user_id).list(
        _type_param(request), page, per_page
    )
    return paginate(response, result)


@app.get("/category/{category_id}")
async def get_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await CategoryService(db, cache, user_id).get(category_id)


@app.patch("/category/{category_id}")
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await CategoryService(db, cache, user_id).update(category_id, payload)


@app.delete("/category/{category_id}")
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await CategoryService(db, cache, user_id).delete(category_id)


@app.post("/transaction", status_code=201)
async def create_transaction(
    payload: TransactionIn,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await TransactionService(db, cache, user_id).create(payload)


@app.post("/transaction/import", status_code=201)
async def import_transactions(
    payload: list[TransactionImportIn],
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    created = await TransactionService(db, cache, user_id).import_many(payload)
    return {"count": created}


@app.get("/transaction")
async def list_transactions(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    page, per_page = _paging(request)
    result = await TransactionService(db, cache, user_id).list(
        filters_from_request(request), page, per_page
    )
    return paginate(response, result)


@app.get("/transaction/{transaction_id}")
async def get_transaction(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await TransactionService(db, cache, user_id).get(transaction_id)


@app.patch("/transaction/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await TransactionService(db, cache, user_id).update(transaction_id, payload)


@app.delete("/transaction/{transaction_id}")
async def delete_transaction(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await TransactionService(db, cache, user_id).delete(transaction_id)


@app.post("/budget", status_code=201)
async def create_budget(
    payload: BudgetIn,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await BudgetService(db, cache, user_id).create(payload)


@app.get("/budget")
async def list_budgets(
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await BudgetService(db, cache, user_id).list()


@app.get("/budget/{budget_id}")
async def get_budget(
    budget_id: int,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await BudgetService(db, cache, user_id).get(budget_id)


@app.patch("/budget/{budget_id}")
async def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await BudgetService(db, cache, user_id).update(budget_id, payload)


@app.delete("/budget/{budget_id}")
async def delete_budget(
    budget_id: int,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await BudgetService(db, cache, user_id).delete(budget_id)


@app.post("/goal", status_code=201)
async def create_goal(
    payload: GoalIn,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await GoalService(db, cache, user_id).create(payload)


@app.get("/goal")
async def list_goals(
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await GoalService(db, cache, user_id).list()


@app.get("/goal/{goal_id}")
async def get_goal(
    goal_id: int,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await GoalService(db, cache, user_id).get(goal_id)


@app.patch("/goal/{goal_id}")
async def update_goal(
    goal_id: int,
    payload: GoalUpdate,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await GoalService(db, cache, user_id).update(goal_id, payload)


@app.delete("/goal/{goal_id}")
async def delete_goal(
    goal_id: int,
    db: AsyncSession = Depends(get_db),
    cache: Cache = Depends(get_cache),
    user_id: str = Depends(current_user_id),
):
    return await GoalService(db, cache, user_id).delete(goal_id)


def _period_params(request: Request) -> tuple[Optional[str], Optional[str]]:
    return (
        request.query_params.get("period__gte"),
        request.query_params.get("period__lte"),
    )


@app.get("/reports/monthly")
async def monthly_reports(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = _period_params(request)
    return await ReportService(db, user_id).list_monthly_reports(start, end)


@app.get("/reports/categories")
async def categories_reports(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = _period_params(request)
    limit = _int_param(request, "limit")
    return await ReportService(db, user_id).list_categories_reports(start, end, limit)


@app.get("/reports/balance")
async def balance_reports(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = _period_params(request)
    return await ReportService(db, user_id).list_balance_reports(start, end)


@app.get("/reports/summary")
async def summary_reports(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    start, end = _period_params(request)
    return await ReportService(db, user_id).list_summary_reports(start, end)


def main() -> None:
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
