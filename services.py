from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from aggregation import (
    CategoryInfo,
    balance_report,
    category_report,
    monthly_report,
    summary_report,
)
from cache import Cache, derive_cache_key
from errors import (
    AuthenticationError,
    BusinessRuleViolation,
    DataIntegrityError,
    DomainError,
    NotFoundError,
    StoreError,
    ValidationError,
    budget_not_found,
    category_delete_blocked,
    category_not_found,
    goal_not_found,
    transaction_not_found,
)
from models import Budget, Category, Goal, Transaction, TransactionType
from money import cents_to_amount, format_amount, to_cents
from periods import Period, month_bounds, parse_period
from recurrence import build_recurring_dates, local_today
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetUpdate,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    GoalIn,
    GoalOut,
    GoalUpdate,
    TransactionFilters,
    TransactionImportIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

CATEGORIES = "categories"
TRANSACTIONS = "transactions"
BUDGETS = "budgets"
GOALS = "goals"

# Cache prefixes whose entries embed data owned by the key's resource.
INVALIDATES: dict[str, tuple[str, ...]] = {
    CATEGORIES: (CATEGORIES, TRANSACTIONS, BUDGETS, GOALS),
    TRANSACTIONS: (TRANSACTIONS,),
    BUDGETS: (BUDGETS,),
    GOALS: (GOALS,),
}

STORE_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


@dataclass
class Page:
    items: list[dict[str, Any]]
    total: int
    page: int
    per_page: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page)


def _validate_paging(page: int, per_page: int) -> None:
    if page < 1:
        raise ValidationError("page must be greater than 0", field="page")
    if per_page < 1:
        raise ValidationError("perPage must be greater than 0", field="perPage")


def _category_dict(category: Category) -> dict[str, Any]:
    return CategoryOut.model_validate(category).model_dump(mode="json", by_alias=True)


def _transaction_dict(txn: Transaction) -> dict[str, Any]:
    return TransactionOut(
        id=txn.id,
        user_id=txn.user_id,
        type=txn.type,
        description=txn.description,
        date=txn.date,
        account=txn.account,
        amount=cents_to_amount(txn.amount_cents),
        paid=txn.paid,
        category=CategoryOut.model_validate(txn.category) if txn.category else None,
    ).model_dump(mode="json", by_alias=True)


def _budget_dict(budget: Budget) -> dict[str, Any]:
    return BudgetOut(
        id=budget.id,
        user_id=budget.user_id,
        category=CategoryOut.model_validate(budget.category),
        icon=budget.icon,
        color=budget.color,
        limit=cents_to_amount(budget.limit_cents),
        date=budget.date,
    ).model_dump(mode="json", by_alias=True)


def _goal_dict(goal: Goal) -> dict[str, Any]:
    return GoalOut(
        id=goal.id,
        user_id=goal.user_id,
        category=CategoryOut.model_validate(goal.category),
        title=goal.title,
        description=goal.description,
        target_amount=cents_to_amount(goal.target_amount_cents),
        current_amount=cents_to_amount(goal.current_amount_cents),
        deadline=goal.deadline,
    ).model_dump(mode="json", by_alias=True)


class _StoreAccess:
    """Shared plumbing: user scoping and store error translation."""

    def __init__(self, session: AsyncSession, user_id: str) -> None:
        if not user_id:
            raise AuthenticationError("User not authenticated")
        self.session = session
        self.user_id = user_id

    async def _read(self, run: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await run()
        except SQLAlchemyError as exc:
            logger.exception(f"store_read_failed: user={self.user_id}")
            raise StoreError(STORE_ERROR_MESSAGE) from exc
        except DomainError:
            raise
        except ValueError as exc:
            # result processors reject values the column type cannot hold
            logger.exception(f"store_data_invalid: user={self.user_id}")
            raise DataIntegrityError(STORE_ERROR_MESSAGE) from exc

    async def _scalar(self, stmt) -> Any:
        return await self._read(lambda: self.session.scalar(stmt))

    async def _scalars(self, stmt) -> list[Any]:
        async def run() -> list[Any]:
            return list((await self.session.scalars(stmt)).all())

        return await self._read(run)

    async def _rows(self, stmt) -> list[Any]:
        async def run() -> list[Any]:
            return list((await self.session.execute(stmt)).all())

        return await self._read(run)

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception(f"store_write_failed: user={self.user_id}")
            raise StoreError(STORE_ERROR_MESSAGE) from exc

    async def _owned_category(self, category_id: int) -> Category:
        category = await self._scalar(
            select(Category).where(
                Category.id == category_id, Category.user_id == self.user_id
            )
        )
        if category is None:
            raise NotFoundError(category_not_found(category_id))
        return category


class _CachedService(_StoreAccess):
    prefix: str

    def __init__(self, session: AsyncSession, cache: Cache, user_id: str) -> None:
        super().__init__(session, user_id)
        self.cache = cache

    async def _cached(
        self, filters: dict[str, Any], loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        key = derive_cache_key(self.prefix, {"user_id": self.user_id, **filters})
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        value = await loader()
        await self.cache.set(key, value)
        return value

    async def _invalidate(self) -> None:
        for prefix in INVALIDATES[self.prefix]:
            await self.cache.invalidate(prefix)


class CategoryService(_CachedService):
    prefix = CATEGORIES

    async def create(self, data: CategoryIn) -> dict[str, Any]:
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            color=data.color,
            icon=data.icon,
        )
        self.session.add(category)
        await self._commit()
        await self._invalidate()
        return _category_dict(category)

    async def list(
        self,
        type: Optional[TransactionType] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Page:
        _validate_paging(page, per_page)

        async def load() -> dict[str, Any]:
            conditions = [Category.user_id == self.user_id]
            if type is not None:
                conditions.append(Category.type == type)
            total = await self._scalar(
                select(func.count(Category.id)).where(*conditions)
            )
            categories = await self._scalars(
                select(Category)
                .where(*conditions)
                .order_by(Category.name, Category.id)
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            return {
                "items": [_category_dict(c) for c in categories],
                "total": int(total or 0),
            }

        filters = {
            "type": type.value if type else None,
            "page": page,
            "per_page": per_page,
        }
        result = await self._cached(filters, load)
        return Page(result["items"], result["total"], page, per_page)

    async def get(self, category_id: int) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            return _category_dict(await self._owned_category(category_id))

        return await self._cached({"id": category_id}, load)

    async def update(self, category_id: int, data: CategoryUpdate) -> dict[str, Any]:
        category = await self._owned_category(category_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        for field, value in changes.items():
            setattr(category, field, value)
        await self._commit()
        await self._invalidate()
        return _category_dict(category)

    async def delete(self, category_id: int) -> dict[str, Any]:
        category = await self._owned_category(category_id)
        dependents = {}
        for name, model in (
            ("transaction", Transaction),
            ("budget", Budget),
            ("goal", Goal),
        ):
            dependents[name] = int(
                await self._scalar(
                    select(func.count(model.id)).where(model.category_id == category_id)
                )
                or 0
            )
        if any(dependents.values()):
            logger.info(
                f"category_delete_blocked: user={self.user_id} category={category_id}"
            )
            raise BusinessRuleViolation(category_delete_blocked(category_id, dependents))

        payload = _category_dict(category)
        await self.session.delete(category)
        await self._commit()
        await self._invalidate()
        return payload


class TransactionService(_CachedService):
    prefix = TRANSACTIONS

    async def _owned_transaction(self, transaction_id: int) -> Transaction:
        txn = await self._scalar(
            select(Transaction)
            .options(selectinload(Transaction.category))
            .where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
            )
        )
        if txn is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        return txn

    async def create(self, data: TransactionIn) -> dict[str, Any]:
        if (data.repeat_count is None) != (data.interval_days is None):
            field = "interval_days" if data.interval_days is None else "repeat_count"
            raise ValidationError(
                "repeat_count and interval_days must be given together", field=field
            )
        amount_cents = to_cents(data.amount)
        category = await self._owned_category(data.category_id)

        dates = [data.date]
        if data.repeat_count is not None:
            dates.extend(
                build_recurring_dates(data.date, data.repeat_count, data.interval_days)
            )
        txns = [
            Transaction(
                user_id=self.user_id,
                type=data.type,
                description=data.description,
                category=category,
                date=occurrence,
                account=data.account,
                amount_cents=amount_cents,
                paid=data.paid,
            )
            for occurrence in dates
        ]
        self.session.add_all(txns)
        await self._commit()
        await self._invalidate()
        if len(txns) > 1:
            logger.info(
                f"transaction_series_created: user={self.user_id} count={len(txns)}"
            )
        return _transaction_dict(txns[0])

    async def import_many(self, rows: list[TransactionImportIn]) -> int:
        txns = [
            Transaction(
                user_id=self.user_id,
                type=row.type,
                description=row.description,
                date=row.date,
                amount_cents=to_cents(row.amount),
            )
            for row in rows
        ]
        if not txns:
            return 0
        self.session.add_all(txns)
        await self._commit()
        await self._invalidate()
        logger.info(f"transactions_imported: user={self.user_id} count={len(txns)}")
        return len(txns)

    def _conditions(self, filters: TransactionFilters) -> list[Any]:
        conditions = [Transaction.user_id == self.user_id]
        if filters.type:
            conditions.append(Transaction.type == filters.type)
        if filters.date:
            conditions.append(Transaction.date == filters.date)
        if filters.date_gte:
            conditions.append(Transaction.date >= filters.date_gte)
        if filters.date_lte:
            conditions.append(Transaction.date <= filters.date_lte)
        if filters.search:
            term = filters.search
            conditions.append(
                or_(
                    Transaction.description.icontains(term, autoescape=True),
                    Transaction.account.icontains(term, autoescape=True),
                )
            )
        return conditions

    async def list(
        self,
        filters: Optional[TransactionFilters] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Page:
        filters = filters or TransactionFilters()
        _validate_paging(page, per_page)

        async def load() -> dict[str, Any]:
            conditions = self._conditions(filters)
            ordering = (
                (Transaction.date.desc(), Transaction.id.desc())
                if filters.sort == "desc"
                else (Transaction.date.asc(), Transaction.id.asc())
            )
            total = await self._scalar(
                select(func.count(Transaction.id)).where(*conditions)
            )
            txns = await self._scalars(
                select(Transaction)
                .options(selectinload(Transaction.category))
                .where(*conditions)
                .order_by(*ordering)
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            return {
                "items": [_transaction_dict(t) for t in txns],
                "total": int(total or 0),
            }

        key_filters = {
            **filters.model_dump(mode="json"),
            "page": page,
            "per_page": per_page,
        }
        result = await self._cached(key_filters, load)
        return Page(result["items"], result["total"], page, per_page)

    async def get(self, transaction_id: int) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            return _transaction_dict(await self._owned_transaction(transaction_id))

        return await self._cached({"id": transaction_id}, load)

    async def update(
        self, transaction_id: int, data: TransactionUpdate
    ) -> dict[str, Any]:
        txn = await self._owned_transaction(transaction_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "amount" in changes:
            txn.amount_cents = to_cents(changes.pop("amount"))
        if "category_id" in changes:
            txn.category = await self._owned_category(changes.pop("category_id"))
        for field, value in changes.items():
            setattr(txn, field, value)
        await self._commit()
        await self._invalidate()
        return _transaction_dict(txn)

    async def delete(self, transaction_id: int) -> dict[str, Any]:
        txn = await self._owned_transaction(transaction_id)
        payload = _transaction_dict(txn)
        await self.session.delete(txn)
        await self._commit()
        await self._invalidate()
        return payload


class BudgetService(_CachedService):
    """Budgets with a ``spent`` figure derived from transactions.

    Budget rows are cached like any other resource. ``spent`` is the sum of
    the category's transactions in the calendar month of the budget date and
    is recomputed from the store on every read.
    """

    prefix = BUDGETS

    async def _owned_budget(self, budget_id: int) -> Budget:
        budget = await self._scalar(
            select(Budget)
            .options(selectinload(Budget.category))
            .where(Budget.id == budget_id, Budget.user_id == self.user_id)
        )
        if budget is None:
            raise NotFoundError(budget_not_found(budget_id))
        return budget

    async def spent_cents(self, category_id: int, period_date: date) -> int:
        period = month_bounds(period_date)
        total = await self._scalar(
            select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category_id,
                Transaction.date.between(period.start, period.end),
            )
        )
        return int(total or 0)

    async def _with_spent(self, row: dict[str, Any]) -> dict[str, Any]:
        spent = await self.spent_cents(
            row["category"]["id"], date.fromisoformat(row["date"])
        )
        return {**row, "spent": format_amount(spent)}

    async def create(self, data: BudgetIn) -> dict[str, Any]:
        limit_cents = to_cents(data.limit, field="limit")
        category = await self._owned_category(data.category_id)
        budget = Budget(
            user_id=self.user_id,
            category=category,
            limit_cents=limit_cents,
            date=data.date,
            icon=data.icon,
            color=data.color,
        )
        self.session.add(budget)
        await self._commit()
        await self._invalidate()
        return await self._with_spent(_budget_dict(budget))

    async def list(self) -> list[dict[str, Any]]:
        async def load() -> list[dict[str, Any]]:
            budgets = await self._scalars(
                select(Budget)
                .options(selectinload(Budget.category))
                .where(Budget.user_id == self.user_id)
                .order_by(Budget.date, Budget.id)
            )
            return [_budget_dict(b) for b in budgets]

        rows = await self._cached({"scope": "list"}, load)
        return [await self._with_spent(row) for row in rows]

    async def get(self, budget_id: int) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            return _budget_dict(await self._owned_budget(budget_id))

        row = await self._cached({"id": budget_id}, load)
        return await self._with_spent(row)

    async def update(self, budget_id: int, data: BudgetUpdate) -> dict[str, Any]:
        budget = await self._owned_budget(budget_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "limit" in changes:
            budget.limit_cents = to_cents(changes.pop("limit"), field="limit")
        if "category_id" in changes:
            budget.category = await self._owned_category(changes.pop("category_id"))
        for field, value in changes.items():
            setattr(budget, field, value)
        await self._commit()
        await self._invalidate()
        return await self._with_spent(_budget_dict(budget))

    async def delete(self, budget_id: int) -> dict[str, Any]:
        budget = await self._owned_budget(budget_id)
        await self.session.delete(budget)
        await self._commit()
        await self._invalidate()
        return {"id": budget_id, "deleted": True}


class GoalService(_CachedService):
    prefix = GOALS

    async def _owned_goal(self, goal_id: int) -> Goal:
        goal = await self._scalar(
            select(Goal)
            .options(selectinload(Goal.category))
            .where(Goal.id == goal_id, Goal.user_id == self.user_id)
        )
        if goal is None:
            raise NotFoundError(goal_not_found(goal_id))
        return goal

    @staticmethod
    def _check_deadline(deadline: date) -> None:
        if deadline <= local_today():
            raise ValidationError("Deadline must be in the future", field="deadline")

    async def create(self, data: GoalIn) -> dict[str, Any]:
        self._check_deadline(data.deadline)
        target_cents = to_cents(data.target_amount, field="targetAmount")
        current_cents = to_cents(data.current_amount, field="currentAmount")
        category = await self._owned_category(data.category_id)
        goal = Goal(
            user_id=self.user_id,
            category=category,
            title=data.title,
            description=data.description,
            target_amount_cents=target_cents,
            current_amount_cents=current_cents,
            deadline=data.deadline,
        )
        self.session.add(goal)
        await self._commit()
        await self._invalidate()
        return _goal_dict(goal)

    async def list(self) -> list[dict[str, Any]]:
        async def load() -> list[dict[str, Any]]:
            goals = await self._scalars(
                select(Goal)
                .options(selectinload(Goal.category))
                .where(Goal.user_id == self.user_id)
                .order_by(Goal.deadline, Goal.id)
            )
            return [_goal_dict(g) for g in goals]

        return await self._cached({"scope": "list"}, load)

    async def get(self, goal_id: int) -> dict[str, Any]:
        async def load() -> dict[str, Any]:
            return _goal_dict(await self._owned_goal(goal_id))

        return await self._cached({"id": goal_id}, load)

    async def update(self, goal_id: int, data: GoalUpdate) -> dict[str, Any]:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "deadline" in changes:
            self._check_deadline(changes["deadline"])
        goal = await self._owned_goal(goal_id)
        if "target_amount" in changes:
            goal.target_amount_cents = to_cents(
                changes.pop("target_amount"), field="targetAmount"
            )
        if "current_amount" in changes:
            goal.current_amount_cents = to_cents(
                changes.pop("current_amount"), field="currentAmount"
            )
        if "category_id" in changes:
            goal.category = await self._owned_category(changes.pop("category_id"))
        for field, value in changes.items():
            setattr(goal, field, value)
        await self._commit()
        await self._invalidate()
        return _goal_dict(goal)

    async def delete(self, goal_id: int) -> dict[str, Any]:
        goal = await self._owned_goal(goal_id)
        payload = _goal_dict(goal)
        await self.session.delete(goal)
        await self._commit()
        await self._invalidate()
        return payload


class ReportService(_StoreAccess):
    """Aggregate reports over one read of the user's transactions.

    Each report validates its ISO date range before touching the store,
    fetches the transactions inside ``[period_start, period_end]`` and hands
    them to :mod:`aggregation`. Reports are computed per request and never
    cached.
    """

    async def _transactions_in(
        self, period: Period, only_type: Optional[TransactionType] = None
    ) -> list[Any]:
        stmt = (
            select(
                Transaction.date,
                Transaction.type,
                Transaction.amount_cents,
                Transaction.category_id,
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.date, Transaction.id)
        )
        if only_type is not None:
            stmt = stmt.where(Transaction.type == only_type)
        return await self._rows(stmt)

    async def list_monthly_reports(
        self, period_start: Optional[str], period_end: Optional[str]
    ) -> list[dict[str, object]]:
        period = parse_period(period_start, period_end)
        return monthly_report(await self._transactions_in(period))

    async def list_categories_reports(
        self,
        period_start: Optional[str],
        period_end: Optional[str],
        limit: Optional[int] = None,
    ) -> list[dict[str, object]]:
        period = parse_period(period_start, period_end)
        if limit is not None and limit < 1:
            raise ValidationError("limit must be a positive number", field="limit")
        txns = await self._transactions_in(period, TransactionType.expense)
        categories = {
            row.id: CategoryInfo(name=row.name, color=row.color)
            for row in await self._rows(
                select(Category.id, Category.name, Category.color).where(
                    Category.user_id == self.user_id
                )
            )
        }
        return category_report(txns, categories, limit)

    async def list_balance_reports(
        self, period_start: Optional[str], period_end: Optional[str]
    ) -> list[dict[str, object]]:
        period = parse_period(period_start, period_end)
        return balance_report(await self._transactions_in(period))

    async def list_summary_reports(
        self, period_start: Optional[str], period_end: Optional[str]
    ) -> dict[str, float]:
        period = parse_period(period_start, period_end)
        return summary_report(await self._transactions_in(period))
