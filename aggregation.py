"""Bucketing and aggregation of transactions for reports.

Everything in here is pure: callers fetch transactions, hand them in as
objects exposing ``date``, ``type``, ``amount_cents`` and ``category_id``,
and get report rows back. Sums are kept in integer cents and only turned
into 2-decimal amounts when a row is formatted.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Protocol, Union

from errors import DataIntegrityError
from models import TransactionType
from money import cents_to_amount

MONTH_ABBREVIATIONS = (
    "Jan",
    "Fev",
    "Mar",
    "Abr",
    "Mai",
    "Jun",
    "Jul",
    "Ago",
    "Set",
    "Out",
    "Nov",
    "Dez",
)


class TransactionLike(Protocol):
    date: Union[date, datetime, str]
    type: TransactionType
    amount_cents: int
    category_id: Optional[int]


@dataclass
class MonthlyTotals:
    income_cents: int = 0
    expense_cents: int = 0

    def add(self, txn_type: TransactionType, amount_cents: int) -> None:
        if txn_type == TransactionType.income:
            self.income_cents += amount_cents
        elif txn_type == TransactionType.expense:
            self.expense_cents += amount_cents

    @property
    def balance_cents(self) -> int:
        return self.income_cents - self.expense_cents


@dataclass(frozen=True)
class CategoryInfo:
    name: str
    color: str


def transaction_date(txn: TransactionLike) -> date:
    value = txn.date
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError as exc:
            raise DataIntegrityError(f"Unparseable transaction date: {value!r}") from exc
    raise DataIntegrityError(f"Unparseable transaction date: {value!r}")


def signed_amount(txn: TransactionLike) -> int:
    if txn.type == TransactionType.income:
        return txn.amount_cents
    if txn.type == TransactionType.expense:
        return -txn.amount_cents
    return 0


def month_label(value: date) -> str:
    return f"{MONTH_ABBREVIATIONS[value.month - 1]}/{value.year}"


def bucket_by_month(
    transactions: Iterable[TransactionLike],
) -> "OrderedDict[tuple[int, int], MonthlyTotals]":
    """Group into calendar months, ordered chronologically by (year, month)."""
    buckets: dict[tuple[int, int], MonthlyTotals] = {}
    for txn in transactions:
        txn_date = transaction_date(txn)
        key = (txn_date.year, txn_date.month)
        buckets.setdefault(key, MonthlyTotals()).add(txn.type, txn.amount_cents)
    return OrderedDict(sorted(buckets.items()))


def bucket_by_month_name(transactions: Iterable[TransactionLike]) -> dict[int, int]:
    """Running balance per month number (1-12), ignoring the year.

    Transactions from the same month of different years land in the same
    bucket. Reports over ranges longer than a year therefore fold years
    together.
    """
    balances: dict[int, int] = {}
    for txn in transactions:
        month = transaction_date(txn).month
        balances[month] = balances.get(month, 0) + signed_amount(txn)
    return dict(sorted(balances.items()))


def bucket_by_category(
    transactions: Iterable[TransactionLike],
    *,
    only_type: Optional[TransactionType] = None,
) -> dict[int, int]:
    totals: dict[int, int] = {}
    for txn in transactions:
        if txn.category_id is None:
            continue
        if only_type is not None and txn.type != only_type:
            continue
        totals[txn.category_id] = totals.get(txn.category_id, 0) + txn.amount_cents
    return totals


def summarize(transactions: Iterable[TransactionLike]) -> MonthlyTotals:
    totals = MonthlyTotals()
    for txn in transactions:
        totals.add(txn.type, txn.amount_cents)
    return totals


def monthly_report(transactions: Iterable[TransactionLike]) -> list[dict[str, object]]:
    rows = []
    for (year, month), totals in bucket_by_month(transactions).items():
        rows.append(
            {
                "name": month_label(date(year, month, 1)),
                "income": cents_to_amount(totals.income_cents),
                "expense": cents_to_amount(totals.expense_cents),
            }
        )
    return rows


def balance_report(transactions: Iterable[TransactionLike]) -> list[dict[str, object]]:
    return [
        {
            "name": MONTH_ABBREVIATIONS[month - 1],
            "balance": cents_to_amount(balance),
        }
        for month, balance in bucket_by_month_name(transactions).items()
    ]


def category_report(
    transactions: Iterable[TransactionLike],
    categories: dict[int, CategoryInfo],
    limit: Optional[int] = None,
) -> list[dict[str, object]]:
    """Expense totals per category, largest first, zero entries dropped."""
    totals = bucket_by_category(transactions, only_type=TransactionType.expense)
    ranked = sorted(
        (
            (category_id, cents)
            for category_id, cents in totals.items()
            if cents > 0 and category_id in categories
        ),
        key=lambda item: (-item[1], categories[item[0]].name),
    )
    if limit is not None:
        ranked = ranked[:limit]
    return [
        {
            "name": categories[category_id].name,
            "value": cents_to_amount(cents),
            "fill": categories[category_id].color,
        }
        for category_id, cents in ranked
    ]


def summary_report(transactions: Iterable[TransactionLike]) -> dict[str, float]:
    totals = summarize(transactions)
    return {
        "income": cents_to_amount(totals.income_cents),
        "expense": cents_to_amount(totals.expense_cents),
        "balance": cents_to_amount(totals.balance_cents),
    }
