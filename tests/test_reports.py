from datetime import date

import pytest

from errors import ValidationError
from models import Category, Transaction, TransactionType
from services import ReportService

USER = "user-1"


async def _seed(session):
    food = Category(
        user_id=USER, name="Food", type=TransactionType.expense, color="#f00", icon="a"
    )
    rent = Category(
        user_id=USER, name="Rent", type=TransactionType.expense, color="#0f0", icon="b"
    )
    salary = Category(
        user_id=USER, name="Salary", type=TransactionType.income, color="#00f", icon="c"
    )
    session.add_all([food, rent, salary])
    await session.flush()

    rows = [
        (TransactionType.income, 100000, date(2024, 1, 15), salary),
        (TransactionType.expense, 30000, date(2024, 1, 20), rent),
        (TransactionType.expense, 20000, date(2024, 2, 5), food),
        (TransactionType.expense, 777, date(2024, 3, 1), food),
    ]
    for txn_type, cents, when, category in rows:
        session.add(
            Transaction(
                user_id=USER,
                type=txn_type,
                description="seed",
                category_id=category.id,
                date=when,
                amount_cents=cents,
            )
        )
    session.add(
        Transaction(
            user_id="other",
            type=TransactionType.income,
            description="not mine",
            date=date(2024, 1, 1),
            amount_cents=5_000_000,
        )
    )
    await session.commit()


async def test_monthly_and_summary_reports(session):
    await _seed(session)
    reports = ReportService(session, USER)

    monthly = await reports.list_monthly_reports("2024-01-01", "2024-02-28")
    summary = await reports.list_summary_reports("2024-01-01", "2024-02-28")

    assert monthly == [
        {"name": "Jan/2024", "income": 1000.0, "expense": 300.0},
        {"name": "Fev/2024", "income": 0.0, "expense": 200.0},
    ]
    assert summary == {"income": 1000.0, "expense": 500.0, "balance": 500.0}


async def test_balance_report(session):
    await _seed(session)
    balance = await ReportService(session, USER).list_balance_reports(
        "2024-01-01T00:00:00Z", "2024-12-31"
    )
    assert balance == [
        {"name": "Jan", "balance": 700.0},
        {"name": "Fev", "balance": -200.0},
        {"name": "Mar", "balance": -7.77},
    ]


async def test_categories_report_uses_expenses_in_range(session):
    await _seed(session)
    reports = ReportService(session, USER)

    rows = await reports.list_categories_reports("2024-01-01", "2024-03-31")
    assert rows == [
        {"name": "Rent", "value": 300.0, "fill": "#0f0"},
        {"name": "Food", "value": 207.77, "fill": "#f00"},
    ]
    limited = await reports.list_categories_reports("2024-01-01", "2024-03-31", limit=1)
    assert [r["name"] for r in limited] == ["Rent"]


async def test_empty_range_returns_empty_reports(session):
    await _seed(session)
    reports = ReportService(session, USER)
    assert await reports.list_monthly_reports("2030-01-01", "2030-12-31") == []
    assert await reports.list_summary_reports("2030-01-01", "2030-12-31") == {
        "income": 0.0,
        "expense": 0.0,
        "balance": 0.0,
    }


@pytest.mark.parametrize(
    "start, end, field",
    [
        (None, "2024-01-31", "period__gte"),
        ("2024-01-01", "garbage", "period__lte"),
        ("2024-02-01", "2024-01-01", "period__gte"),
    ],
)
async def test_invalid_periods_are_rejected(session, start, end, field):
    with pytest.raises(ValidationError) as exc:
        await ReportService(session, USER).list_monthly_reports(start, end)
    assert exc.value.field == field


async def test_categories_report_rejects_bad_limit(session):
    with pytest.raises(ValidationError) as exc:
        await ReportService(session, USER).list_categories_reports(
            "2024-01-01", "2024-01-31", limit=0
        )
    assert exc.value.field == "limit"
