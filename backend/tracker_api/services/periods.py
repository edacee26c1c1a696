"""
Financial-month windows and the aggregations computed over them.

A financial month starts on the user's `month_start_day` (1-28) instead of
the first of the calendar month. Everything here is pure: callers hand in
rows already scoped to one user with soft-deleted rows removed, and get new
dicts back.

Rows are mappings with at least `amount`, `type` and `transaction_at`;
breakdowns also read `category_id`, `category_name` and `category_color`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Literal

TransactionType = Literal["income", "expense"]
Row = Mapping[str, Any]

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")

MIN_MONTH_START_DAY = 1
MAX_MONTH_START_DAY = 28
DEFAULT_TREND_MONTHS = 6


def quantize_amount(value: Decimal) -> Decimal:
    """Round money values to 2 places, half away from zero."""
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so floats keep their printed value instead of binary noise.
    return Decimal(str(value))


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def _check_month_start_day(month_start_day: int) -> None:
    if not MIN_MONTH_START_DAY <= month_start_day <= MAX_MONTH_START_DAY:
        raise ValueError(
            f"month_start_day must be between {MIN_MONTH_START_DAY} and "
            f"{MAX_MONTH_START_DAY}, got {month_start_day}"
        )


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    """Move a (year, month) pair by whole calendar months, carrying the year."""
    absolute_index = (year * 12 + (month - 1)) + offset
    next_year, month_zero_based = divmod(absolute_index, 12)
    return next_year, month_zero_based + 1


def compute_month_window(
    reference: date | datetime,
    month_start_day: int,
    month_offset: int = 0,
) -> tuple[datetime, datetime]:
    """
    Return the financial month containing `reference`, shifted by `month_offset`.

    Both bounds are midnight datetimes and both are inclusive, so on the last
    day of a window only the instant 00:00 still belongs to it.

    Example: month_start_day=15, reference=2024-03-10 gives
    (2024-02-15 00:00, 2024-03-14 00:00).
    """
    _check_month_start_day(month_start_day)

    # Before the start day we are still in the window opened last month.
    anchor = 0 if reference.day >= month_start_day else -1
    start_year, start_month = shift_month(reference.year, reference.month, anchor + month_offset)
    next_year, next_month = shift_month(start_year, start_month, 1)

    tzinfo = reference.tzinfo if isinstance(reference, datetime) else None
    start = datetime(start_year, start_month, month_start_day, tzinfo=tzinfo)
    end = datetime(next_year, next_month, month_start_day, tzinfo=tzinfo) - timedelta(days=1)
    return start, end


def month_label(window_start: date | datetime) -> str:
    """Render a window start as 'Mon YYYY', e.g. 'Jan 2024'."""
    return window_start.strftime("%b %Y")


def in_window(value: date | datetime, start: datetime, end: datetime) -> bool:
    return start <= _as_datetime(value) <= end


def filter_window(transactions: Iterable[Row], start: datetime, end: datetime) -> list[Row]:
    """Keep rows whose `transaction_at` falls inside [start, end]."""
    return [row for row in transactions if in_window(row["transaction_at"], start, end)]


def total_amount(transactions: Iterable[Row], transaction_type: TransactionType) -> Decimal:
    """Sum of amounts for one transaction type, rounded to cents."""
    total = sum(
        (_to_decimal(row["amount"]) for row in transactions if row["type"] == transaction_type),
        ZERO,
    )
    return quantize_amount(total)


def aggregate_window(transactions: Iterable[Row], start: datetime, end: datetime) -> dict[str, Any]:
    """Income/expense totals, net and row count for one explicit window."""
    income = ZERO
    expense = ZERO
    count = 0

    for row in transactions:
        if not in_window(row["transaction_at"], start, end):
            continue

        amount = _to_decimal(row["amount"])
        if row["type"] == "income":
            income += amount
        else:
            expense += amount
        count += 1

    return {
        "income_total": quantize_amount(income),
        "expense_total": quantize_amount(expense),
        "net": quantize_amount(income - expense),
        "count": count,
    }


def aggregate(
    transactions: Iterable[Row],
    reference: date | datetime,
    month_start_day: int,
) -> dict[str, Any]:
    """Aggregate the rows that fall in the financial month containing `reference`."""
    start, end = compute_month_window(reference, month_start_day)
    return aggregate_window(transactions, start, end)


def trend(
    transactions: Iterable[Row],
    reference: date | datetime,
    month_start_day: int,
    months_count: int = DEFAULT_TREND_MONTHS,
) -> list[dict[str, Any]]:
    """Per-window aggregates for `months_count` windows ending at the current one, oldest first."""
    if months_count < 1:
        raise ValueError(f"months_count must be positive, got {months_count}")

    rows = list(transactions)
    items: list[dict[str, Any]] = []

    for offset in range(-(months_count - 1), 1):
        start, end = compute_month_window(reference, month_start_day, offset)
        totals = aggregate_window(rows, start, end)
        items.append(
            {
                "month": month_label(start),
                "window_start": start,
                "window_end": end,
                "income": totals["income_total"],
                "expense": totals["expense_total"],
                "net": totals["net"],
                "count": totals["count"],
            }
        )

    return items


def _percentage(amount: Decimal, total: Decimal) -> Decimal:
    if total <= ZERO:
        return ZERO
    return quantize_amount(amount * Decimal("100") / total)


def category_breakdown(
    transactions: Iterable[Row],
    transaction_type: TransactionType,
) -> list[dict[str, Any]]:
    """
    Group rows of one type by category, largest amount first.

    Equal amounts keep the order in which their categories were first seen.
    """
    groups: dict[Any, dict[str, Any]] = {}

    for row in transactions:
        if row["type"] != transaction_type:
            continue

        category_id = row["category_id"]
        group = groups.get(category_id)
        if group is None:
            group = {
                "category_id": category_id,
                "name": row.get("category_name"),
                "color": row.get("category_color"),
                "amount": ZERO,
            }
            groups[category_id] = group

        group["amount"] += _to_decimal(row["amount"])

    total = sum((group["amount"] for group in groups.values()), ZERO)

    items = [
        {
            "category_id": group["category_id"],
            "name": group["name"],
            "color": group["color"],
            "amount": quantize_amount(group["amount"]),
            "percentage": _percentage(group["amount"], total),
        }
        for group in groups.values()
    ]
    # list.sort is stable, reverse included.
    items.sort(key=lambda item: item["amount"], reverse=True)
    return items
