"""Dashboard summaries built from the period aggregator and the transaction provider."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID

from ..logging_config import get_logger
from .periods import (
    DEFAULT_TREND_MONTHS,
    aggregate_window,
    category_breakdown,
    compute_month_window,
    filter_window,
    total_amount,
    trend,
)
from .transactions_service import list_for_user_in_range
from .users_service import get_user_settings, local_now, to_wall_clock

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = get_logger(__name__)

TransactionType = Literal["income", "expense"]


def _reference(now: datetime | None, timezone_name: str | None) -> datetime:
    # Stored transaction_at values are naive local times, so windows must be too.
    if now is None:
        return local_now(timezone_name)
    return to_wall_clock(now, timezone_name)


async def get_summary(
    connection: AsyncConnection,
    user_id: UUID,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Totals for the financial month containing `now`."""
    user = await get_user_settings(connection, user_id)
    reference = _reference(now, user["timezone"])

    window_start, window_end = compute_month_window(reference, user["month_start_day"])
    rows = await list_for_user_in_range(connection, user_id, window_start, window_end)
    totals = aggregate_window(rows, window_start, window_end)

    logger.debug(
        "Summary for user %s over %s..%s: %d transactions",
        user_id,
        window_start.date(),
        window_end.date(),
        totals["count"],
    )

    return {
        "total_income": totals["income_total"],
        "total_expense": totals["expense_total"],
        "net_balance": totals["net"],
        "transaction_count": totals["count"],
        "currency": user["currency"],
        "window_start": window_start,
        "window_end": window_end,
    }


async def get_trend(
    connection: AsyncConnection,
    user_id: UUID,
    now: datetime | None = None,
    months_count: int = DEFAULT_TREND_MONTHS,
) -> dict[str, Any]:
    """Per-month income/expense for the last `months_count` financial months, oldest first."""
    if months_count < 1:
        raise ValueError("months must be at least 1")

    user = await get_user_settings(connection, user_id)
    reference = _reference(now, user["timezone"])
    month_start_day = user["month_start_day"]

    # One query covering every window, then bucketed in memory.
    range_start, _ = compute_month_window(reference, month_start_day, -(months_count - 1))
    _, range_end = compute_month_window(reference, month_start_day)
    rows = await list_for_user_in_range(connection, user_id, range_start, range_end)

    items = trend(rows, reference, month_start_day, months_count)

    return {
        "trend": [
            {
                "month": item["month"],
                "income": item["income"],
                "expense": item["expense"],
                "net": item["net"],
            }
            for item in items
        ],
        "currency": user["currency"],
    }


async def get_breakdown(
    connection: AsyncConnection,
    user_id: UUID,
    now: datetime | None = None,
    transaction_type: TransactionType = "expense",
) -> dict[str, Any]:
    """Category shares of one transaction type in the current financial month."""
    user = await get_user_settings(connection, user_id)
    reference = _reference(now, user["timezone"])

    window_start, window_end = compute_month_window(reference, user["month_start_day"])
    rows = await list_for_user_in_range(
        connection,
        user_id,
        window_start,
        window_end,
        transaction_type=transaction_type,
    )
    rows = filter_window(rows, window_start, window_end)

    return {
        "breakdown": category_breakdown(rows, transaction_type),
        "total": total_amount(rows, transaction_type),
        "currency": user["currency"],
        "type": transaction_type,
    }
