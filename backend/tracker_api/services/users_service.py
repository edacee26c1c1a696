"""User settings lookups shared by the dashboard and transaction routers."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..logging_config import get_logger

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = get_logger(__name__)

DEFAULT_TIMEZONE = "UTC"

# Seeded for every new account so the first transaction has somewhere to go.
DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Food", "#F97316"),
    ("Transport", "#3B82F6"),
    ("Shopping", "#EC4899"),
    ("Bills & Utilities", "#EAB308"),
    ("Housing", "#8B5CF6"),
    ("Health", "#10B981"),
    ("Entertainment", "#F43F5E"),
    ("Salary", "#22C55E"),
    ("Other", "#6B7280"),
)


async def get_user_settings(connection: AsyncConnection, user_id: UUID) -> dict[str, Any]:
    """Return `currency`, `month_start_day` and `timezone` for one user."""
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            SELECT currency, month_start_day, timezone
            FROM users
            WHERE id = %s
            """,
            (user_id,),
        )
        row = await cursor.fetchone()

    if row is None:
        raise LookupError("User not found")

    return {
        "currency": row["currency"],
        "month_start_day": row["month_start_day"],
        "timezone": row["timezone"] or DEFAULT_TIMEZONE,
    }


def resolve_zone(timezone_name: str | None) -> ZoneInfo:
    if not timezone_name:
        return ZoneInfo(DEFAULT_TIMEZONE)

    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to %s", timezone_name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_now(timezone_name: str | None) -> datetime:
    """Current wall-clock time in the user's timezone, as a naive datetime."""
    # transaction_at is stored as the user's wall-clock time without an offset.
    return datetime.now(resolve_zone(timezone_name)).replace(tzinfo=None)


def to_wall_clock(moment: datetime, timezone_name: str | None) -> datetime:
    """Naive wall-clock time in the user's timezone; naive input is taken as already local."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(resolve_zone(timezone_name)).replace(tzinfo=None)


async def seed_default_categories(connection: AsyncConnection, user_id: UUID) -> None:
    async with connection.cursor() as cursor:
        await cursor.executemany(
            """
            INSERT INTO categories (user_id, name, color, is_active)
            VALUES (%s, %s, %s, TRUE)
            """,
            [(user_id, name, color) for name, color in DEFAULT_CATEGORIES],
        )
