"""Read-side transaction queries that feed the period aggregator."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

TransactionType = Literal["income", "expense"]

AGGREGATE_COLUMNS = """
    t.id,
    t.amount,
    t.type,
    t.transaction_at,
    t.category_id,
    c.name AS category_name,
    c.color AS category_color
"""


async def list_for_user(connection: AsyncConnection, user_id: UUID) -> list[dict[str, Any]]:
    """All live transactions for one user, oldest first.

    The unwindowed provider: callers that want the whole history run it
    through the aggregator directly. Dashboard endpoints use
    `list_for_user_in_range` so each request reads only the months it needs.
    """
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {AGGREGATE_COLUMNS}
            FROM transactions t
            LEFT JOIN categories c ON c.id = t.category_id
            WHERE t.user_id = %s
              AND t.deleted_at IS NULL
            ORDER BY t.transaction_at ASC
            """,
            (user_id,),
        )
        return await cursor.fetchall()


async def list_for_user_in_range(
    connection: AsyncConnection,
    user_id: UUID,
    start: datetime,
    end: datetime,
    *,
    transaction_type: TransactionType | None = None,
) -> list[dict[str, Any]]:
    """Live transactions with `start <= transaction_at <= end`, oldest first."""
    filters = [
        "t.user_id = %s",
        "t.deleted_at IS NULL",
        "t.transaction_at >= %s",
        "t.transaction_at <= %s",
    ]
    params: list[object] = [user_id, start, end]

    if transaction_type is not None:
        filters.append("t.type = %s")
        params.append(transaction_type)

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {AGGREGATE_COLUMNS}
            FROM transactions t
            LEFT JOIN categories c ON c.id = t.category_id
            WHERE {" AND ".join(filters)}
            ORDER BY t.transaction_at ASC
            """,
            params,
        )
        return await cursor.fetchall()


async def get_owned_category(
    connection: AsyncConnection,
    user_id: UUID,
    category_id: UUID,
) -> dict[str, Any]:
    """Load a category that belongs to `user_id`, or raise LookupError."""
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            SELECT id, user_id, name, color, is_active
            FROM categories
            WHERE id = %s
              AND user_id = %s
            """,
            (category_id, user_id),
        )
        row = await cursor.fetchone()

    if row is None:
        raise LookupError("Category not found or does not belong to this user")

    return row
