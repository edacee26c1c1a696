from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from psycopg import AsyncConnection
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .auth import get_current_user_id
from .database import get_db_connection
from .logging_config import get_logger
from .services.periods import compute_month_window
from .services.transactions_service import get_owned_category
from .services.users_service import get_user_settings, local_now

logger = get_logger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])

TransactionType = Literal["expense", "income"]
PaymentMethod = Literal["cash", "upi", "card", "wallet", "other"]
ListFilter = Literal["current", "previous", "all"]
SortOrder = Literal["newest", "oldest"]
Amount = Annotated[Decimal, Field(gt=Decimal("0"), max_digits=12, decimal_places=2)]

TRANSACTION_SELECT = """
    SELECT
        t.id,
        t.user_id,
        t.category_id,
        c.name AS category_name,
        c.color AS category_color,
        t.type,
        t.amount,
        t.payment_method,
        t.transaction_at,
        t.note,
        t.created_at,
        t.updated_at
    FROM transactions t
    LEFT JOIN categories c ON c.id = t.category_id
"""


def _money(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class TransactionCreate(BaseModel):
    amount: Amount
    type: TransactionType
    category_id: UUID
    # Wire names are "date" and "time"; attribute names avoid shadowing the types.
    transaction_date: date = Field(alias="date")
    transaction_time: time | None = Field(default=None, alias="time")
    payment_method: PaymentMethod
    note: str | None = Field(default=None, max_length=500)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("note", mode="before")
    @classmethod
    def clean_note(cls, value: str | None) -> str | None:
        if isinstance(value, str):
            return value.strip() or None

        return value


class TransactionUpdate(BaseModel):
    amount: Amount | None = None
    type: TransactionType | None = None
    category_id: UUID | None = None
    transaction_date: date | None = Field(default=None, alias="date")
    transaction_time: time | None = Field(default=None, alias="time")
    payment_method: PaymentMethod | None = None
    note: str | None = Field(default=None, max_length=500)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("note", mode="before")
    @classmethod
    def clean_note(cls, value: str | None) -> str | None:
        if isinstance(value, str):
            return value.strip() or None

        return value

    @model_validator(mode="after")
    def check_not_empty(self) -> "TransactionUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")

        return self


class TransactionResponse(BaseModel):
    id: UUID
    user_id: UUID
    category_id: UUID
    category_name: str | None
    category_color: str | None
    type: TransactionType
    amount: Decimal
    payment_method: PaymentMethod
    transaction_at: datetime
    note: str | None
    created_at: datetime
    updated_at: datetime

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> str:
        return _money(value)


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class TransactionListResponse(BaseModel):
    data: list[TransactionResponse]
    pagination: Pagination


class CategoryResponse(BaseModel):
    id: UUID
    name: str
    color: str | None
    is_active: bool


class MessageResponse(BaseModel):
    message: str


def combine_transaction_at(day: date, at: time | None) -> datetime:
    """Wall-clock timestamp for a date and optional HH:MM; midnight when no time is given."""
    if at is None:
        return datetime(day.year, day.month, day.day)
    return datetime(day.year, day.month, day.day, at.hour, at.minute)


async def _ensure_category(connection: AsyncConnection, user_id: UUID, category_id: UUID) -> None:
    try:
        await get_owned_category(connection, user_id, category_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


async def _fetch_transaction(
    connection: AsyncConnection,
    *,
    transaction_id: UUID,
    user_id: UUID,
) -> dict:
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            {TRANSACTION_SELECT}
            WHERE t.id = %s
              AND t.user_id = %s
              AND t.deleted_at IS NULL
            """,
            (transaction_id, user_id),
        )
        row = await cursor.fetchone()

    if row is None:
        raise HTTPException(status_code=404, detail="Transaction not found")

    return row


async def _window_for_filter(
    connection: AsyncConnection,
    user_id: UUID,
    list_filter: ListFilter,
) -> tuple[datetime, datetime] | None:
    if list_filter == "all":
        return None

    try:
        user = await get_user_settings(connection, user_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    offset = 0 if list_filter == "current" else -1
    return compute_month_window(local_now(user["timezone"]), user["month_start_day"], offset)


@router.post("", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    payload: TransactionCreate,
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> TransactionResponse:
    await _ensure_category(connection, user_id, payload.category_id)

    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            INSERT INTO transactions (user_id, category_id, type, amount, payment_method, transaction_at, note)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                user_id,
                payload.category_id,
                payload.type,
                payload.amount,
                payload.payment_method,
                combine_transaction_at(payload.transaction_date, payload.transaction_time),
                payload.note,
            ),
        )
        inserted = await cursor.fetchone()

    logger.debug("Created transaction %s for user %s", inserted["id"], user_id)
    row = await _fetch_transaction(connection, transaction_id=inserted["id"], user_id=user_id)
    return TransactionResponse.model_validate(row)


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    list_filter: ListFilter = Query(default="current", alias="filter"),
    sort: SortOrder = Query(default="newest"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=50),
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> TransactionListResponse:
    filters = ["t.user_id = %s", "t.deleted_at IS NULL"]
    params: list[object] = [user_id]

    window = await _window_for_filter(connection, user_id, list_filter)
    if window is not None:
        filters.append("t.transaction_at >= %s")
        filters.append("t.transaction_at <= %s")
        params.extend(window)

    where_clause = " AND ".join(filters)
    direction = "DESC" if sort == "newest" else "ASC"

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"SELECT COUNT(*) AS total FROM transactions t WHERE {where_clause}",
            params,
        )
        count_row = await cursor.fetchone()

        await cursor.execute(
            f"""
            {TRANSACTION_SELECT}
            WHERE {where_clause}
            ORDER BY t.transaction_at {direction}, t.created_at {direction}
            LIMIT %s OFFSET %s
            """,
            [*params, page_size, (page - 1) * page_size],
        )
        rows = await cursor.fetchall()

    total = count_row["total"]
    return TransactionListResponse(
        data=[TransactionResponse.model_validate(row) for row in rows],
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=-(-total // page_size),
        ),
    )


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> list[CategoryResponse]:
    """Active categories owned by the current user, by name."""
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            SELECT id, name, color, is_active
            FROM categories
            WHERE user_id = %s
              AND is_active = TRUE
            ORDER BY name ASC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()

    return [CategoryResponse.model_validate(row) for row in rows]


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> TransactionResponse:
    row = await _fetch_transaction(connection, transaction_id=transaction_id, user_id=user_id)
    return TransactionResponse.model_validate(row)


@router.put("/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: UUID,
    payload: TransactionUpdate,
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> TransactionResponse:
    current = await _fetch_transaction(connection, transaction_id=transaction_id, user_id=user_id)
    updates = payload.model_dump(exclude_unset=True)

    if updates.get("category_id") is not None:
        await _ensure_category(connection, user_id, updates["category_id"])

    set_parts: list[str] = []
    params: list[object] = []

    for field in ["amount", "type", "category_id", "payment_method"]:
        if updates.get(field) is not None:
            set_parts.append(f"{field} = %s")
            params.append(updates[field])

    if "note" in updates:
        set_parts.append("note = %s")
        params.append(updates["note"])

    # A new date alone resets the time to midnight; a new time alone keeps the stored date.
    if updates.get("transaction_date") is not None or updates.get("transaction_time") is not None:
        day = updates.get("transaction_date") or current["transaction_at"].date()
        set_parts.append("transaction_at = %s")
        params.append(combine_transaction_at(day, updates.get("transaction_time")))

    if not set_parts:
        return TransactionResponse.model_validate(current)

    set_parts.append("updated_at = NOW()")

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            UPDATE transactions
            SET {", ".join(set_parts)}
            WHERE id = %s
              AND user_id = %s
              AND deleted_at IS NULL
            """,
            [*params, transaction_id, user_id],
        )

    row = await _fetch_transaction(connection, transaction_id=transaction_id, user_id=user_id)
    return TransactionResponse.model_validate(row)


@router.delete("/{transaction_id}", response_model=MessageResponse)
async def delete_transaction(
    transaction_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> MessageResponse:
    await _fetch_transaction(connection, transaction_id=transaction_id, user_id=user_id)

    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            UPDATE transactions
            SET deleted_at = NOW()
            WHERE id = %s
              AND user_id = %s
              AND deleted_at IS NULL
            """,
            (transaction_id, user_id),
        )

    logger.info("Soft-deleted transaction %s for user %s", transaction_id, user_id)
    return MessageResponse(message="Transaction deleted successfully")
