"""
Dashboard API router.

Financial-month views for the signed-in user:

- summary of the current window
- income/expense trend over the last N windows
- category breakdown of the current window
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_serializer

from .auth import get_current_user_id
from .database import get_db_connection
from .services.dashboard_service import get_breakdown, get_summary, get_trend
from .services.periods import DEFAULT_TREND_MONTHS

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

MAX_TREND_MONTHS = 24


def _money(value: Decimal) -> str:
    """Serialize Decimal values to fixed 2-decimal amount strings."""
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class SummaryResponse(BaseModel):
    total_income: Decimal
    total_expense: Decimal
    net_balance: Decimal
    transaction_count: int
    currency: str
    window_start: datetime
    window_end: datetime

    @field_serializer("total_income", "total_expense", "net_balance")
    def serialize_decimal(self, value: Decimal) -> str:
        return _money(value)


class TrendItem(BaseModel):
    month: str
    income: Decimal
    expense: Decimal
    net: Decimal

    @field_serializer("income", "expense", "net")
    def serialize_decimal(self, value: Decimal) -> str:
        return _money(value)


class TrendResponse(BaseModel):
    trend: list[TrendItem]
    currency: str


class BreakdownItem(BaseModel):
    """One category's share of the window's income or expense."""
    category_id: UUID
    name: str | None
    color: str | None
    amount: Decimal
    percentage: Decimal

    @field_serializer("amount", "percentage")
    def serialize_decimal(self, value: Decimal) -> str:
        return _money(value)


class BreakdownResponse(BaseModel):
    breakdown: list[BreakdownItem]
    total: Decimal
    currency: str
    type: Literal["income", "expense"]

    @field_serializer("total")
    def serialize_decimal(self, value: Decimal) -> str:
        return _money(value)


@router.get("/summary", response_model=SummaryResponse)
async def dashboard_summary(
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> SummaryResponse:
    """
    Totals for the current financial month.

    Example response:
    {
      "total_income": "50000.00",
      "total_expense": "18250.50",
      "net_balance": "31749.50",
      "transaction_count": 42,
      "currency": "INR",
      "window_start": "2024-02-15T00:00:00",
      "window_end": "2024-03-14T00:00:00"
    }
    """
    try:
        data = await get_summary(connection, user_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return SummaryResponse.model_validate(data)


@router.get("/trend", response_model=TrendResponse)
async def dashboard_trend(
    months: int = Query(default=DEFAULT_TREND_MONTHS, ge=1, le=MAX_TREND_MONTHS),
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> TrendResponse:
    """
    Income/expense for the last N financial months (including the current one), oldest first.

    Example response:
    {
      "trend": [
        {"month": "Jan 2024", "income": "50000.00", "expense": "21000.00", "net": "29000.00"}
      ],
      "currency": "INR"
    }
    """
    try:
        data = await get_trend(connection, user_id, months_count=months)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return TrendResponse.model_validate(data)


@router.get("/breakdown", response_model=BreakdownResponse)
async def dashboard_breakdown(
    transaction_type: Literal["income", "expense"] = Query(default="expense", alias="type"),
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> BreakdownResponse:
    """
    Per-category totals for the current financial month, largest first.

    Example response:
    {
      "breakdown": [
        {"category_id": "...", "name": "Food", "color": "#F97316", "amount": "820.00", "percentage": "45.05"}
      ],
      "total": "1820.00",
      "currency": "INR",
      "type": "expense"
    }
    """
    try:
        data = await get_breakdown(connection, user_id, transaction_type=transaction_type)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return BreakdownResponse.model_validate(data)
