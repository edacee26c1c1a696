import re
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError
from psycopg import AsyncConnection
from psycopg.errors import UniqueViolation
from pydantic import BaseModel, Field

from .config import settings
from .database import get_db_connection
from .logging_config import get_logger
from .rate_limit import rate_limited
from .services.periods import MAX_MONTH_START_DAY, MIN_MONTH_START_DAY
from .services.users_service import resolve_zone, seed_default_categories

logger = get_logger(__name__)

http_bearer = HTTPBearer(auto_error=False)
# Mounted under both /auth and /users by the app factory.
router = APIRouter(tags=["auth"])

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d@$!%*?&]{8,}$")

USER_COLUMNS = "id, name, email, currency, month_start_day, timezone, created_at"


class UserResponse(BaseModel):
    id: UUID
    name: str
    email: str
    currency: str
    month_start_day: int
    timezone: str
    created_at: datetime


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class SignupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class UpdateProfileRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    month_start_day: int | None = Field(default=None, ge=MIN_MONTH_START_DAY, le=MAX_MONTH_START_DAY)
    timezone: str | None = Field(default=None, min_length=1, max_length=64)


class MessageResponse(BaseModel):
    message: str


def create_access_token(user_id: UUID) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=settings.access_token_ttl_days)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    return payload


def _normalize_email(email: str) -> str:
    normalized = email.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise HTTPException(status_code=422, detail="Invalid email")
    return normalized


def _validate_password(password: str) -> None:
    if not PASSWORD_PATTERN.match(password):
        raise HTTPException(
            status_code=422,
            detail="Password must be at least 8 characters with an uppercase letter, a lowercase letter and a number",
        )


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
) -> UUID:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing bearer token")

    payload = _decode_token(credentials.credentials)

    try:
        return UUID(payload.get("sub"))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid token subject") from exc


async def _fetch_user(connection: AsyncConnection, user_id: UUID) -> dict | None:
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = %s",
            (user_id,),
        )
        return await cursor.fetchone()


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=201,
    dependencies=[Depends(rate_limited)],
)
async def signup(
    payload: SignupRequest,
    connection: AsyncConnection = Depends(get_db_connection),
) -> AuthResponse:
    email = _normalize_email(payload.email)
    name = payload.name.strip()

    if not name:
        raise HTTPException(status_code=422, detail="Name is required")

    _validate_password(payload.password)

    async with connection.cursor() as cursor:
        try:
            await cursor.execute(
                f"""
                INSERT INTO users (name, email, password_hash, currency)
                VALUES (%s, %s, crypt(%s, gen_salt('bf', 10)), %s)
                RETURNING {USER_COLUMNS}
                """,
                (name, email, payload.password, settings.default_currency),
            )
        except UniqueViolation as exc:
            raise HTTPException(status_code=409, detail="Email already in use") from exc

        user_row = await cursor.fetchone()

    user = UserResponse.model_validate(user_row)
    await seed_default_categories(connection, user.id)
    logger.info("Registered user %s", user.id)

    return AuthResponse(token=create_access_token(user.id), user=user)


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(rate_limited)])
async def login(
    payload: LoginRequest,
    connection: AsyncConnection = Depends(get_db_connection),
) -> AuthResponse:
    email = _normalize_email(payload.email)

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {USER_COLUMNS}
            FROM users
            WHERE LOWER(email) = LOWER(%s)
              AND password_hash = crypt(%s, password_hash)
            """,
            (email, payload.password),
        )
        user_row = await cursor.fetchone()

    if user_row is None:
        logger.info("Failed login attempt")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user = UserResponse.model_validate(user_row)
    return AuthResponse(token=create_access_token(user.id), user=user)


@router.get("/me", response_model=UserResponse)
async def me(
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> UserResponse:
    user_row = await _fetch_user(connection, user_id)

    if user_row is None:
        raise HTTPException(status_code=404, detail="User not found")

    return UserResponse.model_validate(user_row)


@router.patch("/me", response_model=UserResponse)
async def update_profile(
    payload: UpdateProfileRequest,
    user_id: UUID = Depends(get_current_user_id),
    connection: AsyncConnection = Depends(get_db_connection),
) -> UserResponse:
    updates: list[str] = []
    params: list[object] = []

    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=422, detail="Name is required")
        updates.append("name = %s")
        params.append(name)

    if payload.currency is not None:
        updates.append("currency = %s")
        params.append(payload.currency.upper())

    if payload.month_start_day is not None:
        updates.append("month_start_day = %s")
        params.append(payload.month_start_day)

    if payload.timezone is not None:
        if resolve_zone(payload.timezone).key != payload.timezone:
            raise HTTPException(status_code=422, detail="Unknown timezone")
        updates.append("timezone = %s")
        params.append(payload.timezone)

    if not updates:
        raise HTTPException(status_code=422, detail="No fields to update")

    params.append(user_id)

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            UPDATE users
            SET {', '.join(updates)}
            WHERE id = %s
            RETURNING {USER_COLUMNS}
            """,
            tuple(params),
        )
        user_row = await cursor.fetchone()

    if user_row is None:
        raise HTTPException(status_code=404, detail="User not found")

    return UserResponse.model_validate(user_row)


@router.post("/logout", response_model=MessageResponse)
async def logout(user_id: UUID = Depends(get_current_user_id)) -> MessageResponse:
    # Tokens are stateless; the client discards its copy.
    logger.info("User %s logged out", user_id)
    return MessageResponse(message="Logged out successfully")
