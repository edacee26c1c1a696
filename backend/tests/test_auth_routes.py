from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
from fastapi import FastAPI
from fastapi.testclient import TestClient
from psycopg.errors import UniqueViolation

import tracker_api.auth as auth_router
from tracker_api.config import settings
from tracker_api.rate_limit import InMemoryRateLimitStore, RateLimiter


class ScriptedCursor:
    def __init__(self, connection):
        self._connection = connection
        self._result = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def execute(self, query, params=None):
        normalized = " ".join(query.split())
        self._connection.executed.append((normalized, params))

        for marker, result in self._connection.responses:
            if marker in normalized:
                if isinstance(result, Exception):
                    raise result
                self._result = result
                return

        raise AssertionError(f"Unexpected query: {normalized}")

    async def executemany(self, query, params_seq):
        self._connection.executed.append((" ".join(query.split()), list(params_seq)))

    async def fetchone(self):
        return self._result


class ScriptedConnection:
    def __init__(self, responses=()):
        self.responses = list(responses)
        self.executed = []

    def cursor(self):
        return ScriptedCursor(self)


def _user_row(user_id=None, **overrides):
    row = {
        "id": user_id or uuid4(),
        "name": "Asha",
        "email": "asha@example.com",
        "currency": "INR",
        "month_start_day": 1,
        "timezone": "UTC",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


def _app(connection, limiter=None):
    app = FastAPI()
    app.include_router(auth_router.router, prefix="/auth")
    app.include_router(auth_router.router, prefix="/users")
    app.state.rate_limiter = limiter

    async def override_db():
        yield connection

    app.dependency_overrides[auth_router.get_db_connection] = override_db
    return app


def _bearer(user_id):
    return {"Authorization": f"Bearer {auth_router.create_access_token(user_id)}"}


def test_access_token_carries_subject_and_seven_day_expiry() -> None:
    user_id = uuid4()
    token = auth_router.create_access_token(user_id)

    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])

    assert payload["sub"] == str(user_id)
    assert payload["type"] == "access"
    assert payload["exp"] - payload["iat"] == settings.access_token_ttl_days * 24 * 3600


def test_missing_invalid_and_expired_tokens_are_401() -> None:
    app = _app(ScriptedConnection())
    expired = jwt.encode(
        {"sub": str(uuid4()), "type": "access", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )

    with TestClient(app) as client:
        assert client.post("/auth/logout").status_code == 401
        assert client.post("/auth/logout", headers={"Authorization": "Bearer nope"}).status_code == 401
        assert client.post("/auth/logout", headers={"Authorization": f"Bearer {expired}"}).status_code == 401


def test_logout_acknowledges_valid_token() -> None:
    with TestClient(_app(ScriptedConnection())) as client:
        response = client.post("/auth/logout", headers=_bearer(uuid4()))

    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}


def test_signup_creates_user_and_seeds_categories() -> None:
    user_id = uuid4()
    connection = ScriptedConnection([("INSERT INTO users", _user_row(user_id))])

    with TestClient(_app(connection)) as client:
        response = client.post(
            "/auth/signup",
            json={"name": " Asha ", "email": "Asha@Example.com", "password": "Secret123"},
        )

    assert response.status_code == 201
    payload = response.json()
    assert payload["user"]["id"] == str(user_id)
    assert payload["user"]["month_start_day"] == 1
    assert jwt.decode(payload["token"], settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])["sub"] == str(
        user_id
    )

    insert_query, insert_params = connection.executed[0]
    assert "crypt(%s, gen_salt('bf', 10))" in insert_query
    assert insert_params[:2] == ("Asha", "asha@example.com")

    seed_query, seed_rows = connection.executed[1]
    assert "INSERT INTO categories" in seed_query
    assert all(row[0] == user_id for row in seed_rows)
    assert len(seed_rows) > 0


def test_signup_rejects_weak_password_and_bad_email() -> None:
    connection = ScriptedConnection()

    with TestClient(_app(connection)) as client:
        weak = client.post("/auth/signup", json={"name": "A", "email": "a@b.co", "password": "alllowercase1"})
        bad_email = client.post("/auth/signup", json={"name": "A", "email": "not-an-email", "password": "Secret123"})

    assert weak.status_code == 422
    assert bad_email.status_code == 422
    assert connection.executed == []


def test_signup_duplicate_email_is_409() -> None:
    connection = ScriptedConnection([("INSERT INTO users", UniqueViolation())])

    with TestClient(_app(connection)) as client:
        response = client.post(
            "/auth/signup",
            json={"name": "Asha", "email": "asha@example.com", "password": "Secret123"},
        )

    assert response.status_code == 409
    assert response.json()["detail"] == "Email already in use"


def test_login_wrong_credentials_is_401() -> None:
    connection = ScriptedConnection([("FROM users", None)])

    with TestClient(_app(connection)) as client:
        response = client.post("/auth/login", json={"email": "asha@example.com", "password": "Wrong123"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_login_is_rate_limited_per_client() -> None:
    connection = ScriptedConnection([("FROM users", None)])
    limiter = RateLimiter(InMemoryRateLimitStore(), max_requests=2, window_seconds=60)

    with TestClient(_app(connection, limiter)) as client:
        statuses = [
            client.post("/auth/login", json={"email": "asha@example.com", "password": "Wrong123"}).status_code
            for _ in range(3)
        ]

    assert statuses == [401, 401, 429]


def test_me_is_served_under_auth_and_users_prefixes() -> None:
    user_id = uuid4()
    connection = ScriptedConnection([("FROM users", _user_row(user_id))])

    with TestClient(_app(connection)) as client:
        auth_response = client.get("/auth/me", headers=_bearer(user_id))
        users_response = client.get("/users/me", headers=_bearer(user_id))

    assert auth_response.status_code == 200
    assert users_response.json() == auth_response.json()
    assert auth_response.json()["email"] == "asha@example.com"


def test_update_profile_sets_month_start_day_and_currency() -> None:
    user_id = uuid4()
    connection = ScriptedConnection([("UPDATE users", _user_row(user_id, month_start_day=15, currency="USD"))])

    with TestClient(_app(connection)) as client:
        response = client.patch(
            "/auth/me",
            headers=_bearer(user_id),
            json={"month_start_day": 15, "currency": "usd"},
        )

    assert response.status_code == 200
    assert response.json()["month_start_day"] == 15
    query, params = connection.executed[0]
    assert "currency = %s" in query
    assert "month_start_day = %s" in query
    assert params == ("USD", 15, user_id)


def test_update_profile_validates_month_start_day_and_timezone() -> None:
    user_id = uuid4()
    connection = ScriptedConnection()

    with TestClient(_app(connection)) as client:
        too_late = client.patch("/auth/me", headers=_bearer(user_id), json={"month_start_day": 29})
        too_early = client.patch("/auth/me", headers=_bearer(user_id), json={"month_start_day": 0})
        bad_zone = client.patch("/auth/me", headers=_bearer(user_id), json={"timezone": "Mars/Olympus"})
        empty = client.patch("/auth/me", headers=_bearer(user_id), json={})

    assert too_late.status_code == 422
    assert too_early.status_code == 422
    assert bad_zone.status_code == 422
    assert empty.status_code == 422
    assert connection.executed == []
