"""
Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite) created fresh for
every test. The environment must be set before anything from security_api is
imported.
"""
import os

os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-jwt-key-for-unit-tests-only-0123456789abcdef"
os.environ["JWT_EXPIRES_IN"] = "24h"
os.environ["DB_SCHEMA"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from security_api.core.database import Database
from security_api.models.membership import MembershipKind
from security_api.services.membership_service import MembershipService
from security_api.services.owner_service import OwnerService
from security_api.services.role_service import RoleService
from security_api.services.user_service import UserService
import security_api.models  # noqa: F401

ADMIN_USERNAME = "root"
ADMIN_PASSWORD = "root-password"


def _sqlite_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest_asyncio.fixture
async def database():
    db = Database(_sqlite_engine())
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.sessionmaker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def app(database):
    from security_api.main import app as fastapi_app

    fastapi_app.state.database = database
    yield fastapi_app
    fastapi_app.state.database = None


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_user(database):
    """An active user holding the admin role through a permanent membership."""
    async with database.session() as db:
        roles = RoleService(db)
        await roles.seed_system_roles()
        admin_role = await roles.get_role_by_name("admin")

        user = await UserService(db).create_user(
            username=ADMIN_USERNAME,
            password=ADMIN_PASSWORD,
            display_name="Administrator",
            email="root@example.com",
            created_by="system",
        )
        owner = await OwnerService(db).create_owner(
            {"tax_id": "SYSTEM", "legal_id": "SYSTEM", "name": "System"},
            created_by="system",
        )
        await MembershipService(db).create(
            user_id=user.id,
            owner_id=owner.id,
            kind=MembershipKind.PERMANENT,
            role_ids=[admin_role.id],
            created_by="system",
        )
    return user


@pytest_asyncio.fixture
async def admin_headers(client, admin_user):
    response = await client.post(
        "/api/auth/login",
        json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
