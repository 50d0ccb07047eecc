from __future__ import annotations

import io
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("ROOT_PASSWORD", "")

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import staffdesk.database as app_db
from staffdesk.models import Employee, Organization, User, UserRole
from staffdesk.services.auth import create_access_token, get_password_hash
from staffdesk.services.authorization import ActorContext

PASSWORD = "password-123"
_PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_staffdesk.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    app_db.engine.dispose()
    app_db.engine = create_engine(
        db_url,
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )
    app_db.SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=app_db.engine,
        expire_on_commit=False,
    )

    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()


@pytest.fixture
def db():
    session = app_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_org(db, name: str) -> Organization:
    org = Organization(name=name)
    db.add(org)
    db.commit()
    return org


def make_user(db, username: str, role: UserRole, organization_id: int | None) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        hashed_password=_PASSWORD_HASH,
        role=role,
        organization_id=organization_id,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def make_employee(db, organization_id: int, full_name: str, user_id: int | None = None) -> Employee:
    employee = Employee(organization_id=organization_id, full_name=full_name, user_id=user_id)
    db.add(employee)
    db.commit()
    return employee


def actor_for(user: User) -> ActorContext:
    return ActorContext(user=user, ip_address="203.0.113.7", user_agent="pytest-agent/1.0")


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.username, user.role, user.organization_id)
    return {"Authorization": f"Bearer {token}"}


def workbook_bytes(rows: list[list]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def org(db):
    return make_org(db, "Landmark")


@pytest.fixture
def other_org(db):
    return make_org(db, "Harbour View")


@pytest.fixture
def admin(db, org):
    return make_user(db, "admin", UserRole.admin, org.id)


@pytest.fixture
def super_admin(db, org):
    return make_user(db, "super", UserRole.super_admin, org.id)


@pytest.fixture
def root_user(db):
    return make_user(db, "root", UserRole.root, None)


@pytest.fixture
def staff_user(db, org):
    return make_user(db, "jsmith", UserRole.user, org.id)


@pytest.fixture
def other_admin(db, other_org):
    return make_user(db, "other-admin", UserRole.admin, other_org.id)


@pytest.fixture
def employees(db, org, staff_user):
    return {
        "john": make_employee(db, org.id, "John Smith", user_id=staff_user.id),
        "jane": make_employee(db, org.id, "Jane Doe"),
        "ahmed": make_employee(db, org.id, "Ahmed Khan"),
    }
