"""
Database connection and session.

Schema source of truth: staffdesk.models. On startup, Base.metadata.create_all(bind=engine)
creates all tables and columns from the current models.
"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from staffdesk.config import get_settings

settings = get_settings()
connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """Commit when the block completes, roll back on any exception.

    Multi-step mutations (rota with entries, edit with change log, delete with
    cascade) run inside one of these so partial writes never reach the store.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
