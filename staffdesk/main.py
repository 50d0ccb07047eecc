"""Staffdesk – rota ingestion and reconciliation API."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from staffdesk import database
from staffdesk.config import get_settings
from staffdesk.database import Base
from staffdesk.errors import StaffdeskError
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from staffdesk.models import (  # noqa: F401
    Organization, User, Department, Employee, Rota, RotaSchedule, RotaChangeLog,
)
from staffdesk.routers import auth, employees, rota

log = logging.getLogger("uvicorn.error")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(employees.router)
app.include_router(rota.router)


@app.exception_handler(StaffdeskError)
def staffdesk_error_handler(request: Request, exc: StaffdeskError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
def startup():
    try:
        Base.metadata.create_all(bind=database.engine)
        from staffdesk.seed import seed_root_user
        db = database.SessionLocal()
        try:
            seed_root_user(db)
        finally:
            db.close()
    except SQLAlchemyError as e:
        log.warning("Database startup failed (tables/seed skipped). Check DATABASE_URL and network. Error: %s", e)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
