"""Seed the ROOT account from settings."""
import logging
from sqlalchemy.orm import Session
from staffdesk.config import get_settings
from staffdesk.models.user import User, UserRole
from staffdesk.services.auth import get_password_hash

log = logging.getLogger("uvicorn.error")


def seed_root_user(db: Session) -> User | None:
    """Create the ROOT user once. Skipped when ROOT_PASSWORD is not configured."""
    settings = get_settings()
    if not settings.root_password:
        return None
    existing = db.query(User).filter(User.username == settings.root_username).first()
    if existing:
        return existing
    user = User(
        username=settings.root_username,
        email=settings.root_email,
        hashed_password=get_password_hash(settings.root_password),
        role=UserRole.root,
        organization_id=None,
        is_active=True,
    )
    db.add(user)
    db.commit()
    log.info("Seeded ROOT user %s", user.username)
    return user
