"""Shared dependencies: DB session, current user, request audit context."""
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from staffdesk.database import get_db
from staffdesk.models.user import User
from staffdesk.services.auth import decode_token_with_error
from staffdesk.services.authorization import ActorContext

security = HTTPBearer(auto_error=False)

_IP_LEN = 64
_USER_AGENT_LEN = 500


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    token_str = (credentials.credentials or "").strip()
    payload, _ = decode_token_with_error(token_str)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is disabled")
    return user


def get_client_ip(request: Request) -> str | None:
    """First hop of X-Forwarded-For when behind a proxy, else the socket peer."""
    for header in ("x-forwarded-for", "x-real-ip"):
        raw = (request.headers.get(header) or "").strip()
        if raw and raw.lower() != "unknown":
            return raw.split(",")[0].strip()[:_IP_LEN]
    return request.client.host[:_IP_LEN] if request.client else None


def get_actor_context(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ActorContext:
    ua = (request.headers.get("user-agent") or "").strip() or None
    return ActorContext(
        user=current_user,
        ip_address=get_client_ip(request),
        user_agent=ua[:_USER_AGENT_LEN] if ua else None,
    )
