"""Authentication: username/password login and the current user."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from staffdesk.database import get_db
from staffdesk.dependencies import get_client_ip, get_current_user
from staffdesk.models.user import User
from staffdesk.schemas.auth import Token, UserLogin, UserResponse
from staffdesk.services.auth import create_access_token, verify_password

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(request: Request, data: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == data.username.strip()).first()
    if not user or not verify_password(data.password, user.hashed_password):
        log.warning("Login failed for username=%s ip=%s", data.username, get_client_ip(request))
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is disabled")
    token = create_access_token(user.id, user.username, user.role, user.organization_id)
    return Token(access_token=token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)
