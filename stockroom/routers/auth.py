import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.exc import SQLAlchemyError

from stockroom.database import get_db
from stockroom.models.users import User
from stockroom.schemas.user import ChangePasswordRequest, RefreshRequest, TokenResponse, UserCreate, UserResponse
from stockroom.core.auth import get_current_user
from stockroom.core.hashing import hash_password, verify_password
from stockroom.core.jwt import create_access_token, create_refresh_token, decode_refresh_token
from stockroom.core.rate_limiter import limiter

router = APIRouter(prefix="/auth", tags=["Authentication"])

logger = logging.getLogger("stockroom.auth")

COMMON_PASSWORDS = {
    "password",
    "password123",
    "12345678",
    "qwerty123",
    "admin123",
}


def _check_password_strength(password: str):
    if password.lower() in COMMON_PASSWORDS:
        raise HTTPException(
            status_code=400,
            detail="Password is too common. Please choose a stronger password.",
        )

    if password.isdigit():
        raise HTTPException(
            status_code=400,
            detail="Password cannot be numbers only.",
        )


def _issue_tokens(user: User) -> dict:
    claims = {"sub": str(user.id), "role": user.role}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token({"sub": str(user.id)}),
        "token_type": "bearer",
    }


# ---------------- REGISTER ----------------
@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
def register(request: Request, user_data: UserCreate, db: Session = Depends(get_db)):
    _check_password_strength(user_data.password)

    if db.query(User).filter(User.email == user_data.email).first():
        raise HTTPException(status_code=409, detail="Email already exists")

    try:
        user = User(
            email=user_data.email,
            name=user_data.name,
            password_hash=hash_password(user_data.password),
            role="user",
        )
        db.add(user)
        db.commit()

    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(status_code=500, detail="Unable to create account")

    db.refresh(user)
    logger.info(f"User {user.id} registered")

    return user


# ---------------- LOGIN (TOKEN-BASED) ----------------
@router.post("/login", response_model=TokenResponse)
@limiter.limit("5/minute")
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    user = (
        db.query(User)
        .filter(User.email == form_data.username, User.is_active.is_(True))
        .first()
    )

    if not user or not verify_password(form_data.password, user.password_hash):
        logger.warning("Failed login attempt")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user.last_login_at = datetime.now(timezone.utc)
    db.commit()

    return _issue_tokens(user)


# ---------------- REFRESH ----------------
@router.post("/refresh", response_model=TokenResponse)
@limiter.limit("10/minute")
def refresh(request: Request, body: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_refresh_token(body.refresh_token)

    if payload is None or payload.get("sub") is None:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    user = (
        db.query(User)
        .filter(User.id == int(payload["sub"]), User.is_active.is_(True))
        .first()
    )

    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return _issue_tokens(user)


# ---------------- CURRENT USER ----------------
@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


# ---------------- CHANGE PASSWORD ----------------
@router.patch("/change-password")
@limiter.limit("5/minute")
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(body.current_password, current_user.password_hash):
        logger.warning(f"Failed password change for user {current_user.id}")
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    if body.new_password == body.current_password:
        raise HTTPException(
            status_code=400,
            detail="New password must differ from the current password.",
        )

    _check_password_strength(body.new_password)

    try:
        current_user.password_hash = hash_password(body.new_password)
        db.commit()

    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(status_code=500, detail="Unable to change password")

    logger.info(f"User {current_user.id} changed password")

    return {"message": "Password changed successfully"}
