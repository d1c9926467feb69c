# stockroom/core/auth.py

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from stockroom.database import get_db
from stockroom.models.users import User
from stockroom.core.jwt import decode_access_token

# Bearer token from the Authorization header, issued by /auth/login
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the acting user for a request; refresh tokens are rejected."""
    payload = decode_access_token(token)

    if payload is None:
        raise _unauthorized("Invalid or expired token")

    subject = payload.get("sub")

    if subject is None or not str(subject).isdigit():
        raise _unauthorized("Invalid token payload")

    # Deactivated accounts lose access even with an unexpired token
    user = (
        db.query(User)
        .filter(User.id == int(subject), User.is_active.is_(True))
        .first()
    )

    if user is None:
        raise _unauthorized("User not found")

    return user
