from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from stockroom.core.config import settings


def _encode(data: dict, token_type: str, expires_delta: timedelta):
    to_encode = data.copy()

    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire, "type": token_type})

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def _decode(token: str, token_type: str):
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )

        # An access token must not be usable as a refresh token and vice versa
        if payload.get("type") != token_type:
            return None

        return payload

    except JWTError:
        return None


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    return _encode(
        data,
        "access",
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(data: dict, expires_delta: timedelta | None = None):
    return _encode(
        data,
        "refresh",
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_access_token(token: str):
    return _decode(token, "access")


def decode_refresh_token(token: str):
    return _decode(token, "refresh")
