# stockroom/core/rate_limiter.py

from slowapi import Limiter
from slowapi.util import get_remote_address

from stockroom.core.config import settings

# Limits are keyed on the client address; switched off outside real deployments
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.ENV != "test",
)
