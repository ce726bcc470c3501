# storefront/core/limiter.py

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from storefront.core.config import settings


def key_func(request: Request) -> str:
    """Authenticated requests are limited per user, anonymous ones per IP."""
    user = getattr(request.state, "user", None)
    if user is not None and user.id:
        return f"user:{user.id}"
    return get_remote_address(request)


limiter = Limiter(key_func=key_func, storage_uri=settings.RATE_LIMIT_STORAGE_URI, strategy="moving-window")
