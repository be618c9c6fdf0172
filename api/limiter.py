"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in route modules
(to apply per-route limits with @limiter.limit()).

A single shared instance means every route shares the same in-memory counter
store. Separate instances per module would each keep isolated counters.

@limiter.limit() goes BELOW the @router decorator: the router must register
the wrapped function, otherwise the limit is never checked.

The limit values are callables so slowapi reads them from Settings on each
request rather than once at import.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    return get_settings().login_rate_limit


def signup_limit() -> str:
    return get_settings().signup_rate_limit
