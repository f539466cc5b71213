"""Rate limiter singleton — import from here to avoid circular deps.

Limits are per client address; RATE_LIMIT_STORAGE_URI points all gunicorn
workers at a shared store in production.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
)
