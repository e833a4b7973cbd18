"""Shared slowapi limiter for the extraction endpoints."""
from slowapi import Limiter
from slowapi.util import get_remote_address

from config import get_settings

# Removed storage_uri to default to in-memory storage
limiter = Limiter(key_func=get_remote_address)


def extract_rate_limit() -> str:
    return get_settings().extract_rate_limit
