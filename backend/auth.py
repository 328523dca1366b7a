"""
User-key resolution for the ledger API.

The ledger only needs a stable, non-empty user key per request.  It comes
from an API key (X-API-Key header, keys configured as API_KEY_USER1..5),
or, in development only, straight from the X-PP-User header.
"""

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader
import logging
import os
from typing import Dict, Optional
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
DEV_USER_HEADER = APIKeyHeader(name="X-PP-User", auto_error=False)

MAX_USER_KEY_LEN = 128
ADMIN_USER = "user1"


def is_development() -> bool:
    return os.getenv("ENVIRONMENT") == "development"


def get_valid_api_keys() -> Dict[str, str]:
    """Map of API key -> user key, read from the environment on each call"""
    keys = {}

    # Support up to 5 users
    for i in range(1, 6):
        key = os.getenv(f"API_KEY_USER{i}")
        if key:
            keys[key] = f"user{i}"

    if not keys and is_development():
        # Development fallback (never use in production)
        keys["dev-key-insecure"] = "dev_user"

    return keys


def _dev_user_key(raw: Optional[str]) -> Optional[str]:
    if not raw or not is_development():
        return None
    key = raw.strip()[:MAX_USER_KEY_LEN]
    return key or None


async def verify_user_key(
    api_key: str = Security(API_KEY_HEADER),
    dev_user: str = Security(DEV_USER_HEADER),
) -> str:
    """
    Resolve the caller's user key.

    Usage in FastAPI routes:
        @app.get("/api/past-bets")
        def list_past_bets(user: str = Depends(verify_user_key)):
            ...
    """
    if api_key:
        valid = get_valid_api_keys()
        if api_key in valid:
            return valid[api_key]
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    dev_key = _dev_user_key(dev_user)
    if dev_key:
        return dev_key

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="API key required. Include 'X-API-Key' header.",
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_admin_user(user: str = Security(verify_user_key)) -> str:
    """Admin-only routes (only user1 is admin)"""
    if user != ADMIN_USER:
        logger.warning("Admin route refused for %s", user)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return user
