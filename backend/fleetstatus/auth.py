"""Request authentication - session lookup, role checks, and cron bearer token."""
import hashlib
import hmac
import logging
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_db
from .models import Profile

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store session tokens."""
    return hashlib.sha256(token.encode()).hexdigest()


async def get_current_user(
    session_token: Optional[str] = Cookie(None),
    x_session_token: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Resolve the caller from the session cookie (or X-Session-Token header)."""
    token = session_token or x_session_token
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    result = await db.execute(
        select(Profile).where(Profile.session_token_hash == hash_token(token))
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def require_admin(user: Profile = Depends(get_current_user)) -> Profile:
    if user.role != "admin":
        logger.warning(f"Admin access denied for {user.email} (role={user.role})")
        raise HTTPException(status_code=403, detail="Unauthorized")
    return user


async def require_editor(user: Profile = Depends(get_current_user)) -> Profile:
    if user.role not in ("admin", "editor"):
        raise HTTPException(status_code=403, detail="Unauthorized")
    return user


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Accept only `Authorization: Bearer <CRON_SECRET>`."""
    if not settings.cron_secret:
        logger.warning("Cron request rejected - CRON_SECRET not configured")
        raise HTTPException(status_code=401, detail="Unauthorized")

    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        logger.warning("Cron request rejected - invalid bearer token")
        raise HTTPException(status_code=401, detail="Unauthorized")
