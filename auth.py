"""
Single shared-password admin authentication.

The session lives in a signed cookie (Starlette ``SessionMiddleware``).
A request is authenticated while its session carries
``authenticated=True`` and a ``loginTime`` younger than
``SESSION_MAX_AGE``; an older session is cleared on sight.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request

from errors import UnauthorizedError, utc_now_iso

logger = logging.getLogger(__name__)


def auth_log(action: str, success: bool, user_agent: Optional[str] = None) -> None:
    status = "SUCCESS" if success else "FAILED"
    logger.info("AUTH %s %s - User-Agent: %s", action.upper(), status, user_agent or "Unknown")


def _login_age(login_time: Optional[str]) -> Optional[timedelta]:
    if not login_time:
        return None
    try:
        started = datetime.fromisoformat(login_time.replace("Z", "+00:00"))
    except ValueError:
        return None
    return datetime.now(timezone.utc) - started


def is_authenticated(request: Request) -> bool:
    session = request.session
    if not session.get("authenticated"):
        return False

    max_age = request.app.state.settings.SESSION_MAX_AGE
    age = _login_age(session.get("loginTime"))
    if age is None or age > timedelta(seconds=max_age):
        session.clear()
        return False
    return True


def require_admin(request: Request) -> None:
    """Dependency for admin-only routes."""
    if not is_authenticated(request):
        raise UnauthorizedError("Authentication required")


def check_password(candidate: str, expected: Optional[str]) -> bool:
    if not expected:
        return False
    return secrets.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


async def login(request: Request, password: str) -> str:
    """Start an admin session. Returns the login time."""
    settings = request.app.state.settings
    user_agent = request.headers.get("user-agent")

    if not check_password(password, settings.ADMIN_PASSWORD):
        auth_log("login", False, user_agent)
        # Slows down guessing; this is not rate limiting.
        await asyncio.sleep(settings.LOGIN_FAILURE_DELAY)
        raise UnauthorizedError("Invalid password", code="INVALID_CREDENTIALS")

    login_time = utc_now_iso()
    request.session.clear()
    request.session["authenticated"] = True
    request.session["loginTime"] = login_time
    auth_log("login", True, user_agent)
    return login_time


def logout(request: Request) -> bool:
    """End the session immediately. Returns whether it was authenticated."""
    was_authenticated = is_authenticated(request)
    request.session.clear()
    if was_authenticated:
        auth_log("logout", True, request.headers.get("user-agent"))
    return was_authenticated
