"""Route-level session guard for the protected areas of the site.

Page navigations are redirected; API calls get a JSON 401/403.
"""
import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import RedirectResponse

from .auth import capability_from_claims, session_claims
from .errors import error_response

logger = logging.getLogger(__name__)

PROTECTED_PREFIXES = ("/admin", "/dashboard", "/book")
SIGNIN_PATH = "/signin"
DASHBOARD_PATH = "/dashboard"
NAVIGATION_METHODS = ("GET", "HEAD")


def protected_prefix(path: str) -> Optional[str]:
    """Return the protected prefix ``path`` falls under, matching whole segments."""
    for prefix in PROTECTED_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            return prefix
    return None


async def session_guard(request: Request, call_next):
    prefix = protected_prefix(request.url.path)
    if prefix is None:
        return await call_next(request)

    cap = capability_from_claims(session_claims(request))
    navigation = request.method in NAVIGATION_METHODS

    if not cap.authenticated:
        if navigation:
            return RedirectResponse(url=SIGNIN_PATH, status_code=303)
        return error_response(401, "Unauthorized")

    if prefix == "/admin" and not cap.is_admin:
        logger.info("Non-admin session refused on %s %s", request.method, request.url.path)
        if navigation:
            return RedirectResponse(url=DASHBOARD_PATH, status_code=303)
        return error_response(403, "Admin access required")

    return await call_next(request)
