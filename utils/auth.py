"""Admin bearer-token check used as a FastAPI dependency."""

import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Request

AUTH_COOKIE = "auth-token"


def get_token_from_request(request: Request) -> Optional[str]:
    """Return the token from the ``Authorization: Bearer`` header or the auth cookie."""
    header = request.headers.get("authorization")
    if header and header.startswith("Bearer "):
        return header[len("Bearer "):].strip()
    return request.cookies.get(AUTH_COOKIE)


def require_admin(request: Request) -> None:
    """Reject the request with 401 unless it carries the admin token."""
    expected = request.app.state.settings.admin_token
    token = get_token_from_request(request)
    if not token or not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logging.warning("Rejected unauthenticated request to %s", request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")
