"""Optional HTTP basic auth for every exporter endpoint."""

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

_basic = HTTPBasic(auto_error=False)


async def require_basic_auth(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(_basic),
) -> None:
    """Reject the request unless it carries the configured credentials.

    A no-op when no basic auth user is configured.
    """
    settings = request.app.state.settings
    if not settings.basic_auth_username:
        return

    expected_password = (
        settings.basic_auth_password.get_secret_value() if settings.basic_auth_password else ""
    )
    if credentials is not None:
        user_ok = secrets.compare_digest(
            credentials.username.encode(), settings.basic_auth_username.encode()
        )
        password_ok = secrets.compare_digest(
            credentials.password.encode(), expected_password.encode()
        )
        if user_ok and password_ok:
            return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": 'Basic realm="redis-exporter"'},
    )
