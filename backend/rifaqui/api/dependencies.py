import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from ..core.config import settings


def require_admin_key(
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key", convert_underscores=False),
) -> None:
    """Guard operational routes with the shared ``ADMIN_API_KEY``.

    An unset key disables the routes entirely.
    """
    expected = settings.ADMIN_API_KEY
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operational routes are disabled",
        )
    supplied = (x_admin_key or "").encode("utf-8")
    if not hmac.compare_digest(expected.encode("utf-8"), supplied):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )
