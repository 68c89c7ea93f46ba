import secrets

from fastapi import Header, HTTPException, status

from contact_ledger.core.config import settings


def require_admin_key(x_admin_key: str | None = Header(None)) -> None:
    """Admin routes need X-Admin-Key == settings.admin_api_key. No key configured = admin API closed."""
    expected = settings.admin_api_key
    if not expected or not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")
