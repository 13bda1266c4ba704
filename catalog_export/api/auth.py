"""Authentication dependencies for the export API.

Exports are open to anonymous callers. A bearer token matching
CATALOG_EXPORT_API_TOKEN marks the caller as authenticated, which adds the
record identifier column and restricted fields to the output. A token that
does not match is rejected rather than silently downgraded.

When CATALOG_EXPORT_API_TOKEN is not set, every caller is anonymous.
"""

from __future__ import annotations

import os
import secrets

from fastapi import Depends, Header, HTTPException


def _get_api_token() -> str:
    """Read the API token at call time (supports test overrides)."""
    return os.getenv("CATALOG_EXPORT_API_TOKEN", "")


def _get_bearer_token(authorization: str = Header(default="")) -> str:
    """Extract bearer token from Authorization header."""
    if authorization.startswith("Bearer "):
        return authorization[7:]
    return ""


async def caller_is_authenticated(token: str = Depends(_get_bearer_token)) -> bool:
    api_token = _get_api_token()
    if not api_token or not token:
        return False
    if not secrets.compare_digest(token, api_token):
        raise HTTPException(status_code=401, detail="Invalid API token")
    return True
