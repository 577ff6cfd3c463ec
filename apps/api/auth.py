from __future__ import annotations

import logging
import os
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer


logger = logging.getLogger("crm_reminders.auth")

_bearer = HTTPBearer(auto_error=False)


def _jwt_secret() -> str:
    return os.getenv("CRM_JWT_SECRET", "")


def owner_from_token(token: str) -> int:
    secret = _jwt_secret()
    if not secret:
        logger.error("auth_not_configured; set CRM_JWT_SECRET")
        raise HTTPException(status_code=401, detail="Authentication is not configured")
    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid or expired token") from exc
    subject = claims.get("id", claims.get("sub"))
    try:
        return int(subject)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Token has no user id") from exc


def current_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> int:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    return owner_from_token(credentials.credentials)


def stream_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    token: Optional[str] = Query(default=None),
) -> int:
    # EventSource cannot set headers, so the stream also accepts ?token=.
    if credentials is not None and credentials.credentials:
        return owner_from_token(credentials.credentials)
    if token:
        return owner_from_token(token)
    raise HTTPException(status_code=401, detail="Authentication token required")
