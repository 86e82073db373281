from __future__ import annotations

"""Identity collaborator: bearer-token verification.

The assistant does not own authentication. It only needs a verified principal
(``user_id`` + ``tenant_id``) to scope store access and audit entries. Tokens are
HS256 JWTs carrying:

- ``sub``       -> user id
- ``tenant_id`` -> tenant (company) id
- ``name``, ``roles`` (optional)

Env vars:
- JWT_SECRET (required in prod; default for dev)
- JWT_EXPIRES_MIN (default 60)
- ASSISTANT_PUBLIC_MODE (default on): allow anonymous conversation without mutations
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import logging
import os

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    expires_min: int = 60

    @staticmethod
    def from_env() -> "JwtConfig":
        secret = _get_env("JWT_SECRET", "dev-secret-change-me")
        expires = int(os.getenv("JWT_EXPIRES_MIN", "60"))
        return JwtConfig(secret=secret, expires_min=expires)


@dataclass(frozen=True)
class Principal:
    user_id: str
    tenant_id: str
    name: str = ""
    roles: List[str] = field(default_factory=lambda: ["contributor"])


class InvalidToken(Exception):
    pass


def create_access_token(principal: Principal, cfg: Optional[JwtConfig] = None) -> str:
    cfg = cfg or JwtConfig.from_env()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.expires_min)
    payload = {
        "sub": principal.user_id,
        "tenant_id": principal.tenant_id,
        "name": principal.name,
        "roles": list(principal.roles),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)


def _roles_claim(raw) -> List[str]:
    if isinstance(raw, str):
        raw = [raw]
    roles = [str(r) for r in (raw or []) if r]
    return roles or ["contributor"]


def decode_token(token: str, cfg: Optional[JwtConfig] = None) -> Principal:
    cfg = cfg or JwtConfig.from_env()
    try:
        data = jwt.decode(token, cfg.secret, algorithms=[cfg.algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise InvalidToken("Token expired") from exc
    except jwt.PyJWTError as exc:
        raise InvalidToken("Invalid token") from exc
    user_id = data.get("sub")
    tenant_id = data.get("tenant_id")
    if not user_id or not tenant_id:
        raise InvalidToken("Token missing subject or tenant")
    return Principal(
        user_id=str(user_id),
        tenant_id=str(tenant_id),
        name=str(data.get("name") or ""),
        roles=_roles_claim(data.get("roles")),
    )


def public_mode_enabled() -> bool:
    val = os.getenv("ASSISTANT_PUBLIC_MODE")
    if val is None:
        return True
    return val.lower() in ("1", "true", "yes")


def get_optional_principal(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Principal]:
    """Resolve the caller if a valid bearer token is present.

    A missing token yields ``None``: the assistant still answers but cannot
    touch tenant data. An invalid token also degrades in public mode; outside
    public mode it is a 401.
    """
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer":
        return None
    try:
        return decode_token(creds.credentials)
    except InvalidToken as exc:
        logger.info("bearer_token_rejected", extra={"reason": str(exc)})
        if not public_mode_enabled():
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return None


def get_current_principal(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """Strict variant for endpoints that only make sense for a known tenant."""
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        return decode_token(creds.credentials)
    except InvalidToken as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
