"""JWT token creation and validation."""

import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from brokerdesk.config import settings
from brokerdesk.auth.principal import Principal

ALGORITHM = "HS256"


def create_access_token(principal: Principal) -> str:
    """Create a short-lived access token carrying the principal's claims."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(principal.id),
        "email": principal.email,
        "org": principal.organization_id,
        "plv": principal.privilege_level,
        "roles": sorted(r.value for r in principal.additional_roles),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def create_refresh_token() -> str:
    """Create an opaque refresh token (kept in the session store)."""
    return secrets.token_urlsafe(48)


def decode_access_token(token: str) -> dict:
    """Decode and validate an access token. Raises JWTError on failure."""
    payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Invalid token type")
    return payload


def principal_from_claims(claims: dict) -> Principal:
    """Rebuild the Principal from decoded claims. Raises pydantic.ValidationError."""
    return Principal.model_validate({
        "id": claims.get("sub"),
        "email": claims.get("email"),
        "organization_id": claims.get("org"),
        "privilege_level": claims.get("plv"),
        "additional_roles": claims.get("roles") or [],
    })
