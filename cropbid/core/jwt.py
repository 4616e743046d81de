# cropbid/core/jwt.py
"""JWT helpers for the identity issued by the authentication provider."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from cropbid.core.config import settings


class Principal(BaseModel):
    """Calling identity carried by the access token."""

    user_id: str
    name: str
    email: str
    role: str = "trader"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(
    user_id: str,
    name: str,
    email: str,
    role: str = "trader",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token for a principal.

    Args:
        user_id: Principal id
        name: Display name, used as the bidder name
        email: Email, used as the bidder email
        role: "farmer", "trader" or "admin"
        expires_delta: Lifetime override

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {
        "user_id": user_id,
        "name": name,
        "email": email,
        "role": role,
        "exp": now + expires_delta,
        "iat": now,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Principal]:
    """
    Decode and validate a JWT token.

    Returns:
        Principal if valid, None if invalid or expired
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    try:
        return Principal(
            user_id=str(payload["user_id"]),
            name=payload.get("name", ""),
            email=payload.get("email", ""),
            role=payload.get("role", "trader"),
        )
    except (KeyError, ValidationError):
        return None
