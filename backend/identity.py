"""Verification of identity tokens issued by the external auth service."""
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional
import logging

import jwt as pyjwt

import config
from errors import Unauthorized

logger = logging.getLogger(__name__)

VALID_ROLES = ("host", "player", "admin")


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str


def create_token(user_id: str, role: str = "host", expires_in: Optional[timedelta] = None) -> str:
    """Mint a signed token. The auth service does this in production."""
    now = datetime.now(timezone.utc)
    if expires_in is None:
        expires_in = timedelta(hours=config.JWT_EXPIRATION_HOURS)
    payload = {
        "id": user_id,
        "role": role,
        "iat": now,
        "exp": now + expires_in,
    }
    return pyjwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_token(token: Optional[str]) -> Identity:
    """Decode a token into an Identity, raising Unauthorized on any failure."""
    if not token or not isinstance(token, str):
        raise Unauthorized("Invalid or expired token.")
    try:
        payload = pyjwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise Unauthorized("Invalid or expired token.")
    except pyjwt.InvalidTokenError as exc:
        logger.info("Rejected invalid token: %s", exc)
        raise Unauthorized("Invalid or expired token.")

    user_id = payload.get("id") or payload.get("sub")
    role = payload.get("role")
    if not user_id or role not in VALID_ROLES:
        raise Unauthorized("Invalid or expired token.")
    return Identity(user_id=str(user_id), role=role)
