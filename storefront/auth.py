from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException

from . import config


@dataclass
class Identity:
    """Authenticated caller, as issued by the auth service."""
    id: str
    email: str
    role: str = "user"


def decode_identity(token, secret):
    claims = jwt.decode(token, secret, algorithms=["HS256"])
    if not claims.get("id") or not claims.get("email"):
        raise jwt.InvalidTokenError("Token is missing identity claims")
    return Identity(id=str(claims["id"]), email=claims["email"], role=claims.get("role", "user"))


def get_identity(authorization: Optional[str] = Header(default=None)):
    """FastAPI dependency: rejects the request before any order logic runs."""
    if not authorization:
        raise HTTPException(status_code=401, detail="No token, authorization denied")
    token = authorization.removeprefix("Bearer ").strip()
    try:
        return decode_identity(token, config.JWT_SECRET)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Token is not valid")


def require_admin(identity: Identity = Depends(get_identity)):
    if identity.role != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return identity
