from __future__ import annotations

from typing import Any, Dict

from jose import JWTError, jwt

from ..database import settings


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:  # pragma: no cover - logged upstream
        raise ValueError("Invalid token") from exc
