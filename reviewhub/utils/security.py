from typing import Any, Dict, Optional

import jwt

from reviewhub.config.settings import settings

from .errors import AuthenticationError


def decode_access_token(token: Optional[str]) -> Dict[str, Any]:
    """Verify a bearer token issued by the credential service and return its claims."""
    if not token:
        raise AuthenticationError("Authentication required")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired", "TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token", "INVALID_TOKEN")
    if payload.get("type") == "refresh":
        raise AuthenticationError("Invalid token type", "INVALID_TOKEN")
    if not payload.get("sub"):
        raise AuthenticationError("Invalid token", "INVALID_TOKEN")
    return payload


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value:
        return None
    return value.strip()
