from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from parkbooking.core.errors import Unauthorized, Forbidden
from parkbooking.core.security import decode_token, principal_from_claims, Principal

bearer = HTTPBearer(auto_error=False)

def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> Principal:
    if not creds:
        raise Unauthorized("Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise Unauthorized("Invalid token")
    if payload.get("type") != "access" or not payload.get("sub"):
        raise Unauthorized("Invalid token")
    return principal_from_claims(payload)

def require_roles(*roles: str):
    def _guard(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise Forbidden("Forbidden")
        return principal
    return _guard
