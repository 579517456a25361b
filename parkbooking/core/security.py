from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import jwt

from parkbooking.core.config import settings

ALGO = "HS256"


def create_access_token(subject: str, role: str = "user", park_id: str | None = None,
                        email: str | None = None, expires_minutes: int | None = None) -> str:
    """Mint a bearer token carrying the principal claims the booking core reads."""
    if expires_minutes is None:
        expires_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES
    exp = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": subject, "role": role, "type": "access", "exp": exp}
    if park_id:
        payload["parkId"] = park_id
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGO)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])


ROLES = ("user", "sous_admin", "admin")


@dataclass
class Principal:
    """Authenticated caller as carried by the bearer token."""
    id: str
    role: str = "user"
    park_id: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_manage_park(self, park_id: str) -> bool:
        if self.is_admin:
            return True
        return self.role == "sous_admin" and bool(self.park_id) and self.park_id == park_id


def principal_from_claims(payload: dict) -> Principal:
    role = (payload.get("role") or "user").strip().lower().replace(" ", "_")
    if role not in ROLES:
        role = "user"
    return Principal(id=str(payload.get("sub") or ""), role=role,
                     park_id=payload.get("parkId"), email=payload.get("email"))
