import json
import uuid

from parkbooking.core.security import create_access_token
from parkbooking.services.chargily_client import compute_signature

WEBHOOK_SECRET = "test_sk_webhook"


def auth_headers(user_id: str, role: str = "user", park_id: str | None = None, email: str | None = None) -> dict:
    token = create_access_token(user_id, role=role, park_id=park_id, email=email)
    return {"Authorization": f"Bearer {token}"}


def sign(body: bytes) -> str:
    return compute_signature(WEBHOOK_SECRET, body)


def webhook_body(event_type: str, payment_id: str, event_id: str | None = None) -> bytes:
    return json.dumps({
        "id": event_id or f"evt_{uuid.uuid4().hex[:8]}",
        "type": event_type,
        "data": {"id": payment_id, "payment_method": "edahabia", "currency": "dzd"},
    }).encode()
