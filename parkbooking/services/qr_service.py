import base64
import io
import json
import secrets

import qrcode

from parkbooking.core.config import settings


def make_ticket_code() -> str:
    """Short human-readable ticket code, e.g. FA-3F9A1C."""
    return settings.TICKET_CODE_PREFIX + secrets.token_hex(3).upper()


def encode(payload: dict) -> str:
    """Render a payload as a PNG QR code and return it as a data URL."""
    img = qrcode.make(json.dumps(payload, separators=(",", ":")))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


def booking_qr_payload(booking_id: str, instance_id: str, quantity: int) -> dict:
    return {"bookingId": booking_id, "instanceId": instance_id, "quantity": quantity}
