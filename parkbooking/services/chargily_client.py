import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

import requests

from parkbooking.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class ChargilyConfig:
    api_key: str            # secret key; also signs webhooks
    base_url: str           # https://pay.chargily.net/test/api/v2 or .../api/v2
    currency: str = "dzd"
    timeout: int = 25


class ChargilyError(RuntimeError):
    pass


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Webhook check: hex HMAC-SHA256 of the raw body keyed with the API secret."""
    if not secret or not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature.strip())


class ChargilyClient:
    def __init__(self, cfg: ChargilyConfig):
        self.cfg = cfg

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.cfg.base_url.rstrip('/')}{path}"
        headers = {
            "Authorization": f"Bearer {self.cfg.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            r = requests.request(method=method.upper(), url=url, data=json.dumps(payload or {}),
                                 headers=headers, timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise ChargilyError(f"Chargily unreachable: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            raise ChargilyError(f"Chargily {r.status_code}: {data}")
        return data

    def create_checkout_session(self, amount_minor: int, currency: str, success_url: str) -> dict:
        """Open a hosted checkout. Returns {"id", "checkout_url"}."""
        data = self.request("POST", "/checkouts", {
            "amount": amount_minor,
            "currency": currency,
            "success_url": success_url,
        })
        if not data.get("id") or not data.get("checkout_url"):
            raise ChargilyError(f"Chargily returned no checkout: {data}")
        logger.info("Chargily checkout %s opened for %s %s", data["id"], amount_minor, currency)
        return {"id": data["id"], "checkout_url": data["checkout_url"]}


def get_payment_gateway() -> ChargilyClient:
    """FastAPI dependency; tests override it with a fake."""
    return ChargilyClient(ChargilyConfig(
        api_key=settings.CHARGILY_API_KEY,
        base_url=settings.CHARGILY_API_BASE,
        currency=settings.CHARGILY_CURRENCY,
        timeout=settings.CHARGILY_TIMEOUT,
    ))
