from unittest.mock import MagicMock, patch

import pytest
import requests

from parkbooking.services.chargily_client import (
    ChargilyClient, ChargilyConfig, ChargilyError, compute_signature, verify_signature,
)


@pytest.fixture
def chargily():
    return ChargilyClient(ChargilyConfig(api_key="test_sk_123", base_url="https://pay.chargily.net/test/api/v2/"))


def _response(status_code: int, payload: dict):
    r = MagicMock()
    r.status_code = status_code
    r.text = "x"
    r.json.return_value = payload
    return r


def test_verify_signature():
    body = b'{"type":"checkout.paid"}'
    good = compute_signature("secret", body)
    assert verify_signature("secret", body, good)
    assert not verify_signature("secret", body + b" ", good)
    assert not verify_signature("other", body, good)
    assert not verify_signature("", body, good)
    assert not verify_signature("secret", body, None)


def test_create_checkout_session_posts_amount_and_bearer_key(chargily):
    with patch("parkbooking.services.chargily_client.requests.request",
               return_value=_response(200, {"id": "01hj", "checkout_url": "https://pay.chargily.net/x"})) as req:
        session = chargily.create_checkout_session(500000, "dzd", "http://localhost:3000/payment-success")

    assert session == {"id": "01hj", "checkout_url": "https://pay.chargily.net/x"}
    kwargs = req.call_args.kwargs
    assert kwargs["method"] == "POST"
    assert kwargs["url"] == "https://pay.chargily.net/test/api/v2/checkouts"
    assert kwargs["headers"]["Authorization"] == "Bearer test_sk_123"
    assert '"amount": 500000' in kwargs["data"]


def test_gateway_errors_are_raised(chargily):
    with patch("parkbooking.services.chargily_client.requests.request",
               return_value=_response(422, {"message": "amount too small"})):
        with pytest.raises(ChargilyError, match="422"):
            chargily.create_checkout_session(1, "dzd", "http://x")

    with patch("parkbooking.services.chargily_client.requests.request",
               side_effect=requests.ConnectionError("down")):
        with pytest.raises(ChargilyError, match="unreachable"):
            chargily.create_checkout_session(1, "dzd", "http://x")

    with patch("parkbooking.services.chargily_client.requests.request", return_value=_response(200, {})):
        with pytest.raises(ChargilyError):
            chargily.create_checkout_session(1, "dzd", "http://x")
