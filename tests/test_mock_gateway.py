import inspect

import pytest
from fastapi.testclient import TestClient

from keyshop_service.signing import SignatureVerifier
from mock_services import mock_payment_service


@pytest.fixture
def gateway_client():
    mock_payment_service.trades.clear()
    return TestClient(mock_payment_service.app)


def trade_request(channel="alipay"):
    fields = {
        "merchant_id": "M1001",
        "amount": "15.00",
        "channel_id": channel,
        "app_id": "APP1",
        "notification_url": "https://shop.test/v1/orders/callback",
        "sync_url": "https://shop.test/v1/orders/T1",
        "ip": "10.0.0.1",
        "out_trade_no": "T1",
    }
    fields["sign"] = SignatureVerifier(mock_payment_service.MOCK_GATEWAY_KEY).sign(fields)
    return fields


def test_signed_trade_is_created(gateway_client):
    body = gateway_client.post("/order/trade", data=trade_request()).json()
    assert body["code"] == 200
    assert body["data"]["url"].endswith("/pay/T1")
    assert "T1" in mock_payment_service.trades


def test_declining_channel_is_refused(gateway_client):
    assert gateway_client.post("/order/trade", data=trade_request("decline-card")).json()["code"] == 403


def test_bad_signature_is_refused(gateway_client):
    fields = dict(trade_request(), amount="0.01")
    assert gateway_client.post("/order/trade", data=fields).json()["code"] == 401


def test_paying_unknown_trade_is_404(gateway_client):
    assert gateway_client.post("/pay/unknown").status_code == 404


def test_trade_endpoint_runs_in_a_worker_thread():
    # a coroutine would stall /pay while the timeout channel sleeps
    assert not inspect.iscoroutinefunction(mock_payment_service.create_trade)


def test_trade_is_stored_with_the_signed_fields(gateway_client):
    fields = trade_request()
    gateway_client.post("/order/trade", data=fields)
    assert mock_payment_service.trades["T1"]["notification_url"] == fields["notification_url"]
    assert mock_payment_service.trades["T1"]["amount"] == "15.00"
