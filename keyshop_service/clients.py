"""
This module provides the communication client for the external payment gateway (REST API).
It encapsulates request signing, the HTTP exchange, error handling and connection management.
"""

import logging

import httpx

from .config import ShopSettings
from .signing import SignatureVerifier

log = logging.getLogger(__name__)

GATEWAY_SUCCESS_CODE = 200


class GatewayClient:
    """
    Client for the payment gateway (REST API).
    Creates trades for paid orders and returns the payment redirect URL.
    """
    def __init__(self, settings: ShopSettings, transport: httpx.BaseTransport = None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            settings (ShopSettings): Gateway URL, credentials and timeouts.
            transport (httpx.BaseTransport): Optional transport override (tests use httpx.MockTransport).
        """
        self.settings = settings
        self.signer = SignatureVerifier(settings.gateway_key, settings.sign_type)
        timeout_config = httpx.Timeout(settings.connect_timeout, read=settings.read_timeout)
        self.client = httpx.Client(timeout=timeout_config, transport=transport)

    def close(self):
        """Closes the HTTP client session."""
        self.client.close()

    def build_trade_request(self, trade_no: str, amount, channel_code: str, ip: str) -> dict:
        """
        Builds and signs the outbound trade request for an order.

        Returns:
            dict: merchant_id, amount, channel_id, app_id, notification_url,
            sync_url, ip, out_trade_no and sign.
        """
        payload = {
            "merchant_id": self.settings.merchant_id,
            "amount": f"{amount:.2f}",
            "channel_id": channel_code,
            "app_id": self.settings.app_id,
            "notification_url": self.settings.notification_url,
            "sync_url": self.settings.sync_url(trade_no),
            "ip": ip,
            "out_trade_no": trade_no,
        }
        payload["sign"] = self.signer.sign(payload)
        return payload

    def create_trade(self, payload: dict) -> dict:
        """
        Sends a signed trade request to the gateway.

        Args:
            payload (dict): Request built by build_trade_request().

        Returns:
            dict: Decoded JSON response, e.g. {"code": 200, "data": {"url": "..."}}.

        Raises:
            httpx.TimeoutException: If the gateway does not respond within the timeout.
            httpx.HTTPStatusError: If the gateway returns an error status (4xx or 5xx).
            httpx.HTTPError: For any other transport failure.
        """
        trade_no = payload["out_trade_no"]
        try:
            response = self.client.post(self.settings.gateway_url, data=payload)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException:
            log.error(f"[Trade: {trade_no}] Payment gateway timeout, trade status unknown.")
            raise
        except httpx.HTTPStatusError as e:
            log.error(f"[Trade: {trade_no}] HTTP error from payment gateway: {e}")
            raise
