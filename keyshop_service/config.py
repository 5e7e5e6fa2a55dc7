"""
config.py — Service Configuration

Gateway credentials, public URLs and the support contact used in apology
messages are collected into one immutable ShopSettings object. It is built
once (normally from environment variables) and passed explicitly into the
coordinator, the callback handler and the gateway client.
"""

import os

from pydantic import BaseModel, ConfigDict


class ShopSettings(BaseModel):
    """
    Immutable configuration value object.

    Attributes:
        database_url (str): SQLAlchemy URL of the relational store.
        gateway_url (str): Trade creation endpoint of the payment gateway.
        merchant_id (str): Merchant identifier issued by the gateway.
        app_id (str): Application identifier issued by the gateway.
        gateway_key (str): Shared secret used for request/callback signatures.
        sign_type (str): hashlib algorithm name used for signatures.
        public_base_url (str): Externally reachable base URL of this service.
        support_contact (str): Contact shown to buyers when delivery fails.
        connect_timeout (float): Gateway connect timeout in seconds.
        read_timeout (float): Gateway read timeout in seconds.
    """
    model_config = ConfigDict(frozen=True)

    database_url: str = "sqlite:///./keyshop.db"
    gateway_url: str = "https://lizhifu.net/order/trade"
    merchant_id: str = ""
    app_id: str = ""
    gateway_key: str = ""
    sign_type: str = "md5"
    public_base_url: str = "http://localhost:8000"
    support_contact: str = ""
    connect_timeout: float = 5.0
    read_timeout: float = 8.0

    @classmethod
    def from_env(cls) -> "ShopSettings":
        """Builds the settings from environment variables, falling back to the defaults."""
        defaults = cls()
        return cls(
            database_url=os.environ.get("DATABASE_URL", defaults.database_url),
            gateway_url=os.environ.get("GATEWAY_URL", defaults.gateway_url),
            merchant_id=os.environ.get("GATEWAY_MERCHANT_ID", defaults.merchant_id),
            app_id=os.environ.get("GATEWAY_APP_ID", defaults.app_id),
            gateway_key=os.environ.get("GATEWAY_KEY", defaults.gateway_key),
            sign_type=os.environ.get("GATEWAY_SIGN_TYPE", defaults.sign_type),
            public_base_url=os.environ.get("PUBLIC_BASE_URL", defaults.public_base_url),
            support_contact=os.environ.get("SUPPORT_CONTACT", defaults.support_contact),
            connect_timeout=float(os.environ.get("GATEWAY_CONNECT_TIMEOUT", defaults.connect_timeout)),
            read_timeout=float(os.environ.get("GATEWAY_READ_TIMEOUT", defaults.read_timeout)),
        )

    @property
    def notification_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/v1/orders/callback"

    def sync_url(self, trade_no: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/v1/orders/{trade_no}"
