"""
mock_payment_service.py — Mock Implementation of the Payment Gateway (REST API)

This module provides a simulated payment gateway for local end-to-end runs of the
keyshop service. It exposes a simple FastAPI application that mimics the real
gateway's trade creation and asynchronous payment notification.

Simulation Scenarios (by channel_id):
    • "decline..." → Trade refused (code 403)
    • "timeout..." → Slow response (simulates client read timeout)
    • anything else → Trade created, pay URL returned

Endpoints:
    POST /order/trade            — Handles incoming (signed) trade requests.
    POST /pay/{out_trade_no}     — Simulates the buyer paying; sends the signed callback.

Port:
    Default: 8001 (HTTP)
"""

import logging
import os
import time

import httpx
from fastapi import FastAPI, Form, HTTPException

from keyshop_service.signing import SignatureVerifier

MOCK_GATEWAY_KEY = os.environ.get("GATEWAY_KEY", "mock-secret")
MOCK_PUBLIC_URL = os.environ.get("MOCK_PUBLIC_URL", "http://localhost:8001")

app = FastAPI(title="Mock Payment Gateway")
logging.basicConfig(level=logging.INFO)

signer = SignatureVerifier(MOCK_GATEWAY_KEY)
trades = {}


@app.post("/order/trade")
def create_trade(
        merchant_id: str = Form(""),
        amount: str = Form(""),
        channel_id: str = Form(""),
        app_id: str = Form(""),
        notification_url: str = Form(""),
        sync_url: str = Form(""),
        ip: str = Form(""),
        out_trade_no: str = Form(""),
        sign: str = Form(""),
):
    """
    Processes a trade creation request.

    Declared as a plain function so the simulated timeout blocks a worker
    thread only, not the event loop serving /pay.

    Returns:
        dict: {"code": 200, "data": {"url": ...}} on success,
              {"code": 401/403, "msg": ...} when the signature is invalid or the channel declines.
    """
    fields = {
        "merchant_id": merchant_id,
        "amount": amount,
        "channel_id": channel_id,
        "app_id": app_id,
        "notification_url": notification_url,
        "sync_url": sync_url,
        "ip": ip,
        "out_trade_no": out_trade_no,
        "sign": sign,
    }
    trade_no = out_trade_no
    logging.info(f"[GW] Trade request for {trade_no} (channel {channel_id})")

    if not signer.verify(fields):
        logging.warning(f"[GW] Invalid signature for {trade_no}.")
        return {"code": 401, "msg": "sign error"}

    if channel_id.startswith("decline"):
        logging.warning(f"[GW] Channel {channel_id} declined trade {trade_no}.")
        return {"code": 403, "msg": "channel unavailable"}

    if channel_id.startswith("timeout"):
        logging.info(f"[GW] Simulating timeout for {trade_no}...")
        time.sleep(10)

    trades[trade_no] = fields
    logging.info(f"[GW] Trade {trade_no} created.")
    return {"code": 200, "data": {"url": f"{MOCK_PUBLIC_URL}/pay/{trade_no}"}}


@app.post("/pay/{out_trade_no}")
async def pay(out_trade_no: str):
    """
    Marks a trade as paid and delivers the signed notification to the
    trade's notification_url.
    """
    trade = trades.get(out_trade_no)
    if trade is None:
        raise HTTPException(status_code=404, detail="trade not found")

    notification = {
        "out_trade_no": out_trade_no,
        "amount": trade["amount"],
        "status": 1,
        "pay_time": time.strftime("%Y-%m-%d %H:%M:%S"),
    }
    notification["sign"] = signer.sign(notification)

    async with httpx.AsyncClient(timeout=5.0) as client:
        response = await client.post(trade["notification_url"], data=notification)
    logging.info(f"[GW] Notification for {out_trade_no} answered: {response.status_code} {response.text}")
    return {"delivered": response.status_code == 200, "answer": response.text}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
