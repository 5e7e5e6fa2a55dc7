"""
main.py — FastAPI Entry Point for the Keyshop Service

This module provides the REST API interface for selling digital keys.
It is a thin adapter: requests are parsed here and handed to the purchase
workflow or the payment callback handler, whose domain errors are mapped
to HTTP responses.

Responsibilities:
    • Accept purchase requests via HTTP API
    • Receive payment gateway callbacks
    • Serve order queries by trade number
    • Provide system health information
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from .clients import GatewayClient
from .config import ShopSettings
from .errors import ErrorCategory, ErrorKind, ShopError
from .logging_config import setup_logging, get_logger
from .models import OrderView, PurchaseRequest, PurchaseResult
from .repository import UnitOfWork, create_engine_for, create_schema
from .settlement import SIGN_ERROR, PaymentCallbackHandler
from .workflow import OrderTransactionCoordinator

# Initialization
# Configure logging before the app is created
setup_logging()
log = get_logger(__name__)

STATUS_BY_CATEGORY = {
    ErrorCategory.CLIENT_INPUT: 400,
    ErrorCategory.RESOURCE_EXHAUSTED: 409,
    ErrorCategory.CONFIGURATION: 422,
    ErrorCategory.DEPENDENCY: 502,
    ErrorCategory.INTEGRITY: 400,
}


def status_code_for(kind: ErrorKind) -> int:
    if kind == ErrorKind.ORDER_NOT_FOUND:
        return 404
    return STATUS_BY_CATEGORY[kind.category]


def create_app(settings: ShopSettings = None, gateway: GatewayClient = None) -> FastAPI:
    """
    Builds the FastAPI application and wires the workflow components.

    Args:
        settings (ShopSettings): Service configuration; read from the environment when omitted.
        gateway (GatewayClient): Payment gateway client; created from the settings when omitted.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings or ShopSettings.from_env()
    gateway = gateway or GatewayClient(settings)
    engine = create_engine_for(settings.database_url)
    uow = UnitOfWork.from_engine(engine)

    app = FastAPI(title="Keyshop Service")
    app.state.coordinator = OrderTransactionCoordinator(uow, settings, gateway)
    app.state.callback_handler = PaymentCallbackHandler(uow, settings)

    @app.on_event("startup")
    def on_startup():
        """Creates missing tables on startup."""
        log.info("Keyshop service starting...")
        create_schema(engine)

    @app.on_event("shutdown")
    def on_shutdown():
        gateway.close()
        engine.dispose()

    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        return JSONResponse(
            status_code=status_code_for(exc.kind),
            content={"code": exc.kind.value, "message": exc.message},
        )

    # API Endpoint: Buyer → Keyshop
    @app.post("/v1/orders", response_model=PurchaseResult)
    def submit_order(order: PurchaseRequest, request: Request):
        """
        Places an order for a commodity.

        Free orders are delivered immediately (url is empty); paid orders
        return the gateway URL the buyer must be redirected to.

        Returns:
            PurchaseResult: url, amount and tradeNo.
        """
        ip = request.client.host if request.client else ""
        return app.state.coordinator.place_order(order, ip)

    # API Endpoint: Payment Gateway → Keyshop
    @app.post("/v1/orders/callback", response_class=PlainTextResponse)
    async def payment_callback(request: Request):
        """
        Receives the asynchronous payment notification (form-encoded or JSON).

        Returns:
            str: "success", "sign error" or "status error" as plain text.
            An unknown or already settled order yields a 404 error response.
        """
        if request.headers.get("content-type", "").startswith("application/json"):
            fields = await request.json()
            if not isinstance(fields, dict):
                log.warning(f"Rejected callback with a non-object JSON body: {fields!r}")
                return SIGN_ERROR
        else:
            fields = dict(await request.form())
        # The handler blocks on the database; keep it off the event loop.
        return await run_in_threadpool(app.state.callback_handler.handle, fields)

    @app.get("/v1/orders/{trade_no}", response_model=OrderView)
    def query_order(trade_no: str, password: str = ""):
        """Returns status and delivered keys of an order (password required if the order has one)."""
        return app.state.coordinator.lookup(trade_no, password)

    # Health Check Endpoint
    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint.

        Returns:
            dict: A basic JSON object indicating service availability.
        """
        return {"status": "ok"}

    return app


app = create_app()
