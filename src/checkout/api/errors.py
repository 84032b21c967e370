"""HTTP mapping for checkout errors Protean's handlers do not know about.

Protean's ``register_exception_handlers`` covers ValidationError (400) and
ObjectNotFoundError (404). Processor failures and integrity violations are
mapped here, without leaking internals to the client.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from checkout.domain import logger
from checkout.exceptions import IntegrityViolation
from checkout.gateway.port import GatewayRejected, GatewayUnavailable


def register_checkout_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayUnavailable)
    async def gateway_unavailable(request: Request, exc: GatewayUnavailable) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"error": "Payment processor unavailable, please try again", "retryable": True},
        )

    @app.exception_handler(GatewayRejected)
    async def gateway_rejected(request: Request, exc: GatewayRejected) -> JSONResponse:
        return JSONResponse(
            status_code=402,
            content={"error": str(exc), "code": exc.code, "retryable": False},
        )

    @app.exception_handler(IntegrityViolation)
    async def integrity_violation(request: Request, exc: IntegrityViolation) -> JSONResponse:
        logger.warning("integrity_violation", path=request.url.path, error=str(exc), **exc.context)
        return JSONResponse(status_code=409, content={"error": "Payment details do not match this order"})
