"""Storefront checkout FastAPI application.

Serves order placement, payment authorization and verification, processor
webhooks and the back-office views. Commands are processed synchronously
inside a Protean domain context pushed per request.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from checkout.domain import checkout
from checkout.utils.logging import add_context, clear_context, configure_logging

configure_logging()

# PROTEAN_ENV selects the domain.toml overlay (memory stores unless production/staging)
checkout.init()

app = FastAPI(
    title="Storefront Checkout API",
    description="Orders, payment authorization and verification, processor webhooks",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the checkout domain context and tag log lines with a request id."""
    add_context(request_id=request.headers.get("x-request-id") or uuid4().hex, path=request.url.path)
    try:
        with checkout.domain_context():
            response = await call_next(request)
    finally:
        clear_context()
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from checkout.api import admin_router, checkout_router, register_checkout_exception_handlers  # noqa: E402

app.include_router(checkout_router)
app.include_router(admin_router)

register_exception_handlers(app)
register_checkout_exception_handlers(app)


@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": checkout.name})
