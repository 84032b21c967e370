"""Checkout domain API package."""

from checkout.api.admin import admin_router
from checkout.api.errors import register_checkout_exception_handlers
from checkout.api.routes import checkout_router

__all__ = ["checkout_router", "admin_router", "register_checkout_exception_handlers"]
