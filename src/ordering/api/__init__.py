"""Ordering domain API package."""

from ordering.api.errors import register_exception_handlers
from ordering.api.routes import (
    checkout_router,
    item_router,
    maintenance_router,
    order_router,
    payment_router,
    user_router,
)

ROUTERS = [order_router, user_router, checkout_router, payment_router, item_router, maintenance_router]

__all__ = [
    "ROUTERS",
    "checkout_router",
    "item_router",
    "maintenance_router",
    "order_router",
    "payment_router",
    "register_exception_handlers",
    "user_router",
]
