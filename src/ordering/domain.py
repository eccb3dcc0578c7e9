"""Ordering bounded context: order finalization and lifecycle.

Hosts the custom-item pricing engine, item stock, shopping carts, the
idempotent checkout finalization pipeline, and the order status state machine.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
