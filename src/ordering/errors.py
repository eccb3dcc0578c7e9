"""Error taxonomy for the ordering context.

Rule violations raised by aggregates and the pricing engine are Protean
``ValidationError`` subclasses: nothing was written and the caller may retry
after fixing the input. The remaining classes describe conditions the caller
has to treat differently (authorization, concurrency collisions, unreachable
providers, and states that need a human decision).
"""

from protean.exceptions import ValidationError


# ---------------------------------------------------------------------------
# Validation family (no side effect occurred)
# ---------------------------------------------------------------------------
class InvalidDimensions(ValidationError):
    """A custom dimension is outside its allowed range."""

    def __init__(self, field, value, minimum, maximum):
        self.field = field
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        self.bound = "min" if value < minimum else "max"
        super().__init__(
            {field: [f"{field.capitalize()} must be between {minimum:g} and {maximum:g} ft (got {value:g})"]}
        )


class UnknownMaterial(ValidationError):
    """A material name is not offered for the item."""

    def __init__(self, field, name):
        self.field = field
        self.name = name
        super().__init__({field: [f"Material '{name}' is not available for this item"]})


class InsufficientStock(ValidationError):
    """Requested quantity exceeds the item's available stock."""

    def __init__(self, item_id, requested, available):
        self.item_id = str(item_id)
        self.requested = requested
        self.available = available
        super().__init__(
            {"stock": [f"Item {item_id} has {available} in stock, {requested} requested"]}
        )


class InvalidTransition(ValidationError):
    """The status graph has no edge between the two states."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__({"status": [f"Cannot transition from {current} to {target}"]})


class MissingDeliveryProof(ValidationError):
    """An order cannot become Delivered without a delivery proof reference."""

    def __init__(self):
        super().__init__({"delivery_proof": ["Delivery proof is required to mark an order as Delivered"]})


class RefundNotEligible(ValidationError):
    """The refund policy rejects the request.

    ``reasons`` lists every failing rule; ``reason`` is the first of them.
    """

    WRONG_STATUS = "wrong_status"
    CONTAINS_CUSTOMIZED_ITEMS = "contains_customized_items"

    _MESSAGES = {
        WRONG_STATUS: "Refund requests can only be made for orders that are currently being processed",
        CONTAINS_CUSTOMIZED_ITEMS: "Refund requests cannot be made for orders containing customized items",
    }

    def __init__(self, reasons):
        self.reasons = tuple(reasons)
        self.reason = self.reasons[0]
        super().__init__({"refund": [self._MESSAGES[reason] for reason in self.reasons]})


# ---------------------------------------------------------------------------
# Non-validation failures
# ---------------------------------------------------------------------------
class OrderingError(Exception):
    """Base class for failures that are not input validation errors."""

    code = "ordering_error"

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class Forbidden(OrderingError):
    """The principal's role or ownership does not allow the operation."""

    code = "forbidden"


class ConflictError(OrderingError):
    """Idempotency or optimistic-concurrency collision. Safe to retry."""

    code = "conflict"


class ExternalDependencyError(OrderingError):
    """A provider was unreachable or timed out. The outcome is unknown."""

    code = "external_dependency"


class InvariantViolation(OrderingError):
    """A committed state needs manual reconciliation (e.g. oversold stock)."""

    code = "invariant_violation"
