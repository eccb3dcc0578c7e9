"""Order repository: persistence and status-indexed queries.

Business rules live on the aggregate. The repository adds the two guarantees
persistence has to provide: one order per ``transaction_hash`` and
compare-and-swap writes for status changes.
"""

import structlog
from protean.exceptions import ExpectedVersionError, ValidationError

from ordering.domain import ordering
from ordering.errors import ConflictError
from ordering.order.order import Order, OrderStatus, PaymentStatus

logger = structlog.get_logger(__name__)


def _newest_first(orders):
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


@ordering.repository(part_of=Order)
class OrderRepository:
    def create(self, order: Order) -> Order:
        """Persist a new order; a second order for the same token is a ConflictError."""
        if self.get_by_transaction_hash(order.transaction_hash) is not None:
            raise ConflictError(
                f"An order for transaction {order.transaction_hash} already exists",
                transaction_hash=order.transaction_hash,
            )

        try:
            self.add(order)
        except ValidationError as exc:
            # Uniqueness on transaction_hash enforced by the provider
            if "transaction_hash" in exc.messages:
                raise ConflictError(
                    f"An order for transaction {order.transaction_hash} already exists",
                    transaction_hash=order.transaction_hash,
                ) from exc
            raise
        return order

    def get_by_transaction_hash(self, transaction_hash) -> Order | None:
        orders = self._dao.query.filter(transaction_hash=transaction_hash).all().items
        return orders[0] if orders else None

    def update_status(self, order: Order, expected_status) -> Order:
        """Write a status change only if the stored status is still ``expected_status``."""
        persisted = self._dao.get(order.id)
        if persisted.status != expected_status:
            raise ConflictError(
                f"Order {order.id} changed concurrently: expected {expected_status}, found {persisted.status}",
                order_id=str(order.id),
                expected_status=expected_status,
                actual_status=persisted.status,
            )

        try:
            self.add(order)
        except ExpectedVersionError as exc:
            raise ConflictError(
                f"Order {order.id} was modified concurrently",
                order_id=str(order.id),
            ) from exc

        logger.debug("Order status written", order_id=str(order.id), status=order.status)
        return order

    def find_by_status(self, status) -> list[Order]:
        return _newest_first(self._dao.query.filter(status=status).all().items)

    def find_for_customer(self, customer_id) -> list[Order]:
        return _newest_first(self._dao.query.filter(customer_id=str(customer_id)).all().items)

    def list_recent(self, limit=100) -> list[Order]:
        return _newest_first(self._dao.query.all().items)[:limit]

    def find_unreconciled_carts(self) -> list[Order]:
        return self._dao.query.filter(cart_reconciled=False).all().items

    def find_unconfirmed_payments(self) -> list[Order]:
        return [
            order
            for order in self._dao.query.filter(status=OrderStatus.ON_PROCESS.value).all().items
            if order.payment_status in (PaymentStatus.PENDING.value, PaymentStatus.UNKNOWN.value)
        ]

    def find_pending_reservations(self) -> list[Order]:
        """On Process orders with at least one line whose stock was never reserved."""
        return [
            order
            for order in self._dao.query.filter(status=OrderStatus.ON_PROCESS.value).all().items
            if order.pending_lines
        ]
