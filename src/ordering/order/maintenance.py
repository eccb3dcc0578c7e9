"""Maintenance sweeps for work the finalization pipeline defers.

Triggered periodically by an external scheduler (cron, K8s CronJob) through
the maintenance API endpoints:

- ReconcilePendingCarts clears carts for orders whose reconciliation failed
- RetryPaymentConfirmations re-asks the provider about pending/unknown payments
- ResumeStockReservations reserves lines an interrupted finalization left pending

None of them charges the customer. Stock is only decremented for lines still
pending, so every sweep can run repeatedly.
"""

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Integer
from protean.utils.globals import current_domain

from ordering.cart.reconciliation import remove_items
from ordering.checkout.finalization import reserve_pending_lines
from ordering.domain import ordering
from ordering.errors import ConflictError
from ordering.order.order import Order
from ordering.order.payment import ConfirmOrderPayment
from ordering.order.placement import MarkCartReconciled

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class ReconcilePendingCarts:
    limit = Integer(default=100, min_value=1)


@ordering.command(part_of="Order")
class RetryPaymentConfirmations:
    limit = Integer(default=100, min_value=1)


@ordering.command(part_of="Order")
class ResumeStockReservations:
    limit = Integer(default=100, min_value=1)


@ordering.command_handler(part_of=Order)
class OrderMaintenanceHandler:
    @handle(ReconcilePendingCarts)
    def reconcile_pending_carts(self, command):
        orders = current_domain.repository_for(Order).find_unreconciled_carts()[: command.limit or 100]
        if not orders:
            logger.info("No carts awaiting reconciliation")
            return 0

        reconciled = 0
        for order in orders:
            try:
                remove_items(order.customer_id, [line.item_id for line in order.lines], order_id=order.id)
                current_domain.process(MarkCartReconciled(order_id=str(order.id)), asynchronous=False)
                reconciled += 1
            except (ValidationError, InvalidOperationError) as exc:
                logger.warning("Cart reconciliation retry failed", order_id=str(order.id), error=str(exc))

        logger.info("Cart reconciliation sweep complete", reconciled=reconciled, pending=len(orders))
        return reconciled

    @handle(RetryPaymentConfirmations)
    def retry_payment_confirmations(self, command):
        orders = current_domain.repository_for(Order).find_unconfirmed_payments()[: command.limit or 100]

        results = {}
        for order in orders:
            results[str(order.id)] = current_domain.process(
                ConfirmOrderPayment(order_id=str(order.id)),
                asynchronous=False,
            )

        logger.info(
            "Payment confirmation sweep complete",
            checked=len(results),
            paid=sum(1 for s in results.values() if s == "paid"),
        )
        return results

    @handle(ResumeStockReservations)
    def resume_stock_reservations(self, command):
        orders = current_domain.repository_for(Order).find_pending_reservations()[: command.limit or 100]

        resumed = 0
        for order in orders:
            try:
                reserve_pending_lines(str(order.id))
                resumed += 1
            except ConflictError as exc:
                logger.warning("Stock reservation retry failed", order_id=str(order.id), error=str(exc))

        logger.info("Stock reservation sweep complete", resumed=resumed, pending=len(orders))
        return resumed
