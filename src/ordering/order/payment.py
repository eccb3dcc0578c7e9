"""Payment confirmation: re-checks an order's payment reference with the provider.

A provider that cannot be reached leaves the order untouched apart from
``payment_status = unknown``; the maintenance sweep retries later. An order is
never cancelled automatically because the provider disagrees.
"""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import ExternalDependencyError
from ordering.gateway import get_payment_gateway
from ordering.order.order import Order, PaymentStatus

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class ConfirmOrderPayment:
    order_id = Identifier(required=True)


@ordering.command_handler(part_of=Order)
class PaymentConfirmationHandler:
    @handle(ConfirmOrderPayment)
    def confirm_order_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if order.payment_status == PaymentStatus.PAID.value:
            return order.payment_status

        if not order.payment_reference:
            status = PaymentStatus.UNKNOWN.value
        else:
            try:
                status = get_payment_gateway().get_session_status(order.payment_reference)
            except ExternalDependencyError as exc:
                logger.warning(
                    "Payment provider unavailable, confirmation deferred",
                    order_id=str(order.id),
                    payment_reference=order.payment_reference,
                    error=str(exc),
                )
                status = PaymentStatus.UNKNOWN.value

        order.record_payment_status(status)
        repo.add(order)

        log = logger.warning if status == PaymentStatus.UNPAID.value else logger.info
        log(
            "Payment status recorded",
            order_id=str(order.id),
            payment_reference=order.payment_reference,
            payment_status=status,
            needs_review=order.needs_review,
        )
        return status
