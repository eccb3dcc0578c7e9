"""Order status changes: commands and handler.

Every write goes through ``OrderRepository.update_status`` so that a caller
acting on a stale read (``expected_status``) gets a ConflictError instead of
silently overwriting another admin's decision.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import ConflictError
from ordering.order.order import Order
from ordering.principal import Principal, Role

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    expected_status = String(max_length=50)
    delivery_proof = String(max_length=1024)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=20)


@ordering.command(part_of="Order")
class RequestRefund:
    order_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=20)


def _actor(command) -> Principal:
    return Principal(user_id=command.actor_id, role=Role(command.actor_role))


@ordering.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        read_status = order.status
        if command.expected_status and command.expected_status != read_status:
            raise ConflictError(
                f"Order {order.id} is {read_status}, not {command.expected_status}",
                order_id=str(order.id),
                expected_status=command.expected_status,
                actual_status=read_status,
            )

        actor = _actor(command)
        order.transition_to(command.status, actor, delivery_proof=command.delivery_proof)
        repo.update_status(order, expected_status=read_status)

        logger.info(
            "Order status changed",
            order_id=str(order.id),
            from_status=read_status,
            to_status=order.status,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
        )
        return order

    @handle(RequestRefund)
    def request_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        read_status = order.status
        order.request_refund(_actor(command))
        repo.update_status(order, expected_status=read_status)

        logger.info("Refund requested", order_id=str(order.id), customer_id=str(order.customer_id))
        return order
