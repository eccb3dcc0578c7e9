"""Checkout finalization: turns a paid checkout into exactly one order.

The provider webhook and the customer's own confirmation call may both arrive
for the same checkout, in any order and any number of times. Every caller goes
through :func:`finalize_checkout`, which is idempotent on the transaction
hash:

1. An order already stored for the hash is returned. If an earlier call was
   interrupted before every line was reserved, steps 4 to 6 are resumed.
2. Otherwise the pending order is validated; nothing is written on failure.
3. The order is created in On Process. Losing a creation race to another
   caller returns the winner's order.
4. Stock is reserved line by line. A shortfall discovered here does not undo
   the order; the line is flagged for review and InvariantViolation is raised
   once the remaining steps have run. A line that cannot be reserved within
   the retry budget flags the order and raises ConflictError; a replay or the
   maintenance sweep picks it up again.
5. The buyer's cart is reconciled. Failure is logged and retried later.
6. The payment reference is confirmed with the provider. An unsettled payment
   flags the order for review and an unreachable provider records ``unknown``.

A paid session whose stored order no longer validates is recorded on its
PendingCheckout for manual reconciliation before the error is raised.
"""

import json
from dataclasses import dataclass

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from ordering.cart.reconciliation import remove_items
from ordering.checkout.session import FINALIZATION_REJECTED, PendingCheckout
from ordering.checkout.validation import check_transaction_hash, validate_pending_order
from ordering.errors import ConflictError, Forbidden, InvariantViolation
from ordering.order.order import Order, PaymentStatus, ReviewCode, StockStatus
from ordering.order.payment import ConfirmOrderPayment
from ordering.order.placement import FlagOrderForReview, MarkCartReconciled, PlaceOrder, ReserveOrderLine
from ordering.principal import Principal, Role

logger = structlog.get_logger(__name__)

MAX_RESERVE_ATTEMPTS = 3


@dataclass
class FinalizationResult:
    order: Order
    created: bool


def _authorize(principal: Principal, customer_id) -> None:
    if principal.role == Role.SYSTEM:
        return
    if principal.role != Role.CUSTOMER or str(principal.user_id) != str(customer_id):
        raise Forbidden("Orders can only be finalized by the customer who checked out", customer_id=str(customer_id))


def _existing_order(transaction_hash, customer_id) -> Order | None:
    order = current_domain.repository_for(Order).get_by_transaction_hash(transaction_hash)
    if order is not None and str(order.customer_id) != str(customer_id):
        raise Forbidden(
            "Transaction belongs to another customer's order",
            transaction_hash=transaction_hash,
        )
    return order


def _reserve_line(order_id, line_id) -> str:
    for attempt in range(1, MAX_RESERVE_ATTEMPTS + 1):
        try:
            return current_domain.process(ReserveOrderLine(order_id=order_id, line_id=line_id), asynchronous=False)
        except (ExpectedVersionError, ConflictError) as exc:
            logger.info("Retrying stock reservation", order_id=order_id, line_id=line_id, attempt=attempt, error=str(exc))

    detail = f"Stock for line {line_id} could not be reserved after {MAX_RESERVE_ATTEMPTS} attempts"
    logger.error("Stock reservation abandoned", order_id=order_id, line_id=line_id, attempts=MAX_RESERVE_ATTEMPTS)
    current_domain.process(
        FlagOrderForReview(
            order_id=order_id,
            code=ReviewCode.RESERVATION_INCOMPLETE.value,
            detail=detail,
            line_id=line_id,
        ),
        asynchronous=False,
    )
    raise ConflictError(detail, order_id=order_id, line_id=line_id, needs_review=True)


def reserve_pending_lines(order_id) -> list[dict]:
    """Reserve every line of the order still awaiting stock; returns the lines that came up short."""
    order = current_domain.repository_for(Order).get(order_id)

    shortfalls = []
    for line in order.pending_lines:
        if _reserve_line(str(order.id), str(line.id)) == StockStatus.SHORTFALL.value:
            shortfalls.append({"line_id": str(line.id), "item_id": str(line.item_id), "quantity": line.quantity})
    return shortfalls


def _reconcile_cart(order: Order) -> bool:
    try:
        remove_items(order.customer_id, [line.item_id for line in order.lines], order_id=order.id)
        current_domain.process(MarkCartReconciled(order_id=str(order.id)), asynchronous=False)
    except Exception:
        logger.exception(
            "Cart reconciliation failed, will retry",
            order_id=str(order.id),
            customer_id=str(order.customer_id),
        )
        return False
    return True


def _complete(order_id) -> Order:
    """Run steps 4 to 6 for a stored order. Steps already done are skipped."""
    repo = current_domain.repository_for(Order)
    shortfalls = reserve_pending_lines(order_id)

    order = repo.get(order_id)
    if not order.cart_reconciled:
        _reconcile_cart(order)
    if order.payment_status != PaymentStatus.PAID.value:
        current_domain.process(ConfirmOrderPayment(order_id=order_id), asynchronous=False)

    order = repo.get(order_id)
    if shortfalls:
        raise InvariantViolation(
            f"Order {order_id} was created but stock ran out for {len(shortfalls)} line(s)",
            order_id=order_id,
            transaction_hash=order.transaction_hash,
            payment_reference=order.payment_reference,
            lines=shortfalls,
            needs_review=True,
        )
    return order


def finalize_checkout(
    principal: Principal,
    customer_id,
    transaction_hash,
    payload: dict,
    payment_reference,
) -> FinalizationResult:
    """Finalize one checkout attempt; safe to call any number of times."""
    _authorize(principal, customer_id)

    existing = _existing_order(transaction_hash, customer_id)
    if existing is not None:
        if existing.pending_lines:
            logger.warning(
                "Resuming interrupted finalization",
                order_id=str(existing.id),
                transaction_hash=transaction_hash,
                pending_lines=len(existing.pending_lines),
            )
            return FinalizationResult(order=_complete(str(existing.id)), created=False)

        logger.info("Checkout already finalized", order_id=str(existing.id), transaction_hash=transaction_hash)
        return FinalizationResult(order=existing, created=False)

    check_transaction_hash(transaction_hash, customer_id)
    if not payment_reference:
        raise ValidationError({"payment_reference": ["Payment reference is required"]})

    checkout = validate_pending_order(payload)

    try:
        order_id = current_domain.process(
            PlaceOrder(
                customer_id=str(customer_id),
                transaction_hash=transaction_hash,
                lines=json.dumps(checkout.lines),
                delivery_option=checkout.delivery_option,
                shipping_fee=checkout.shipping_fee,
                scheduled_date=checkout.scheduled_date,
                payment_reference=payment_reference,
                actor_id=principal.user_id,
                actor_role=principal.role.value,
            ),
            asynchronous=False,
        )
    except ConflictError:
        winner = _existing_order(transaction_hash, customer_id)
        if winner is None:
            raise
        logger.info("Lost finalization race, returning committed order", order_id=str(winner.id))
        return FinalizationResult(order=winner, created=False)

    order = _complete(order_id)
    logger.info(
        "Checkout finalized",
        order_id=order_id,
        transaction_hash=transaction_hash,
        payment_status=order.payment_status,
        cart_reconciled=order.cart_reconciled,
    )
    return FinalizationResult(order=order, created=True)


def _hold_for_reconciliation(pending: PendingCheckout, exc: ValidationError) -> None:
    pending.flag_for_review(FINALIZATION_REJECTED, json.dumps(exc.messages, default=str, sort_keys=True))
    current_domain.repository_for(PendingCheckout).add(pending)
    logger.error(
        "Paid checkout could not be finalized",
        transaction_hash=pending.transaction_hash,
        payment_reference=pending.payment_reference,
        customer_id=str(pending.customer_id),
        errors=exc.messages,
    )


def finalize_pending_checkout(principal: Principal, transaction_hash, payment_reference=None) -> FinalizationResult:
    """Finalize from the stored checkout session, or re-confirm payment of an existing order."""
    pending = current_domain.repository_for(PendingCheckout).get_by_transaction_hash(transaction_hash)
    customer_id = pending.customer_id if pending is not None else principal.user_id

    _authorize(principal, customer_id)
    existing = _existing_order(transaction_hash, customer_id)
    if existing is not None and not existing.pending_lines:
        current_domain.process(ConfirmOrderPayment(order_id=str(existing.id)), asynchronous=False)
        return FinalizationResult(order=current_domain.repository_for(Order).get(existing.id), created=False)

    if pending is None:
        if existing is not None:
            return FinalizationResult(order=_complete(str(existing.id)), created=False)
        raise ObjectNotFoundError(f"No checkout session for transaction {transaction_hash}")

    if payment_reference and pending.payment_reference and payment_reference != pending.payment_reference:
        raise ValidationError({"payment_reference": ["Payment reference does not match the checkout session"]})

    try:
        return finalize_checkout(
            principal,
            customer_id=pending.customer_id,
            transaction_hash=transaction_hash,
            payload=pending.pending_order,
            payment_reference=pending.payment_reference or payment_reference,
        )
    except ValidationError as exc:
        if not pending.payment_reference:
            raise
        _hold_for_reconciliation(pending, exc)
        raise
