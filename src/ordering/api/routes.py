"""FastAPI routes for the Ordering domain: checkout, orders, pricing and maintenance."""

import json

import structlog
from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, Request, Response, UploadFile
from protean.utils.globals import current_domain

from ordering.api.dependencies import get_principal, require_admin, require_operator
from ordering.api.schemas import (
    CalculatePriceRequest,
    CheckoutSessionResponse,
    ConfirmPaymentRequest,
    FinalizeOrderRequest,
    FinalizeOrderResponse,
    HeldCheckoutResponse,
    MaintenanceResponse,
    OpenCheckoutRequest,
    OrderResponse,
    PriceQuoteResponse,
    UpdateStatusRequest,
    WebhookResponse,
)
from ordering.checkout.finalization import finalize_checkout, finalize_pending_checkout
from ordering.checkout.session import OpenCheckout, PendingCheckout
from ordering.errors import Forbidden
from ordering.gateway import get_payment_gateway
from ordering.item.item import Item
from ordering.order.maintenance import ReconcilePendingCarts, ResumeStockReservations, RetryPaymentConfirmations
from ordering.order.order import Order, OrderStatus
from ordering.order.status import RequestRefund, UpdateOrderStatus
from ordering.principal import Principal
from ordering.storage import get_image_storage
from ordering.storage.port import ALLOWED_CONTENT_TYPES, MAX_UPLOAD_BYTES

logger = structlog.get_logger(__name__)

CHECKOUT_COMPLETED = "checkout_session.completed"


def _load_visible_order(order_id: str, principal: Principal) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    if not order.visible_to(principal):
        raise Forbidden("Order belongs to another customer", order_id=order_id)
    return order


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", response_model=FinalizeOrderResponse)
async def finalize_order(
    body: FinalizeOrderRequest,
    response: Response,
    principal: Principal = Depends(get_principal),
) -> FinalizeOrderResponse:
    """Finalize a paid checkout. Idempotent on ``transaction_hash``.

    Returns 201 when this call created the order and 200 when an earlier call
    already had.
    """
    result = finalize_checkout(
        principal,
        customer_id=principal.user_id,
        transaction_hash=body.transaction_hash,
        payload=body.order.to_payload(),
        payment_reference=body.payment_reference,
    )
    response.status_code = 201 if result.created else 200
    return FinalizeOrderResponse(created=result.created, order=OrderResponse.from_order(result.order))


@order_router.post("/confirm-payment", response_model=FinalizeOrderResponse)
async def confirm_payment(
    body: ConfirmPaymentRequest,
    response: Response,
    principal: Principal = Depends(get_principal),
) -> FinalizeOrderResponse:
    """Post-redirect confirmation from the storefront.

    Finalizes from the stored checkout session when the webhook has not done
    so yet; otherwise re-runs payment confirmation on the existing order.
    """
    result = finalize_pending_checkout(principal, body.transaction_hash, payment_reference=body.payment_reference)
    response.status_code = 201 if result.created else 200
    return FinalizeOrderResponse(created=result.created, order=OrderResponse.from_order(result.order))


@order_router.get("", response_model=list[OrderResponse])
async def list_orders(
    status: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    principal: Principal = Depends(require_admin),
) -> list[OrderResponse]:
    """All orders, newest first, optionally filtered by status (admin only)."""
    repo = current_domain.repository_for(Order)
    if status is not None:
        try:
            OrderStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown order status: {status}") from None
        orders = repo.find_by_status(status)[:limit]
    else:
        orders = repo.list_recent(limit)
    return [OrderResponse.from_order(order) for order in orders]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, principal: Principal = Depends(get_principal)) -> OrderResponse:
    return OrderResponse.from_order(_load_visible_order(order_id, principal))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    body: UpdateStatusRequest,
    principal: Principal = Depends(get_principal),
) -> OrderResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        expected_status=body.expected_status,
        delivery_proof=body.delivery_proof,
        actor_id=principal.user_id,
        actor_role=principal.role.value,
    )
    order = current_domain.process(command, asynchronous=False)
    return OrderResponse.from_order(order)


@order_router.put("/{order_id}/request-refund", response_model=OrderResponse)
async def request_refund(order_id: str, principal: Principal = Depends(get_principal)) -> OrderResponse:
    command = RequestRefund(
        order_id=order_id,
        actor_id=principal.user_id,
        actor_role=principal.role.value,
    )
    order = current_domain.process(command, asynchronous=False)
    return OrderResponse.from_order(order)


@order_router.post("/{order_id}/delivery-proof", response_model=OrderResponse)
async def upload_delivery_proof(
    order_id: str,
    file: UploadFile = File(...),
    expected_status: str | None = Form(default=None),
    principal: Principal = Depends(get_principal),
) -> OrderResponse:
    """Upload the delivery photo and mark the order Delivered in one step."""
    order = current_domain.repository_for(Order).get(order_id)
    # Reject before storing anything the transition would refuse
    order.assert_can_transition(OrderStatus.DELIVERED.value, principal)

    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported image type: {file.content_type}")
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Delivery proof image is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="Delivery proof image is too large")

    reference = get_image_storage().save(content, file.filename or "delivery-proof", file.content_type)
    logger.info("Delivery proof stored", order_id=order_id, reference=reference)

    command = UpdateOrderStatus(
        order_id=order_id,
        status=OrderStatus.DELIVERED.value,
        expected_status=expected_status,
        delivery_proof=reference,
        actor_id=principal.user_id,
        actor_role=principal.role.value,
    )
    try:
        order = current_domain.process(command, asynchronous=False)
    except Exception:
        logger.warning("Status change failed, discarding delivery proof", order_id=order_id, reference=reference)
        get_image_storage().delete(reference)
        raise
    return OrderResponse.from_order(order)


# ---------------------------------------------------------------------------
# User Router
# ---------------------------------------------------------------------------
user_router = APIRouter(prefix="/users", tags=["users"])


@user_router.get("/me/orders", response_model=list[OrderResponse])
async def my_orders(principal: Principal = Depends(get_principal)) -> list[OrderResponse]:
    orders = current_domain.repository_for(Order).find_for_customer(principal.user_id)
    return [OrderResponse.from_order(order) for order in orders]


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/sessions", status_code=201, response_model=CheckoutSessionResponse)
async def open_checkout_session(
    body: OpenCheckoutRequest,
    principal: Principal = Depends(get_principal),
) -> CheckoutSessionResponse:
    if not principal.is_customer:
        raise Forbidden("Only customers can open a checkout session")

    command = OpenCheckout(
        customer_id=principal.user_id,
        transaction_hash=body.transaction_hash,
        payload=json.dumps(body.order.to_payload()),
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )
    pending = current_domain.process(command, asynchronous=False)
    return CheckoutSessionResponse(
        transaction_hash=pending.transaction_hash,
        payment_reference=pending.payment_reference,
        redirect_url=pending.redirect_url,
        amount=pending.amount,
    )


@checkout_router.get("/sessions/needs-review", response_model=list[HeldCheckoutResponse])
async def held_checkout_sessions(principal: Principal = Depends(require_admin)) -> list[HeldCheckoutResponse]:
    """Paid sessions that produced no order and wait for manual reconciliation."""
    sessions = current_domain.repository_for(PendingCheckout).find_needing_review()
    return [HeldCheckoutResponse.from_session(pending) for pending in sessions]


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    paymongo_signature: str = Header(default=""),
) -> WebhookResponse:
    """Provider callback for completed hosted checkouts."""
    raw = (await request.body()).decode("utf-8")
    if not get_payment_gateway().verify_webhook_signature(raw, paymongo_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        event = json.loads(raw)["data"]["attributes"]
    except (ValueError, KeyError, TypeError):
        raise HTTPException(status_code=400, detail="Malformed webhook payload") from None

    if event.get("type") != CHECKOUT_COMPLETED:
        logger.info("Webhook event ignored", event_type=event.get("type"))
        return WebhookResponse(status="ignored")

    session = event.get("data") or {}
    metadata = (session.get("attributes") or {}).get("metadata") or {}
    transaction_hash = metadata.get("transaction_hash")
    if not transaction_hash:
        raise HTTPException(status_code=400, detail="Webhook payload has no transaction_hash")

    result = finalize_pending_checkout(Principal.system(), transaction_hash, payment_reference=session.get("id"))
    logger.info(
        "Checkout completion processed",
        transaction_hash=transaction_hash,
        order_id=str(result.order.id),
        created=result.created,
    )
    return WebhookResponse(status="processed", order_id=str(result.order.id))


# ---------------------------------------------------------------------------
# Item Router
# ---------------------------------------------------------------------------
item_router = APIRouter(prefix="/items", tags=["items"])


@item_router.post("/{item_id}/calculate-price", response_model=PriceQuoteResponse)
async def calculate_price(
    item_id: str,
    body: CalculatePriceRequest,
    principal: Principal = Depends(get_principal),
) -> PriceQuoteResponse:
    """Quote a custom build without persisting anything."""
    item = current_domain.repository_for(Item).get(item_id)
    quote = item.quote(
        length=body.length,
        width=body.width,
        height=body.height,
        frame_material=body.frame_material,
        tabletop_material=body.tabletop_material,
        labor_days=body.labor_days,
    )
    return PriceQuoteResponse(**quote.to_dict())


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/reconcile-carts", response_model=MaintenanceResponse)
async def reconcile_carts(
    limit: int = Query(default=100, ge=1, le=1000),
    principal: Principal = Depends(require_operator),
) -> MaintenanceResponse:
    reconciled = current_domain.process(ReconcilePendingCarts(limit=limit), asynchronous=False)
    return MaintenanceResponse(processed=reconciled)


@maintenance_router.post("/confirm-payments", response_model=MaintenanceResponse)
async def confirm_payments(
    limit: int = Query(default=100, ge=1, le=1000),
    principal: Principal = Depends(require_operator),
) -> MaintenanceResponse:
    results = current_domain.process(RetryPaymentConfirmations(limit=limit), asynchronous=False)
    return MaintenanceResponse(processed=len(results))


@maintenance_router.post("/resume-reservations", response_model=MaintenanceResponse)
async def resume_reservations(
    limit: int = Query(default=100, ge=1, le=1000),
    principal: Principal = Depends(require_operator),
) -> MaintenanceResponse:
    resumed = current_domain.process(ResumeStockReservations(limit=limit), asynchronous=False)
    return MaintenanceResponse(processed=resumed)
