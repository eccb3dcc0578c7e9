"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CustomizationSchema(BaseModel):
    length: float
    width: float
    height: float
    frame_material: str
    tabletop_material: str
    labor_days: int | None = None


class PendingLineSchema(BaseModel):
    item_id: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    customization: CustomizationSchema | None = None


class PendingOrderSchema(BaseModel):
    """The order as the storefront held it before the payment redirect."""

    lines: list[PendingLineSchema]
    delivery_option: str = "shipping"
    shipping_fee: float = Field(default=0.0, ge=0)
    scheduled_date: date | None = None
    amount: float | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "lines": [
                        {
                            "item_id": "item-001",
                            "quantity": 1,
                            "unit_price": 10725.0,
                            "customization": {
                                "length": 5,
                                "width": 3,
                                "height": 4,
                                "frame_material": "Narra",
                                "tabletop_material": "Narra",
                                "labor_days": 7,
                            },
                        }
                    ],
                    "delivery_option": "shipping",
                    "shipping_fee": 150.0,
                    "amount": 10875.0,
                }
            ]
        }
    }

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class FinalizeOrderRequest(BaseModel):
    transaction_hash: str
    payment_reference: str
    order: PendingOrderSchema


class ConfirmPaymentRequest(BaseModel):
    transaction_hash: str
    payment_reference: str | None = None


class OpenCheckoutRequest(BaseModel):
    transaction_hash: str
    order: PendingOrderSchema
    success_url: str | None = None
    cancel_url: str | None = None


class UpdateStatusRequest(BaseModel):
    status: str
    expected_status: str | None = None
    delivery_proof: str | None = None


class CalculatePriceRequest(BaseModel):
    length: float
    width: float
    height: float
    frame_material: str
    tabletop_material: str
    labor_days: int | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderLineResponse(BaseModel):
    id: str
    item_id: str
    item_name: str | None = None
    quantity: int
    unit_price: float
    is_customizable: bool
    length: float | None = None
    width: float | None = None
    height: float | None = None
    frame_material: str | None = None
    tabletop_material: str | None = None
    labor_days: int | None = None
    stock_status: str


class StatusChangeResponse(BaseModel):
    from_status: str | None = None
    to_status: str
    actor_id: str
    actor_role: str
    changed_at: datetime


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    transaction_hash: str
    status: str
    amount: float
    delivery_option: str
    shipping_fee: float
    scheduled_date: date | None = None
    payment_reference: str | None = None
    payment_status: str
    delivery_proof: str | None = None
    delivered_at: datetime | None = None
    needs_review: bool
    review_notes: list[dict] = Field(default_factory=list)
    cart_reconciled: bool
    lines: list[OrderLineResponse]
    status_history: list[StatusChangeResponse]
    created_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            order_id=str(order.id),
            customer_id=str(order.customer_id),
            transaction_hash=order.transaction_hash,
            status=order.status,
            amount=order.amount,
            delivery_option=order.delivery_option,
            shipping_fee=order.shipping_fee or 0.0,
            scheduled_date=order.scheduled_date,
            payment_reference=order.payment_reference,
            payment_status=order.payment_status,
            delivery_proof=order.delivery_proof,
            delivered_at=order.delivered_at,
            needs_review=bool(order.needs_review),
            review_notes=order.notes,
            cart_reconciled=bool(order.cart_reconciled),
            lines=[OrderLineResponse(**line.to_dict()) for line in order.lines],
            status_history=[
                StatusChangeResponse(
                    from_status=change.from_status,
                    to_status=change.to_status,
                    actor_id=change.actor_id,
                    actor_role=change.actor_role,
                    changed_at=change.changed_at,
                )
                for change in sorted(order.status_history, key=lambda c: c.changed_at)
            ],
            created_at=order.created_at,
        )


class FinalizeOrderResponse(BaseModel):
    created: bool
    order: OrderResponse


class CheckoutSessionResponse(BaseModel):
    transaction_hash: str
    payment_reference: str | None = None
    redirect_url: str | None = None
    amount: float


class HeldCheckoutResponse(BaseModel):
    transaction_hash: str
    customer_id: str
    payment_reference: str | None = None
    amount: float
    review_notes: list[dict] = Field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_session(cls, pending) -> "HeldCheckoutResponse":
        return cls(
            transaction_hash=pending.transaction_hash,
            customer_id=str(pending.customer_id),
            payment_reference=pending.payment_reference,
            amount=pending.amount,
            review_notes=pending.notes,
            created_at=pending.created_at,
        )


class PriceQuoteResponse(BaseModel):
    length: float
    width: float
    height: float
    labor_days: int
    frame_material: str
    tabletop_material: str
    frame_planks: int
    tabletop_planks: int
    frame_material_cost: float
    tabletop_material_cost: float
    material_cost: float
    labor_cost: float
    overhead_cost: float
    base_cost: float
    profit: float
    final_selling_price: float


class WebhookResponse(BaseModel):
    status: str = "ignored"
    order_id: str | None = None


class MaintenanceResponse(BaseModel):
    processed: int
