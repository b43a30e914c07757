"""
Pydantic models for API requests.
These define the contract between the API and external clients.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from shop.domain import Shipment, ShipmentStatus


class CheckoutRequest(BaseModel):
    """Request model for turning the cart into an order.

    An empty ``cart_line_ids`` list means every line in the cart.
    """

    address_id: str = Field(min_length=1)
    cart_line_ids: List[str] = Field(default_factory=list)
    shipping_method: Optional[str] = Field(None, min_length=1, max_length=100)
    notes: Optional[str] = None


class CreatePaymentRequest(BaseModel):
    order_id: str = Field(min_length=1)


class AddCartItemRequest(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(1, ge=1)


class CreateShipmentRequest(BaseModel):
    """Request model for creating a shipment for an order."""

    order_id: str = Field(min_length=1)
    tracking_number: str = Field(min_length=1, max_length=100)
    carrier: str = Field(min_length=1, max_length=100)
    service_type: Optional[str] = None
    shipping_cost: Decimal = Field(Decimal("0"), ge=0)
    estimated_delivery: Optional[datetime] = None
    origin_address: Optional[str] = None
    destination_address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("tracking_number", "carrier")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()

    def to_domain_model(self, shipment_id: str) -> Shipment:
        return Shipment(shipment_id=shipment_id, **self.model_dump())


class UpdateShipmentStatusRequest(BaseModel):
    status: ShipmentStatus
    location: Optional[str] = None
