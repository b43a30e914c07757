"""
Pydantic models for API responses.
These define the contract between the API and external clients.

Every response is wrapped in an envelope carrying a stable ``success`` flag.
Payloads are domain models wherever one exists; the models below cover the
shapes that are specific to the API.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from shop.domain import (
    Order,
    Payment,
    PaymentStatus,
    ReconciliationResult,
)

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: T


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    errors: Optional[List[FieldError]] = None
    error: Optional[str] = None


class PaymentSummary(BaseModel):
    payment_id: str
    status: PaymentStatus
    amount: Decimal
    payment_url: Optional[str] = None
    payment_date: Optional[datetime] = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentSummary":
        return cls(
            payment_id=payment.payment_id,
            status=payment.status,
            amount=payment.amount,
            payment_url=payment.payment_url,
            payment_date=payment.payment_date,
        )


class OrderDetail(BaseModel):
    order: Order
    payment: Optional[PaymentSummary] = None


class OrderData(BaseModel):
    order: Order


class PaymentData(BaseModel):
    payment: Payment


class PaymentInitiationData(BaseModel):
    payment: Payment
    token: str
    redirect_url: Optional[str] = None


class NotificationData(BaseModel):
    order_id: str
    payment_id: str
    outcome: str
    reason: Optional[str] = None
    payment_status: PaymentStatus
    order_status: str
    order_payment_status: str

    @classmethod
    def from_result(cls, result: ReconciliationResult) -> "NotificationData":
        return cls(
            order_id=result.order.order_id,
            payment_id=result.payment.payment_id,
            outcome=result.outcome,
            reason=result.reason,
            payment_status=result.payment.status,
            order_status=result.order.status.value,
            order_payment_status=result.order.payment_status.value,
        )


class PaymentSyncData(BaseModel):
    payment: Payment
    outcome: str
    reason: Optional[str] = None
    gateway_response: Dict[str, Any]


class HealthCheckResponse(BaseModel):
    """Response for health check endpoint."""

    status: str
    version: str
    timestamp: datetime
