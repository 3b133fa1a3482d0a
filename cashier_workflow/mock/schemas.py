"""Pydantic schemas for the cashier API wire format"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cashier_workflow.domain.models import AccountLimits, PaymentMethod


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""

    model_config = ConfigDict(populate_by_name=True)


class CreateTransactionRequest(WireModel):
    """Request body for POST /api/{kind}/create"""

    amount: Decimal = Field(..., gt=0, description="Requested amount")
    method_id: str = Field(..., alias="methodId", min_length=1)
    account_reference: Optional[str] = Field(None, alias="accountReference")
    idempotency_token: str = Field(..., alias="idempotencyToken", min_length=8)
    user_id: str = Field(..., alias="userId", min_length=1)
    timestamp: datetime
    details: Dict[str, str] = Field(default_factory=dict)


class CreateTransactionResponse(WireModel):
    """Response for POST /api/{kind}/create"""

    success: bool
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    message: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    replayed: bool = False


class LimitsSchema(WireModel):
    min: Decimal
    max: Decimal
    daily: Decimal
    monthly: Decimal
    daily_used: Decimal = Field(..., alias="dailyUsed")
    monthly_used: Decimal = Field(..., alias="monthlyUsed")

    @classmethod
    def from_domain(cls, limits: AccountLimits) -> "LimitsSchema":
        return cls(
            min=limits.min_amount,
            max=limits.max_amount,
            daily=limits.daily_limit,
            monthly=limits.monthly_limit,
            daily_used=limits.daily_used,
            monthly_used=limits.monthly_used,
        )


class LimitsResponse(WireModel):
    """Response for GET /api/{kind}/limits"""

    success: bool = True
    limits: LimitsSchema


class MethodSchema(WireModel):
    id: str
    name: str
    category: str
    required_fields: List[str] = Field(..., alias="requiredFields")
    min_amount: Decimal = Field(..., alias="minAmount")
    max_amount: Decimal = Field(..., alias="maxAmount")
    processing_time: str = Field("", alias="processingTime")
    fees: str = ""
    is_active: bool = Field(True, alias="isActive")
    description: str = ""

    @classmethod
    def from_domain(cls, method: PaymentMethod) -> "MethodSchema":
        return cls(
            id=method.id,
            name=method.name,
            category=method.category.value,
            required_fields=list(method.required_fields),
            min_amount=method.min_amount,
            max_amount=method.max_amount,
            processing_time=method.processing_time,
            fees=method.fee_description,
            is_active=method.is_active,
            description=method.description,
        )


class MethodsResponse(WireModel):
    """Response for GET /api/{kind}/methods"""

    methods: List[MethodSchema]


class TransactionSchema(WireModel):
    transaction_id: str = Field(..., alias="transactionId")
    amount: Decimal
    status: str
    method_id: str = Field(..., alias="methodId")
    created_at: datetime = Field(..., alias="createdAt")


class StatusResponse(WireModel):
    """Response for GET /api/{kind}/status/{transaction_id}"""

    success: bool = True
    transaction: TransactionSchema


class HistoryResponse(WireModel):
    """Response for GET /api/{kind}/history"""

    success: bool = True
    transactions: List[TransactionSchema]
