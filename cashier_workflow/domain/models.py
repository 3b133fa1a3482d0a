"""Domain models - pure Python dataclasses representing cashier entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class TransactionKind(str, Enum):
    """Direction of money movement"""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class MethodCategory(str, Enum):
    BANK = "bank"
    E_WALLET = "e-wallet"
    CRYPTO = "crypto"
    OTHER = "other"


class WorkflowStep(str, Enum):
    """Steps of the transaction workflow state machine"""

    SELECTING_METHOD = "selecting_method"
    COLLECTING_FIELDS = "collecting_fields"
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass(frozen=True)
class PaymentMethod:
    """Catalog entry for one way of moving money"""

    id: str
    name: str
    category: MethodCategory
    required_fields: Tuple[str, ...]
    min_amount: Decimal
    max_amount: Decimal
    processing_time: str = ""
    fee_description: str = ""
    is_active: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Payment method id must not be empty")
        if self.min_amount <= 0 or self.max_amount <= 0:
            raise ValueError(f"{self.id}: amount bounds must be positive")
        if self.min_amount >= self.max_amount:
            raise ValueError(f"{self.id}: min_amount must be below max_amount")
        if len(set(self.required_fields)) != len(self.required_fields):
            raise ValueError(f"{self.id}: required_fields contains duplicates")


@dataclass(frozen=True)
class AccountLimits:
    """Per-user ceilings snapshot from the limits service"""

    min_amount: Decimal
    max_amount: Decimal
    daily_limit: Decimal
    monthly_limit: Decimal
    daily_used: Decimal = Decimal("0")
    monthly_used: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        for name in ("min_amount", "max_amount", "daily_limit", "monthly_limit", "daily_used", "monthly_used"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")

    @property
    def daily_remaining(self) -> Decimal:
        return max(self.daily_limit - self.daily_used, Decimal("0"))

    @property
    def monthly_remaining(self) -> Decimal:
        return max(self.monthly_limit - self.monthly_used, Decimal("0"))


@dataclass
class TransactionDraft:
    """In-progress transaction data owned by one open workflow"""

    kind: TransactionKind
    step: WorkflowStep = WorkflowStep.SELECTING_METHOD
    selected_method: Optional[PaymentMethod] = None
    amount: str = ""
    fields: Dict[str, str] = field(default_factory=dict)
    idempotency_token: Optional[str] = None

    def reset_entry(self) -> None:
        """Drop values entered for a previously selected method"""
        self.amount = ""
        self.fields = {}
        self.idempotency_token = None


@dataclass(frozen=True)
class SubmissionRequest:
    """Canonical, method-agnostic request sent to the submission endpoint"""

    kind: TransactionKind
    amount: Decimal
    method_id: str
    account_reference: Optional[str]
    idempotency_token: str
    user_id: str
    timestamp: datetime
    details: Dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "methodId": self.method_id,
            "accountReference": self.account_reference,
            "idempotencyToken": self.idempotency_token,
            "userId": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of a successful submission"""

    transaction_id: str
    submitted_amount: Decimal
    method_id: str
    created_at: datetime
    replayed: bool = False


@dataclass(frozen=True)
class TransactionRecord:
    """Transaction as reported by the status and history endpoints"""

    transaction_id: str
    amount: Decimal
    status: str
    method_id: str
    created_at: datetime
