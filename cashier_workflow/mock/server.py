"""
In-memory cashier backend for local development and integration tests.

Implements the limits, method catalog, create, status and history
endpoints the workflow clients talk to. Creates are idempotent per token
and re-validated with the same validator the client uses.

Run locally:
    uvicorn cashier_workflow.mock.server:app --port 8003
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from cashier_workflow.config import settings
from cashier_workflow.domain.catalog import default_methods
from cashier_workflow.domain.exceptions import ValidationError
from cashier_workflow.domain.models import AccountLimits, PaymentMethod, TransactionKind
from cashier_workflow.domain.validation import validate
from cashier_workflow.infrastructure.observability.logging import setup_logging
from cashier_workflow.mock.schemas import (
    CreateTransactionRequest,
    CreateTransactionResponse,
    HistoryResponse,
    LimitsResponse,
    LimitsSchema,
    MethodSchema,
    MethodsResponse,
    StatusResponse,
    TransactionSchema,
)
from cashier_workflow.utils.date_utils import start_of_day, start_of_month, utc_now

setup_logging(settings.log_level)

# Statuses that count against daily/monthly allowances
COUNTED_STATUSES = {"pending", "completed"}

DEFAULT_LIMITS: Dict[TransactionKind, AccountLimits] = {
    TransactionKind.WITHDRAWAL: AccountLimits(
        min_amount=Decimal("50"),
        max_amount=Decimal("50000"),
        daily_limit=Decimal("50000"),
        monthly_limit=Decimal("500000"),
    ),
    TransactionKind.DEPOSIT: AccountLimits(
        min_amount=Decimal("20"),
        max_amount=Decimal("200000"),
        daily_limit=Decimal("200000"),
        monthly_limit=Decimal("2000000"),
    ),
}


@dataclass
class StoredTransaction:
    transaction_id: str
    kind: TransactionKind
    user_id: str
    method_id: str
    amount: Decimal
    account_reference: Optional[str]
    idempotency_token: str
    created_at: datetime
    status: str = "pending"

    def same_request(self, body: CreateTransactionRequest) -> bool:
        return (
            self.user_id == body.user_id
            and self.method_id == body.method_id
            and self.amount == body.amount
            and self.account_reference == body.account_reference
        )

    def to_schema(self) -> TransactionSchema:
        return TransactionSchema(
            transaction_id=self.transaction_id,
            amount=self.amount,
            status=self.status,
            method_id=self.method_id,
            created_at=self.created_at,
        )


@dataclass
class CashierState:
    """Mutable backend state; tests reach in to arrange and inspect it"""

    methods: Dict[TransactionKind, List[PaymentMethod]] = field(
        default_factory=lambda: {kind: default_methods(kind) for kind in TransactionKind}
    )
    limits: Dict[TransactionKind, AccountLimits] = field(default_factory=lambda: dict(DEFAULT_LIMITS))
    balances: Dict[str, Decimal] = field(default_factory=dict)
    transactions: List[StoredTransaction] = field(default_factory=list)
    api_token: Optional[str] = None
    # Status codes returned by upcoming create calls before normal handling
    fail_next: List[int] = field(default_factory=list)
    create_calls: int = 0

    def used_since(self, kind: TransactionKind, user_id: str, since: datetime) -> Decimal:
        return sum(
            (
                t.amount
                for t in self.transactions
                if t.kind == kind and t.user_id == user_id and t.created_at >= since and t.status in COUNTED_STATUSES
            ),
            Decimal("0"),
        )

    def limits_for(self, kind: TransactionKind, user_id: str) -> AccountLimits:
        base = self.limits[kind]
        now = utc_now()
        return AccountLimits(
            min_amount=base.min_amount,
            max_amount=base.max_amount,
            daily_limit=base.daily_limit,
            monthly_limit=base.monthly_limit,
            daily_used=self.used_since(kind, user_id, start_of_day(now)),
            monthly_used=self.used_since(kind, user_id, start_of_month(now)),
        )

    def find_by_token(self, token: str) -> Optional[StoredTransaction]:
        return next((t for t in self.transactions if t.idempotency_token == token), None)

    def find(self, kind: TransactionKind, transaction_id: str) -> Optional[StoredTransaction]:
        return next((t for t in self.transactions if t.kind == kind and t.transaction_id == transaction_id), None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request for distributed tracing"""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def _failure(
    status_code: int,
    message: str,
    transaction_id: Optional[str] = None,
    amount: Optional[Decimal] = None,
) -> JSONResponse:
    body = CreateTransactionResponse(success=False, message=message, transaction_id=transaction_id, amount=amount)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, mode="json"))


def build_router(state: CashierState) -> APIRouter:
    router = APIRouter(prefix="/api/{kind}")

    def check_auth(request: Request) -> None:
        if state.api_token and request.headers.get("Authorization") != f"Bearer {state.api_token}":
            raise HTTPException(status_code=401, detail="Authentication required")

    @router.get("/methods", response_model=MethodsResponse)
    def list_methods(kind: TransactionKind):
        return MethodsResponse(methods=[MethodSchema.from_domain(m) for m in state.methods[kind]])

    @router.get("/limits", response_model=LimitsResponse)
    def get_limits(kind: TransactionKind, request: Request, user_id: str = Query(..., min_length=1)):
        check_auth(request)
        return LimitsResponse(limits=LimitsSchema.from_domain(state.limits_for(kind, user_id)))

    @router.post("/create", response_model=CreateTransactionResponse)
    def create_transaction(kind: TransactionKind, body: CreateTransactionRequest, request: Request):
        """
        Create a pending transaction.

        Flow:
        1. Authenticate and apply any simulated outage
        2. Replay or reject a reused idempotency token
        3. Re-validate against method bounds, limits and balance
        4. Store the transaction and reserve withdrawal funds
        """
        state.create_calls += 1
        check_auth(request)
        request_id = getattr(request.state, "request_id", "unknown")

        if state.fail_next:
            return _failure(state.fail_next.pop(0), "Simulated payment service failure")

        existing = state.find_by_token(body.idempotency_token)
        if existing is not None:
            if existing.same_request(body):
                return CreateTransactionResponse(
                    success=True,
                    transaction_id=existing.transaction_id,
                    amount=existing.amount,
                    status=existing.status,
                    created_at=existing.created_at,
                    replayed=True,
                )
            return _failure(409, "Duplicate reference", existing.transaction_id, existing.amount)

        method = next((m for m in state.methods[kind] if m.id == body.method_id and m.is_active), None)
        if method is None:
            return _failure(400, f"Unsupported payment method: {body.method_id}")

        balance = state.balances.get(body.user_id, Decimal("0"))
        try:
            validate(
                method,
                str(body.amount),
                body.details,
                state.limits_for(kind, body.user_id),
                kind=kind,
                balance=balance,
            ).ensure_valid()
        except ValidationError as e:
            logging.warning(f"Rejected {kind.value}: {e.message}", extra={"request_id": request_id})
            return _failure(422, e.message)

        prefix = "DP" if kind == TransactionKind.DEPOSIT else "WD"
        stored = StoredTransaction(
            transaction_id=f"{prefix}-{uuid.uuid4().hex[:12].upper()}",
            kind=kind,
            user_id=body.user_id,
            method_id=method.id,
            amount=body.amount,
            account_reference=body.account_reference,
            idempotency_token=body.idempotency_token,
            created_at=utc_now(),
        )
        state.transactions.append(stored)
        if kind == TransactionKind.WITHDRAWAL:
            state.balances[body.user_id] = balance - body.amount

        logging.info(
            "Transaction created",
            extra={"request_id": request_id, "transaction_id": stored.transaction_id, "kind": kind.value},
        )
        return CreateTransactionResponse(
            success=True,
            transaction_id=stored.transaction_id,
            amount=stored.amount,
            status=stored.status,
            created_at=stored.created_at,
        )

    @router.get("/status/{transaction_id}", response_model=StatusResponse)
    def get_status(kind: TransactionKind, transaction_id: str, request: Request):
        check_auth(request)
        stored = state.find(kind, transaction_id)
        if stored is None:
            raise HTTPException(status_code=404, detail="Transaction not found")
        return StatusResponse(transaction=stored.to_schema())

    @router.get("/history", response_model=HistoryResponse)
    def get_history(
        kind: TransactionKind,
        request: Request,
        user_id: str = Query(..., min_length=1),
        limit: int = Query(10, ge=1, le=100),
    ):
        check_auth(request)
        rows = [t for t in state.transactions if t.kind == kind and t.user_id == user_id]
        rows.sort(key=lambda t: t.created_at, reverse=True)
        return HistoryResponse(transactions=[t.to_schema() for t in rows[:limit]])

    return router


def create_app(state: Optional[CashierState] = None, balances: Optional[Dict[str, Decimal]] = None) -> FastAPI:
    """Create the mock cashier application; the state is exposed as app.state.cashier"""
    state = state or CashierState()
    if balances:
        state.balances.update(balances)

    app = FastAPI(
        title="Mock Cashier API",
        description="Deposit and withdrawal endpoints for workflow development",
        version="0.1.0",
    )
    app.add_middleware(RequestIDMiddleware)
    app.state.cashier = state

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(build_router(state))
    return app


app = create_app()
