"""Pytest fixtures for testing"""

import asyncio
import pytest
import httpx
from decimal import Decimal
from typing import Dict, List, Optional

from cashier_workflow.domain.catalog import DEPOSIT_METHODS, WITHDRAWAL_METHODS
from cashier_workflow.domain.exceptions import LimitsUnavailableError
from cashier_workflow.domain.models import (
    AccountLimits,
    SubmissionRequest,
    TransactionKind,
    TransactionResult,
)
from cashier_workflow.domain.registry import PaymentMethodRegistry
from cashier_workflow.domain.workflow import TransactionWorkflow
from cashier_workflow.mock.server import CashierState, create_app


BASE_URL = "http://cashier.test"


class FakeLimitsClient:
    """Limits source returning a fixed snapshot or raising"""

    def __init__(self, limits: Optional[AccountLimits] = None, error: Optional[Exception] = None):
        self.limits = limits
        self.error = error
        self.calls: List[str] = []

    async def fetch_limits(self, user_id: str) -> AccountLimits:
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.limits


class FakeSubmissionClient:
    """
    Submission client that records every request.

    A token seen before returns the transaction created for it, so repeated
    submissions never create a second transaction. Queue exceptions in
    `failures` to fail upcoming calls; set `gate` to hold calls in flight.
    """

    def __init__(self):
        self.requests: List[SubmissionRequest] = []
        self.failures: List[Exception] = []
        self.gate: Optional[asyncio.Event] = None
        self.transactions: Dict[str, str] = {}

    @property
    def tokens(self) -> List[str]:
        return [r.idempotency_token for r in self.requests]

    async def submit(self, request: SubmissionRequest) -> TransactionResult:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)

        replayed = request.idempotency_token in self.transactions
        if not replayed:
            self.transactions[request.idempotency_token] = f"TX{len(self.transactions) + 1:04d}"
        return TransactionResult(
            transaction_id=self.transactions[request.idempotency_token],
            submitted_amount=request.amount,
            method_id=request.method_id,
            created_at=request.timestamp,
            replayed=replayed,
        )


@pytest.fixture
def account_limits() -> AccountLimits:
    """Limits roomy enough that only method bounds matter"""
    return AccountLimits(
        min_amount=Decimal("10"),
        max_amount=Decimal("500000"),
        daily_limit=Decimal("500000"),
        monthly_limit=Decimal("5000000"),
    )


@pytest.fixture
def bank_fields() -> Dict[str, str]:
    """Complete form for the bank_transfer deposit method"""
    return {
        "account_owner": "Ahmet Yilmaz",
        "bank_name": "Garanti BBVA",
        "iban": "TR330006100519786457841326",
    }


@pytest.fixture
def deposit_registry() -> PaymentMethodRegistry:
    return PaymentMethodRegistry(DEPOSIT_METHODS)


@pytest.fixture
def withdrawal_registry() -> PaymentMethodRegistry:
    return PaymentMethodRegistry(WITHDRAWAL_METHODS)


@pytest.fixture
def submitter() -> FakeSubmissionClient:
    return FakeSubmissionClient()


@pytest.fixture
def limits_client(account_limits: AccountLimits) -> FakeLimitsClient:
    return FakeLimitsClient(limits=account_limits)


@pytest.fixture
def failing_limits_client() -> FakeLimitsClient:
    return FakeLimitsClient(error=LimitsUnavailableError("Limits API error: 503"))


@pytest.fixture
def completed() -> List[TransactionResult]:
    """Collects results passed to on_completed"""
    return []


@pytest.fixture
def deposit_workflow(deposit_registry, limits_client, submitter, completed) -> TransactionWorkflow:
    return TransactionWorkflow(
        kind=TransactionKind.DEPOSIT,
        user_id="user_1",
        registry=deposit_registry,
        limits_client=limits_client,
        submission_client=submitter,
        on_completed=completed.append,
    )


@pytest.fixture
def withdrawal_workflow(withdrawal_registry, limits_client, submitter, completed) -> TransactionWorkflow:
    return TransactionWorkflow(
        kind=TransactionKind.WITHDRAWAL,
        user_id="user_1",
        registry=withdrawal_registry,
        limits_client=limits_client,
        submission_client=submitter,
        on_completed=completed.append,
    )


@pytest.fixture
def cashier_state() -> CashierState:
    """Mock backend state with one funded user"""
    return CashierState(balances={"user_1": Decimal("10000")})


@pytest.fixture
def client_options(cashier_state: CashierState) -> dict:
    """Options pointing the HTTP clients at the in-process mock cashier app"""
    app = create_app(cashier_state)
    return {"base_url": BASE_URL, "transport": httpx.ASGITransport(app=app)}
