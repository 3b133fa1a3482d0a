"""Unit tests for the transaction workflow state machine"""

import asyncio
import pytest
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

from cashier_workflow.domain.catalog import WITHDRAWAL_METHODS
from cashier_workflow.domain.exceptions import (
    CatalogError,
    InvalidTransitionError,
    NotFoundError,
    SubmissionError,
    SubmissionErrorKind,
)
from cashier_workflow.domain.models import AccountLimits, TransactionKind, TransactionResult, WorkflowStep
from cashier_workflow.domain.registry import PaymentMethodRegistry
from cashier_workflow.domain.validation import ValidationReason
from cashier_workflow.domain.workflow import ALLOWED_TRANSITIONS, TransactionWorkflow, new_idempotency_token
from tests.conftest import FakeLimitsClient, FakeSubmissionClient

NOW = datetime(2026, 5, 2, 9, 15, tzinfo=timezone.utc)


async def confirming(workflow: TransactionWorkflow, fields, amount: str = "500") -> TransactionWorkflow:
    """Drive a bank_transfer deposit to CONFIRMING"""
    await workflow.open()
    workflow.select_method("bank_transfer")
    result = workflow.submit_form(amount, fields)
    assert result.valid, result.message
    return workflow


class GatedSource:
    """Source whose call blocks until released, recording when it started"""

    def __init__(self, value):
        self.value = value
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def list_methods(self):
        self.started.set()
        await self.release.wait()
        return self.value

    async def fetch_limits(self, user_id):
        self.started.set()
        await self.release.wait()
        return self.value


class FailingRegistry:
    async def list_methods(self):
        raise CatalogError("Methods API unreachable")


async def test_open_loads_catalog_and_limits_concurrently(deposit_registry, account_limits, submitter):
    """Both fetches are in flight before either completes"""
    methods = GatedSource(await deposit_registry.list_methods())
    limits = GatedSource(account_limits)
    workflow = TransactionWorkflow(TransactionKind.DEPOSIT, "user_1", methods, limits, submitter)

    task = asyncio.create_task(workflow.open())
    await asyncio.wait_for(methods.started.wait(), timeout=1)
    await asyncio.wait_for(limits.started.wait(), timeout=1)
    assert workflow.ready is False

    methods.release.set()
    limits.release.set()
    await asyncio.wait_for(task, timeout=1)

    assert workflow.ready is True
    assert workflow.limits_verified is True
    assert [m.id for m in workflow.methods] == ["bank_transfer", "papara", "crypto", "other"]


async def test_open_twice_raises(deposit_workflow):
    await deposit_workflow.open()

    with pytest.raises(InvalidTransitionError):
        await deposit_workflow.open()


async def test_limits_failure_degrades_to_method_bounds(deposit_registry, failing_limits_client, submitter, bank_fields):
    workflow = TransactionWorkflow(TransactionKind.DEPOSIT, "user_1", deposit_registry, failing_limits_client, submitter)
    await workflow.open()

    assert workflow.ready is True
    assert workflow.limits is None
    assert workflow.limits_verified is False

    workflow.select_method("bank_transfer")
    result = workflow.submit_form("90000", bank_fields)

    assert result.valid is True
    assert result.limits_verified is False
    assert workflow.step == WorkflowStep.CONFIRMING


async def test_catalog_failure_leaves_empty_method_list(limits_client, submitter):
    workflow = TransactionWorkflow(TransactionKind.DEPOSIT, "user_1", FailingRegistry(), limits_client, submitter)
    await workflow.open()

    assert workflow.methods == []
    assert workflow.catalog_error
    assert workflow.limits is not None
    with pytest.raises(NotFoundError):
        workflow.select_method("bank_transfer")


async def test_select_method_before_open_raises(deposit_workflow):
    with pytest.raises(InvalidTransitionError, match="loading"):
        deposit_workflow.select_method("bank_transfer")
    assert deposit_workflow.step == WorkflowStep.SELECTING_METHOD


async def test_select_unknown_method_raises(deposit_workflow):
    await deposit_workflow.open()

    with pytest.raises(NotFoundError):
        deposit_workflow.select_method("havale")
    assert deposit_workflow.step == WorkflowStep.SELECTING_METHOD


async def test_inactive_method_cannot_be_selected(limits_client, submitter):
    papara, pep = WITHDRAWAL_METHODS[1], WITHDRAWAL_METHODS[3]
    registry = PaymentMethodRegistry([papara, replace(pep, is_active=False)])
    workflow = TransactionWorkflow(TransactionKind.WITHDRAWAL, "user_1", registry, limits_client, submitter)
    await workflow.open()

    with pytest.raises(NotFoundError):
        workflow.select_method("pep")


async def test_changing_method_clears_stale_fields(deposit_workflow, bank_fields):
    await deposit_workflow.open()
    deposit_workflow.select_method("bank_transfer")
    deposit_workflow.submit_form("10", bank_fields)

    deposit_workflow.change_method()
    assert deposit_workflow.step == WorkflowStep.SELECTING_METHOD
    assert deposit_workflow.draft.selected_method is None

    deposit_workflow.select_method("papara")
    assert deposit_workflow.draft.fields == {}
    assert deposit_workflow.draft.amount == ""
    assert deposit_workflow.draft.selected_method.id == "papara"


async def test_invalid_form_keeps_step_and_values(deposit_workflow, bank_fields):
    await deposit_workflow.open()
    deposit_workflow.select_method("bank_transfer")

    result = deposit_workflow.submit_form("30", bank_fields)

    assert result.reason == ValidationReason.BELOW_METHOD_MINIMUM
    assert deposit_workflow.step == WorkflowStep.COLLECTING_FIELDS
    assert deposit_workflow.error == result.message
    assert deposit_workflow.draft.amount == "30"
    assert deposit_workflow.draft.fields == bank_fields


async def test_valid_form_moves_to_confirming_and_clears_error(deposit_workflow, bank_fields):
    await deposit_workflow.open()
    deposit_workflow.select_method("bank_transfer")
    deposit_workflow.submit_form("30", bank_fields)

    result = deposit_workflow.submit_form("500", bank_fields)

    assert result.valid is True
    assert deposit_workflow.error is None
    assert deposit_workflow.can_confirm is True


async def test_withdrawal_form_checks_balance(withdrawal_workflow):
    await withdrawal_workflow.open()
    withdrawal_workflow.select_method("papara")

    result = withdrawal_workflow.submit_form("300", {"papara_id": "1234567890"}, balance=Decimal("200"))

    assert result.reason == ValidationReason.INSUFFICIENT_BALANCE
    assert withdrawal_workflow.step == WorkflowStep.COLLECTING_FIELDS


async def test_back_preserves_entered_values(deposit_workflow, bank_fields):
    await confirming(deposit_workflow, bank_fields)

    deposit_workflow.back()

    assert deposit_workflow.step == WorkflowStep.COLLECTING_FIELDS
    assert deposit_workflow.draft.amount == "500"
    assert deposit_workflow.draft.fields == bank_fields


async def test_round_trip_correction_submits_corrected_values(deposit_workflow, submitter, bank_fields):
    """CONFIRMING -> COLLECTING_FIELDS -> CONFIRMING sends the corrected amount"""
    await confirming(deposit_workflow, bank_fields)
    deposit_workflow.back()
    deposit_workflow.submit_form("750", bank_fields)

    await deposit_workflow.confirm()

    assert deposit_workflow.step == WorkflowStep.SUCCEEDED
    assert submitter.requests[0].amount == Decimal("750")


async def test_confirm_succeeds_and_close_notifies_once(deposit_workflow, submitter, completed, bank_fields):
    await confirming(deposit_workflow, bank_fields)

    await deposit_workflow.confirm()

    assert deposit_workflow.step == WorkflowStep.SUCCEEDED
    assert deposit_workflow.result.transaction_id == "TX0001"
    assert deposit_workflow.inputs_locked is True
    assert completed == []

    assert deposit_workflow.close() is True
    assert deposit_workflow.step == WorkflowStep.CLOSED
    assert deposit_workflow.draft is None
    assert completed == [deposit_workflow.result]

    assert deposit_workflow.close() is True
    assert len(completed) == 1


async def test_duplicate_confirm_while_submitting_sends_one_request(deposit_workflow, submitter, bank_fields):
    await confirming(deposit_workflow, bank_fields)
    submitter.gate = asyncio.Event()

    first = asyncio.create_task(deposit_workflow.confirm())
    await asyncio.sleep(0)
    assert deposit_workflow.step == WorkflowStep.SUBMITTING

    await deposit_workflow.confirm()
    await deposit_workflow.confirm()
    assert len(submitter.requests) == 1

    submitter.gate.set()
    await asyncio.wait_for(first, timeout=1)

    assert len(submitter.requests) == 1
    assert deposit_workflow.step == WorkflowStep.SUCCEEDED


async def test_events_while_submitting_are_rejected(deposit_workflow, submitter, completed, bank_fields):
    await confirming(deposit_workflow, bank_fields)
    submitter.gate = asyncio.Event()
    task = asyncio.create_task(deposit_workflow.confirm())
    await asyncio.sleep(0)

    assert deposit_workflow.inputs_locked is True
    assert deposit_workflow.can_close is False
    assert deposit_workflow.close() is False
    with pytest.raises(InvalidTransitionError):
        deposit_workflow.back()
    with pytest.raises(InvalidTransitionError):
        deposit_workflow.submit_form("600", bank_fields)
    with pytest.raises(InvalidTransitionError):
        deposit_workflow.retry()

    submitter.gate.set()
    await asyncio.wait_for(task, timeout=1)
    assert deposit_workflow.step == WorkflowStep.SUCCEEDED
    assert completed == []


async def test_cancelled_submission_fails_and_unlocks(deposit_workflow, submitter, completed, bank_fields):
    """A confirm task cancelled mid-flight leaves a retryable failure behind"""
    await confirming(deposit_workflow, bank_fields)
    submitter.gate = asyncio.Event()
    task = asyncio.create_task(deposit_workflow.confirm())
    await asyncio.sleep(0)
    assert deposit_workflow.step == WorkflowStep.SUBMITTING

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert deposit_workflow.step == WorkflowStep.FAILED
    assert deposit_workflow.failure_kind == SubmissionErrorKind.NETWORK_ERROR
    assert deposit_workflow.inputs_locked is False
    assert deposit_workflow.can_retry is True
    assert deposit_workflow.can_close is True
    assert deposit_workflow.close() is True
    assert completed == []


async def test_network_failure_then_retry_reuses_token(deposit_workflow, submitter, bank_fields):
    await confirming(deposit_workflow, bank_fields)
    submitter.failures.append(SubmissionError(SubmissionErrorKind.NETWORK_ERROR, "Payment service is unreachable"))

    await deposit_workflow.confirm()

    assert deposit_workflow.step == WorkflowStep.FAILED
    assert deposit_workflow.failure_kind == SubmissionErrorKind.NETWORK_ERROR
    assert deposit_workflow.error == "Payment service is unreachable"
    assert deposit_workflow.can_retry is True

    deposit_workflow.retry()
    assert deposit_workflow.step == WorkflowStep.COLLECTING_FIELDS
    assert deposit_workflow.draft.amount == "500"
    assert deposit_workflow.draft.fields == bank_fields

    deposit_workflow.submit_form("500", bank_fields)
    await deposit_workflow.confirm()

    assert deposit_workflow.step == WorkflowStep.SUCCEEDED
    assert len(set(submitter.tokens)) == 1
    assert len(submitter.tokens) == 2


async def test_rejected_submission_is_not_retryable(deposit_workflow, submitter, bank_fields):
    await confirming(deposit_workflow, bank_fields)
    submitter.failures.append(SubmissionError(SubmissionErrorKind.VALIDATION_REJECTED, "Daily limit reached"))

    await deposit_workflow.confirm()

    assert deposit_workflow.step == WorkflowStep.FAILED
    assert deposit_workflow.can_retry is False
    assert deposit_workflow.error == "Daily limit reached"


async def test_duplicate_reference_requires_start_over(deposit_workflow, submitter, bank_fields):
    await confirming(deposit_workflow, bank_fields)
    submitter.failures.append(SubmissionError(SubmissionErrorKind.DUPLICATE_REFERENCE, "Reference already used"))
    await deposit_workflow.confirm()

    assert deposit_workflow.can_retry is False
    with pytest.raises(InvalidTransitionError):
        deposit_workflow.retry()
    assert deposit_workflow.step == WorkflowStep.FAILED
    assert deposit_workflow.failure_kind == SubmissionErrorKind.DUPLICATE_REFERENCE

    deposit_workflow.start_over()
    assert deposit_workflow.step == WorkflowStep.SELECTING_METHOD
    assert deposit_workflow.draft.idempotency_token is None


async def test_spaced_iban_is_sent_compacted(deposit_workflow, submitter, bank_fields):
    bank_fields["iban"] = "tr33 0006 1005 1978 6457 8413 26"
    await confirming(deposit_workflow, bank_fields)

    assert deposit_workflow.confirmation_summary()["account"] == "TR330006100519786457841326"
    await deposit_workflow.confirm()

    request = submitter.requests[0]
    assert request.account_reference == "TR330006100519786457841326"
    assert request.details["iban"] == "TR330006100519786457841326"


async def test_start_over_uses_a_fresh_token(deposit_workflow, submitter, bank_fields):
    await confirming(deposit_workflow, bank_fields)
    submitter.failures.append(SubmissionError(SubmissionErrorKind.UNAUTHORIZED, "Please sign in again to continue"))
    await deposit_workflow.confirm()

    deposit_workflow.start_over()

    assert deposit_workflow.step == WorkflowStep.SELECTING_METHOD
    assert deposit_workflow.draft.selected_method is None
    assert deposit_workflow.draft.idempotency_token is None

    deposit_workflow.select_method("bank_transfer")
    deposit_workflow.submit_form("500", bank_fields)
    await deposit_workflow.confirm()

    assert deposit_workflow.step == WorkflowStep.SUCCEEDED
    assert len(set(submitter.tokens)) == 2


async def test_unexpected_submission_error_fails_workflow(deposit_workflow, submitter, bank_fields):
    await confirming(deposit_workflow, bank_fields)
    submitter.failures.append(RuntimeError("boom"))

    await deposit_workflow.confirm()

    assert deposit_workflow.step == WorkflowStep.FAILED
    assert deposit_workflow.error
    assert "boom" not in deposit_workflow.error


async def test_close_after_failure_does_not_notify(deposit_workflow, submitter, completed, bank_fields):
    await confirming(deposit_workflow, bank_fields)
    submitter.failures.append(SubmissionError(SubmissionErrorKind.NETWORK_ERROR, "Payment service error (503)"))
    await deposit_workflow.confirm()

    assert deposit_workflow.close() is True
    assert completed == []


@pytest.mark.parametrize("steps", [0, 1, 2])
async def test_close_before_submission_discards_draft(deposit_workflow, completed, bank_fields, steps):
    await deposit_workflow.open()
    if steps >= 1:
        deposit_workflow.select_method("bank_transfer")
    if steps >= 2:
        deposit_workflow.submit_form("500", bank_fields)

    assert deposit_workflow.close() is True
    assert deposit_workflow.draft is None
    assert completed == []
    with pytest.raises(InvalidTransitionError):
        deposit_workflow.select_method("bank_transfer")


async def test_confirm_outside_confirming_raises(deposit_workflow):
    await deposit_workflow.open()

    with pytest.raises(InvalidTransitionError):
        await deposit_workflow.confirm()


async def test_limits_are_enforced_when_known(deposit_registry, submitter, bank_fields):
    limits = FakeLimitsClient(
        AccountLimits(
            min_amount=Decimal("20"),
            max_amount=Decimal("200000"),
            daily_limit=Decimal("1000"),
            monthly_limit=Decimal("2000000"),
            daily_used=Decimal("800"),
        )
    )
    workflow = TransactionWorkflow(TransactionKind.DEPOSIT, "user_1", deposit_registry, limits, submitter)
    await workflow.open()
    workflow.select_method("bank_transfer")

    result = workflow.submit_form("500", bank_fields)

    assert result.reason == ValidationReason.DAILY_LIMIT_EXCEEDED
    assert limits.calls == ["user_1"]


async def test_workflows_do_not_share_drafts(deposit_registry, limits_client, bank_fields):
    submitter = FakeSubmissionClient()
    first = TransactionWorkflow(TransactionKind.DEPOSIT, "user_1", deposit_registry, limits_client, submitter)
    second = TransactionWorkflow(TransactionKind.DEPOSIT, "user_2", deposit_registry, limits_client, submitter)
    await first.open()
    await second.open()

    first.select_method("bank_transfer")
    first.submit_form("500", bank_fields)

    assert second.step == WorkflowStep.SELECTING_METHOD
    assert second.draft.fields == {}
    assert first.workflow_id != second.workflow_id


def test_transition_table_only_leaves_submitting_by_resolution():
    assert ALLOWED_TRANSITIONS[WorkflowStep.SUBMITTING] == {WorkflowStep.SUCCEEDED, WorkflowStep.FAILED}
    assert ALLOWED_TRANSITIONS[WorkflowStep.CLOSED] == set()


def test_idempotency_tokens_are_prefixed_and_unique():
    tokens = {new_idempotency_token(TransactionKind.WITHDRAWAL) for _ in range(50)}

    assert len(tokens) == 50
    assert all(t.startswith("WD") for t in tokens)
    assert new_idempotency_token(TransactionKind.DEPOSIT).startswith("DP")


async def test_confirmation_summary_formats_draft(deposit_registry, limits_client, submitter, bank_fields):
    workflow = TransactionWorkflow(
        TransactionKind.DEPOSIT, "user_1", deposit_registry, limits_client, submitter, currency="TRY"
    )
    await confirming(workflow, bank_fields, amount="12500.5")

    summary = workflow.confirmation_summary()

    assert summary["method"] == "Bank Transfer"
    assert summary["amount"] == "12,500.50 TRY"
    assert summary["account"] == bank_fields["iban"]


async def test_confirmation_summary_requires_confirmed_draft(deposit_workflow):
    await deposit_workflow.open()

    with pytest.raises(InvalidTransitionError):
        deposit_workflow.confirmation_summary()


async def test_submission_client_receives_canonical_request(deposit_registry, limits_client, bank_fields):
    submission_client = AsyncMock()
    submission_client.submit.return_value = TransactionResult(
        transaction_id="DP-1A2B3C4D5E6F",
        submitted_amount=Decimal("500"),
        method_id="bank_transfer",
        created_at=NOW,
    )
    workflow = TransactionWorkflow(
        TransactionKind.DEPOSIT,
        "user_1",
        deposit_registry,
        limits_client,
        submission_client,
        clock=lambda: NOW,
        token_factory=lambda kind: "DPfixedtoken",
    )
    await confirming(workflow, bank_fields)

    await workflow.confirm()

    submission_client.submit.assert_awaited_once()
    request = submission_client.submit.await_args.args[0]
    assert request.idempotency_token == "DPfixedtoken"
    assert request.account_reference == bank_fields["iban"]
    assert request.timestamp == NOW
    assert workflow.result.transaction_id == "DP-1A2B3C4D5E6F"
