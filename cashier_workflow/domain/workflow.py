"""Transaction workflow state machine shared by the deposit and withdrawal flows"""

import asyncio
import logging
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Set

from cashier_workflow.domain.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    SubmissionError,
    SubmissionErrorKind,
)
from cashier_workflow.domain.models import (
    AccountLimits,
    PaymentMethod,
    SubmissionRequest,
    TransactionDraft,
    TransactionKind,
    TransactionResult,
    WorkflowStep,
)
from cashier_workflow.domain.normalization import build_submission_request, normalize_account_reference
from cashier_workflow.domain.validation import ValidationResult, validate
from cashier_workflow.infrastructure.observability.logging import log_submission, log_transition
from cashier_workflow.infrastructure.observability.metrics import (
    catalog_fallback_counter,
    record_submission,
    validation_rejection_counter,
)
from cashier_workflow.utils.date_utils import utc_now
from cashier_workflow.utils.money import format_amount, parse_amount


class MethodSource(Protocol):
    async def list_methods(self) -> List[PaymentMethod]: ...


class LimitsSource(Protocol):
    async def fetch_limits(self, user_id: str) -> AccountLimits: ...


class Submitter(Protocol):
    async def submit(self, request: SubmissionRequest) -> TransactionResult: ...


ALLOWED_TRANSITIONS: Dict[WorkflowStep, Set[WorkflowStep]] = {
    WorkflowStep.SELECTING_METHOD: {WorkflowStep.COLLECTING_FIELDS, WorkflowStep.CLOSED},
    WorkflowStep.COLLECTING_FIELDS: {WorkflowStep.CONFIRMING, WorkflowStep.SELECTING_METHOD, WorkflowStep.CLOSED},
    WorkflowStep.CONFIRMING: {WorkflowStep.COLLECTING_FIELDS, WorkflowStep.SUBMITTING, WorkflowStep.CLOSED},
    # Only the pending call's resolution leaves SUBMITTING
    WorkflowStep.SUBMITTING: {WorkflowStep.SUCCEEDED, WorkflowStep.FAILED},
    WorkflowStep.SUCCEEDED: {WorkflowStep.CLOSED},
    WorkflowStep.FAILED: {WorkflowStep.COLLECTING_FIELDS, WorkflowStep.SELECTING_METHOD, WorkflowStep.CLOSED},
    WorkflowStep.CLOSED: set(),
}

UNEXPECTED_FAILURE_MESSAGE = "An unexpected error occurred. Please try again."
INTERRUPTED_MESSAGE = "The request was interrupted. Check your history before trying again."


def new_idempotency_token(kind: TransactionKind) -> str:
    """Client reference unique per draft, e.g. WD3f2a..."""
    prefix = "DP" if kind == TransactionKind.DEPOSIT else "WD"
    return f"{prefix}{uuid.uuid4().hex}"


class TransactionWorkflow:
    """
    One open deposit or withdrawal dialog.

    Steps:
        SELECTING_METHOD -> COLLECTING_FIELDS -> CONFIRMING -> SUBMITTING
        SUBMITTING -> SUCCEEDED | FAILED
        FAILED -> COLLECTING_FIELDS (retry) | SELECTING_METHOD (start over) | CLOSED
        SUCCEEDED -> CLOSED

    All events are synchronous except open() and confirm(). confirm() moves
    to SUBMITTING before its first await, so a second confirm() on the same
    event loop always observes SUBMITTING and does nothing.
    """

    def __init__(
        self,
        kind: TransactionKind,
        user_id: str,
        registry: MethodSource,
        limits_client: LimitsSource,
        submission_client: Submitter,
        on_completed: Optional[Callable[[TransactionResult], None]] = None,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[TransactionKind], str] = new_idempotency_token,
        currency: str = "",
    ):
        self.kind = kind
        self.user_id = user_id
        self.registry = registry
        self.limits_client = limits_client
        self.submission_client = submission_client
        self.on_completed = on_completed
        self._clock = clock
        self._token_factory = token_factory
        self.currency = currency

        self.workflow_id = uuid.uuid4().hex
        self.draft: Optional[TransactionDraft] = TransactionDraft(kind=kind)
        self.methods: List[PaymentMethod] = []
        self.limits: Optional[AccountLimits] = None
        self.ready = False
        self._opened = False

        self.result: Optional[TransactionResult] = None
        self.error: Optional[str] = None
        self.failure_kind: Optional[SubmissionErrorKind] = None
        self.catalog_error: Optional[str] = None
        self.last_validation: Optional[ValidationResult] = None

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------
    @property
    def step(self) -> WorkflowStep:
        if self.draft is None:
            return WorkflowStep.CLOSED
        return self.draft.step

    @property
    def limits_verified(self) -> bool:
        """False when validation can only use method-level bounds"""
        return self.limits is not None

    @property
    def inputs_locked(self) -> bool:
        """Amount/field inputs and back/confirm buttons must be disabled"""
        return self.step in (WorkflowStep.SUBMITTING, WorkflowStep.SUCCEEDED, WorkflowStep.CLOSED)

    @property
    def can_confirm(self) -> bool:
        return self.step == WorkflowStep.CONFIRMING

    @property
    def can_close(self) -> bool:
        return self.step != WorkflowStep.SUBMITTING

    @property
    def can_retry(self) -> bool:
        return self.step == WorkflowStep.FAILED and self.failure_kind == SubmissionErrorKind.NETWORK_ERROR

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    async def open(self) -> None:
        """
        Load the method catalog and account limits concurrently.

        Neither failure blocks the workflow: missing limits fall back to
        method-level bounds, a missing catalog leaves an empty method list.
        """
        if self._opened:
            raise InvalidTransitionError("Workflow is already open")
        self._opened = True

        methods, limits = await asyncio.gather(
            self.registry.list_methods(),
            self.limits_client.fetch_limits(self.user_id),
            return_exceptions=True,
        )

        methods = self._settle(methods, "methods")
        if methods is None:
            self.catalog_error = "Payment methods are temporarily unavailable"
            self.methods = []
        else:
            self.methods = [m for m in methods if m.is_active]

        self.limits = self._settle(limits, "limits")
        self.ready = True

    def _settle(self, outcome, source: str):
        if isinstance(outcome, Exception):
            catalog_fallback_counter.labels(source=source).inc()
            logging.warning(
                f"Catalog fetch failed, degrading: {outcome}",
                extra={"workflow_id": self.workflow_id, "source": source, "user_id": self.user_id},
            )
            return None
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def select_method(self, method_id: str) -> None:
        if not self.ready:
            raise InvalidTransitionError("Payment methods are still loading")
        self._require("select a method", WorkflowStep.SELECTING_METHOD)

        method = next((m for m in self.methods if m.id == method_id), None)
        if method is None:
            raise NotFoundError(f"Payment method not available: {method_id}")

        self.draft.selected_method = method
        self.draft.reset_entry()
        self.error = None
        self.last_validation = None
        self._transition(WorkflowStep.COLLECTING_FIELDS, "select_method")

    def change_method(self) -> None:
        self._require("change method", WorkflowStep.COLLECTING_FIELDS)
        self.draft.selected_method = None
        self.draft.reset_entry()
        self.error = None
        self._transition(WorkflowStep.SELECTING_METHOD, "change_method")

    def submit_form(
        self,
        amount: str | None,
        fields: Mapping[str, str],
        balance: Optional[Decimal] = None,
    ) -> ValidationResult:
        """
        Validate the values of this event and move to CONFIRMING when valid.

        An invalid verdict keeps the step and the entered values; only the
        error message changes.
        """
        self._require("submit the form", WorkflowStep.COLLECTING_FIELDS)
        draft = self.draft
        draft.amount = "" if amount is None else str(amount)
        draft.fields = dict(fields)

        result = validate(draft.selected_method, draft.amount, draft.fields, self.limits, kind=self.kind, balance=balance)
        self.last_validation = result

        if not result.valid:
            self.error = result.message
            validation_rejection_counter.labels(reason=result.reason.value).inc()
            logging.info(
                f"Validation failed: {result.message}",
                extra={"workflow_id": self.workflow_id, "reason": result.reason.value},
            )
            return result

        self.error = None
        self._transition(WorkflowStep.CONFIRMING, "submit_form")
        return result

    def back(self) -> None:
        self._require("go back", WorkflowStep.CONFIRMING)
        self._transition(WorkflowStep.COLLECTING_FIELDS, "back")

    def confirmation_summary(self) -> Dict[str, str]:
        """Values shown on the confirmation screen, formatted for display"""
        self._require("summarize", WorkflowStep.CONFIRMING, WorkflowStep.SUBMITTING, WorkflowStep.SUCCEEDED)
        method = self.draft.selected_method
        return {
            "method": method.name,
            "amount": format_amount(parse_amount(self.draft.amount), self.currency),
            "account": normalize_account_reference(method, self.draft.fields) or "",
            "fees": method.fee_description,
            "processing_time": method.processing_time,
        }

    async def confirm(self) -> None:
        """Submit the confirmed draft exactly once"""
        if self.step == WorkflowStep.SUBMITTING:
            logging.info("Duplicate confirm ignored", extra={"workflow_id": self.workflow_id})
            return
        self._require("confirm", WorkflowStep.CONFIRMING)

        draft = self.draft
        if draft.idempotency_token is None:
            draft.idempotency_token = self._token_factory(self.kind)
        request = build_submission_request(draft, self.user_id, self._clock())

        self._transition(WorkflowStep.SUBMITTING, "confirm")
        start_time = time.time()

        try:
            result = await self.submission_client.submit(request)
        except asyncio.CancelledError:
            self._fail(SubmissionErrorKind.NETWORK_ERROR, INTERRUPTED_MESSAGE, request, start_time)
            raise
        except SubmissionError as e:
            self._fail(e.kind, e.message, request, start_time)
        except Exception as e:
            logging.error(f"Unexpected submission error: {e}", extra={"workflow_id": self.workflow_id})
            self._fail(SubmissionErrorKind.NETWORK_ERROR, UNEXPECTED_FAILURE_MESSAGE, request, start_time)
        else:
            self.result = result
            self.error = None
            self.failure_kind = None
            self._transition(WorkflowStep.SUCCEEDED, "submission_succeeded")
            record_submission(self.kind.value, succeeded=True, replayed=result.replayed)
            log_submission(
                self.workflow_id,
                self.user_id,
                request.method_id,
                "succeeded",
                (time.time() - start_time) * 1000,
                transaction_id=result.transaction_id,
            )

    def _fail(self, kind: SubmissionErrorKind, message: str, request: SubmissionRequest, start_time: float) -> None:
        self.error = message or UNEXPECTED_FAILURE_MESSAGE
        self.failure_kind = kind
        self._transition(WorkflowStep.FAILED, "submission_failed")
        record_submission(self.kind.value, succeeded=False)
        log_submission(
            self.workflow_id,
            self.user_id,
            request.method_id,
            "failed",
            (time.time() - start_time) * 1000,
            error_kind=kind.value,
        )

    def retry(self) -> None:
        """
        Return to the form keeping the draft and its idempotency token.

        A duplicate reference would collide again with the same token, so
        that failure only allows start_over().
        """
        self._require("retry", WorkflowStep.FAILED)
        if self.failure_kind == SubmissionErrorKind.DUPLICATE_REFERENCE:
            raise InvalidTransitionError("Cannot retry a duplicate reference, start over instead")
        self.error = None
        self.failure_kind = None
        self._transition(WorkflowStep.COLLECTING_FIELDS, "retry")

    def start_over(self) -> None:
        """Discard the failed draft and begin again with a fresh one"""
        self._require("start over", WorkflowStep.FAILED)
        self._transition(WorkflowStep.SELECTING_METHOD, "start_over")
        self.draft = TransactionDraft(kind=self.kind)
        self.error = None
        self.failure_kind = None
        self.last_validation = None

    def close(self) -> bool:
        """
        Close the workflow and discard the draft.

        Ignored while SUBMITTING (returns False) so an in-flight request is
        never abandoned. Closing after SUCCEEDED notifies on_completed.
        """
        previous = self.step
        if previous == WorkflowStep.CLOSED:
            return True
        if previous == WorkflowStep.SUBMITTING:
            logging.info("Close ignored while submitting", extra={"workflow_id": self.workflow_id})
            return False

        self._transition(WorkflowStep.CLOSED, "close")
        self.draft = None

        if previous == WorkflowStep.SUCCEEDED and self.on_completed is not None:
            self.on_completed(self.result)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require(self, action: str, *steps: WorkflowStep) -> None:
        if self.step not in steps:
            raise InvalidTransitionError(f"Cannot {action} while {self.step.value}")

    def _transition(self, target: WorkflowStep, event: str) -> None:
        current = self.step
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(f"Invalid transition: {current.value} -> {target.value}")
        self.draft.step = target
        log_transition(self.workflow_id, self.kind.value, current.value, target.value, event)
