"""Wiring of workflow collaborators from settings"""

from typing import Callable, Optional

from cashier_workflow.config import settings
from cashier_workflow.domain.catalog import default_methods
from cashier_workflow.domain.models import TransactionKind, TransactionResult
from cashier_workflow.domain.workflow import TransactionWorkflow
from cashier_workflow.infrastructure.clients.limits import LimitsClient
from cashier_workflow.infrastructure.clients.methods import RemotePaymentMethodRegistry
from cashier_workflow.infrastructure.clients.submission import SubmissionClient


def get_method_registry(kind: TransactionKind, **client_options) -> RemotePaymentMethodRegistry:
    """Provide the remote catalog, falling back to the built-in one"""
    return RemotePaymentMethodRegistry(kind, fallback=default_methods(kind), **client_options)


def get_limits_client(kind: TransactionKind, **client_options) -> LimitsClient:
    """Provide limits API client instance"""
    return LimitsClient(kind, **client_options)


def get_submission_client(kind: TransactionKind, **client_options) -> SubmissionClient:
    """Provide submission API client instance"""
    return SubmissionClient(kind, **client_options)


def create_workflow(
    kind: TransactionKind,
    user_id: str,
    on_completed: Optional[Callable[[TransactionResult], None]] = None,
    **client_options,
) -> TransactionWorkflow:
    """
    Build an unopened workflow with HTTP collaborators.

    client_options (base_url, timeout, api_token, transport) are passed to
    every client.
    """
    return TransactionWorkflow(
        kind=kind,
        user_id=user_id,
        registry=get_method_registry(kind, **client_options),
        limits_client=get_limits_client(kind, **client_options),
        submission_client=get_submission_client(kind, **client_options),
        on_completed=on_completed,
        currency=settings.currency,
    )
