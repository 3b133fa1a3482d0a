"""Transaction submission client with idempotent retry on network errors"""

import asyncio
import httpx
import logging
from typing import Any, Dict, List

from cashier_workflow.config import settings
from cashier_workflow.domain.exceptions import NotFoundError, SubmissionError, SubmissionErrorKind
from cashier_workflow.domain.models import SubmissionRequest, TransactionRecord, TransactionResult
from cashier_workflow.infrastructure.clients.base import CashierAPIClient
from cashier_workflow.infrastructure.observability.metrics import (
    submission_latency_histogram,
    submission_retry_counter,
)
from cashier_workflow.utils.date_utils import parse_timestamp
from cashier_workflow.utils.money import to_decimal


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    for key in ("message", "error", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, list) and value and isinstance(value[0], dict):
            return str(value[0].get("msg", default))
    return default


def parse_record(data: Dict[str, Any]) -> TransactionRecord:
    return TransactionRecord(
        transaction_id=str(data["transactionId"]),
        amount=to_decimal(data["amount"]),
        status=data["status"],
        method_id=data["methodId"],
        created_at=parse_timestamp(data["createdAt"]),
    )


class SubmissionClient(CashierAPIClient):
    """Client for creating deposit/withdrawal requests"""

    def __init__(self, *args, max_retries: int | None = None, backoff_base: float | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_retries = settings.submission_max_retries if max_retries is None else max_retries
        self.backoff_base = settings.submission_backoff_base if backoff_base is None else backoff_base

    async def submit(self, request: SubmissionRequest) -> TransactionResult:
        """
        Create a transaction request.

        Retry strategy:
        - Network errors and 5xx are retried with the same idempotency token
        - Exponential backoff: base, 2*base, 4*base, ...
        - Every other failure is raised immediately

        Raises:
            SubmissionError: kind tells the workflow how to present the failure
        """
        attempt = 0
        async with self.http_client() as client:
            while True:
                try:
                    with submission_latency_histogram.time():
                        return await self._submit_once(client, request)
                except SubmissionError as e:
                    attempt += 1
                    if not e.retryable or attempt >= self.max_retries:
                        raise

                    submission_retry_counter.inc()
                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    logging.warning(
                        f"Submission attempt {attempt} failed, retrying in {backoff}s: {e}",
                        extra={"idempotency_token": request.idempotency_token},
                    )
                    await asyncio.sleep(backoff)

    async def _submit_once(self, client: httpx.AsyncClient, request: SubmissionRequest) -> TransactionResult:
        try:
            response = await client.post(self.endpoint("create"), json=request.to_payload())
        except httpx.TimeoutException as e:
            raise SubmissionError(
                SubmissionErrorKind.NETWORK_ERROR, f"Payment service did not respond within {self.timeout}s"
            ) from e
        except httpx.RequestError as e:
            raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, "Payment service is unreachable") from e

        status = response.status_code
        if status >= 500:
            raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, f"Payment service error ({status})")
        if status in (401, 403):
            raise SubmissionError(
                SubmissionErrorKind.UNAUTHORIZED, _error_message(response, "Please sign in again to continue")
            )
        if status == 409:
            body = self._json(response)
            if body.get("transactionId"):
                # Same token already produced a transaction: that is our result
                return self._result(body, request, replayed=True)
            raise SubmissionError(
                SubmissionErrorKind.DUPLICATE_REFERENCE,
                _error_message(response, "This request was already submitted"),
            )
        if status >= 400:
            raise SubmissionError(
                SubmissionErrorKind.VALIDATION_REJECTED, _error_message(response, "The request was rejected")
            )

        body = self._json(response)
        if not body.get("success"):
            raise SubmissionError(
                SubmissionErrorKind.VALIDATION_REJECTED,
                body.get("message") or body.get("error") or "The request was rejected",
            )
        if not body.get("transactionId"):
            raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, "Payment service returned no transaction id")
        return self._result(body, request, replayed=bool(body.get("replayed", False)))

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, "Invalid response from payment service") from e
        if not isinstance(body, dict):
            raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, "Invalid response from payment service")
        return body

    @staticmethod
    def _result(body: Dict[str, Any], request: SubmissionRequest, replayed: bool) -> TransactionResult:
        """Prefer the server's amount/timestamp: a replay reports the original request"""
        try:
            created_at = parse_timestamp(body["createdAt"])
        except (KeyError, TypeError, ValueError, AttributeError):
            created_at = request.timestamp
        try:
            amount = to_decimal(body["amount"])
        except (KeyError, TypeError, ValueError, ArithmeticError):
            amount = request.amount
        return TransactionResult(
            transaction_id=str(body["transactionId"]),
            submitted_amount=amount,
            method_id=request.method_id,
            created_at=created_at,
            replayed=replayed,
        )

    async def get_status(self, transaction_id: str) -> TransactionRecord:
        """
        Look up one transaction.

        Raises:
            NotFoundError: Unknown transaction id
            SubmissionError: Network failure or invalid response
        """
        async with self.http_client() as client:
            try:
                response = await client.get(self.endpoint(f"status/{transaction_id}"))
                if response.status_code == 404:
                    raise NotFoundError(f"Transaction not found: {transaction_id}")
                response.raise_for_status()
                return parse_record(response.json()["transaction"])

            except httpx.HTTPStatusError as e:
                raise SubmissionError(
                    SubmissionErrorKind.NETWORK_ERROR, f"Status API error: {e.response.status_code}"
                ) from e
            except httpx.RequestError as e:
                raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, f"Status API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError, ArithmeticError) as e:
                raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, f"Invalid status data: {e}") from e

    async def get_history(self, user_id: str, limit: int = 10) -> List[TransactionRecord]:
        """Most recent transactions of this kind for a user, newest first"""
        async with self.http_client() as client:
            try:
                response = await client.get(self.endpoint("history"), params={"user_id": user_id, "limit": limit})
                response.raise_for_status()
                return [parse_record(item) for item in response.json().get("transactions", [])]

            except httpx.HTTPStatusError as e:
                raise SubmissionError(
                    SubmissionErrorKind.NETWORK_ERROR, f"History API error: {e.response.status_code}"
                ) from e
            except httpx.RequestError as e:
                raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, f"History API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError, ArithmeticError) as e:
                raise SubmissionError(SubmissionErrorKind.NETWORK_ERROR, f"Invalid history data: {e}") from e
