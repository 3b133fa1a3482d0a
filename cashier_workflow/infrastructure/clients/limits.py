"""Limits service HTTP client for account-level ceilings"""

import httpx
from typing import Any, Dict

from cashier_workflow.domain.exceptions import LimitsUnavailableError
from cashier_workflow.domain.models import AccountLimits
from cashier_workflow.infrastructure.clients.base import CashierAPIClient
from cashier_workflow.utils.money import to_decimal


def parse_limits(data: Dict[str, Any]) -> AccountLimits:
    """Build AccountLimits from the wire shape {min, max, daily, monthly, dailyUsed, monthlyUsed}"""
    return AccountLimits(
        min_amount=to_decimal(data["min"]),
        max_amount=to_decimal(data["max"]),
        daily_limit=to_decimal(data["daily"]),
        monthly_limit=to_decimal(data["monthly"]),
        daily_used=to_decimal(data.get("dailyUsed", 0)),
        monthly_used=to_decimal(data.get("monthlyUsed", 0)),
    )


class LimitsClient(CashierAPIClient):
    """Client for the per-user limits endpoint"""

    async def fetch_limits(self, user_id: str) -> AccountLimits:
        """
        Fetch the current limits snapshot for a user.

        Raises:
            LimitsUnavailableError: On timeout, HTTP errors, or invalid response
        """
        async with self.http_client() as client:
            try:
                response = await client.get(self.endpoint("limits"), params={"user_id": user_id})
                response.raise_for_status()
                data = response.json()

                if data.get("success") is False:
                    raise LimitsUnavailableError(data.get("error") or data.get("message") or "Limits request failed")

                return parse_limits(data.get("limits", data))

            except httpx.TimeoutException as e:
                raise LimitsUnavailableError(f"Limits API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise LimitsUnavailableError(f"Limits API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise LimitsUnavailableError(f"Limits API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError, ArithmeticError, AttributeError) as e:
                raise LimitsUnavailableError(f"Invalid limits data: {e}") from e
