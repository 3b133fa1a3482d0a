"""Remote payment method catalog with optional built-in fallback"""

import httpx
import logging
from typing import Any, Dict, List, Optional, Sequence

from cashier_workflow.domain.exceptions import CatalogError, NotFoundError
from cashier_workflow.domain.models import MethodCategory, PaymentMethod, TransactionKind
from cashier_workflow.infrastructure.clients.base import CashierAPIClient
from cashier_workflow.infrastructure.observability.metrics import catalog_fallback_counter
from cashier_workflow.utils.money import to_decimal


def parse_method(data: Dict[str, Any]) -> PaymentMethod:
    """Build a PaymentMethod from one catalog descriptor"""
    return PaymentMethod(
        id=data["id"],
        name=data["name"],
        category=MethodCategory(data.get("category", MethodCategory.OTHER.value)),
        required_fields=tuple(data.get("requiredFields", [])),
        min_amount=to_decimal(data["minAmount"]),
        max_amount=to_decimal(data["maxAmount"]),
        processing_time=data.get("processingTime", ""),
        fee_description=data.get("fees", ""),
        is_active=bool(data.get("isActive", True)),
        description=data.get("description", ""),
    )


class RemotePaymentMethodRegistry(CashierAPIClient):
    """
    Payment method registry backed by GET /api/{kind}/methods.

    Every call re-fetches, so callers always see the current catalog.
    Same inactive-method policy as PaymentMethodRegistry: hidden from
    list_methods(), still resolvable through get_method().
    """

    def __init__(self, kind: TransactionKind, fallback: Optional[Sequence[PaymentMethod]] = None, **kwargs):
        super().__init__(kind, **kwargs)
        self.fallback = list(fallback) if fallback is not None else None

    async def fetch_catalog(self) -> List[PaymentMethod]:
        """
        Fetch every catalog entry, inactive ones included.

        Raises:
            CatalogError: On timeout, HTTP errors, or invalid response
        """
        async with self.http_client() as client:
            try:
                response = await client.get(self.endpoint("methods"))
                response.raise_for_status()
                data = response.json()
                return [parse_method(item) for item in data.get("methods", [])]

            except httpx.TimeoutException as e:
                raise CatalogError(f"Method catalog timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise CatalogError(f"Method catalog error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise CatalogError(f"Method catalog unreachable: {e}") from e
            except (KeyError, ValueError, TypeError, ArithmeticError, AttributeError) as e:
                raise CatalogError(f"Invalid method catalog data: {e}") from e

    async def _catalog(self) -> List[PaymentMethod]:
        try:
            return await self.fetch_catalog()
        except CatalogError as e:
            if self.fallback is None:
                raise
            catalog_fallback_counter.labels(source="methods").inc()
            logging.warning(f"Using built-in {self.kind.value} catalog: {e}")
            return list(self.fallback)

    async def list_methods(self) -> List[PaymentMethod]:
        return [m for m in await self._catalog() if m.is_active]

    async def get_method(self, method_id: str) -> PaymentMethod:
        for method in await self._catalog():
            if method.id == method_id:
                return method
        raise NotFoundError(f"Payment method not found: {method_id}")
