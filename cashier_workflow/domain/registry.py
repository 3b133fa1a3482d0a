"""In-memory payment method registry"""

from typing import Dict, List, Sequence

from cashier_workflow.domain.exceptions import NotFoundError
from cashier_workflow.domain.models import PaymentMethod


class PaymentMethodRegistry:
    """
    Read-only catalog of payment methods.

    Policy for inactive methods:
    - list_methods() hides them, so they can never be selected
    - get_method() still resolves them for display (e.g. a disabled entry)

    Instances hold no per-workflow state and may be shared across workflows.
    """

    def __init__(self, methods: Sequence[PaymentMethod]):
        self._methods: Dict[str, PaymentMethod] = {}
        for method in methods:
            if method.id in self._methods:
                raise ValueError(f"Duplicate payment method id: {method.id}")
            self._methods[method.id] = method

    async def list_methods(self) -> List[PaymentMethod]:
        """Active methods in catalog order"""
        return [m for m in self._methods.values() if m.is_active]

    async def get_method(self, method_id: str) -> PaymentMethod:
        try:
            return self._methods[method_id]
        except KeyError:
            raise NotFoundError(f"Payment method not found: {method_id}") from None
