"""Map method-specific form fields onto the canonical submission request"""

from datetime import datetime
from typing import Dict, Mapping, Optional

from cashier_workflow.domain.catalog import normalize_field
from cashier_workflow.domain.exceptions import InvalidTransitionError
from cashier_workflow.domain.models import PaymentMethod, SubmissionRequest, TransactionDraft
from cashier_workflow.utils.money import parse_amount

# Method id -> field holding the account the money moves to/from
ACCOUNT_REFERENCE_FIELDS: Dict[str, str] = {
    "havale": "iban",
    "bank_transfer": "iban",
    "papara": "papara_id",
    "payco": "pay_co_id",
    "pep": "pep_id",
    "paratim": "paratim_id",
    "crypto": "crypto_address",
    "popy": "popy_id",
    "papel": "papel_id",
    "parolapara": "parolapara_id",
    "paybol": "paybol_id",
    "other": "reference",
}


def clean_fields(fields: Mapping[str, str]) -> Dict[str, str]:
    """Strip (and compact, where the format asks) values; drop blank entries"""
    cleaned = {}
    for key, value in fields.items():
        text = normalize_field(key, value)
        if text:
            cleaned[key] = text
    return cleaned


def normalize_account_reference(
    method: PaymentMethod,
    fields: Mapping[str, str],
    mapping: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """
    Resolve the account reference for any method.

    Uses the declarative mapping, falling back to the method's first
    required field. Returns None when neither yields a value.
    """
    mapping = ACCOUNT_REFERENCE_FIELDS if mapping is None else mapping
    key = mapping.get(method.id)
    if key is None and method.required_fields:
        key = method.required_fields[0]
    if key is None:
        return None
    return normalize_field(key, fields.get(key)) or None


def build_submission_request(
    draft: TransactionDraft,
    user_id: str,
    timestamp: datetime,
) -> SubmissionRequest:
    """Build the canonical request from a confirmed draft"""
    method = draft.selected_method
    amount = parse_amount(draft.amount)
    if method is None or amount is None or not draft.idempotency_token:
        raise InvalidTransitionError("Draft is incomplete and cannot be submitted")

    return SubmissionRequest(
        kind=draft.kind,
        amount=amount,
        method_id=method.id,
        account_reference=normalize_account_reference(method, draft.fields),
        idempotency_token=draft.idempotency_token,
        user_id=user_id,
        timestamp=timestamp,
        details=clean_fields(draft.fields),
    )
