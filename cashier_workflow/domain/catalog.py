"""Default payment method catalogs and declarative field rules"""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Pattern

from cashier_workflow.domain.models import MethodCategory, PaymentMethod, TransactionKind


@dataclass(frozen=True)
class FieldFormat:
    """Format rule for one collected field; None disables that check"""

    max_length: Optional[int] = None
    pattern: Optional[Pattern[str]] = None
    description: str = ""
    # Drop inner whitespace and upper-case before checking, e.g. "tr33 0006 ..."
    compact: bool = False

    def normalize(self, value: str) -> str:
        if self.compact:
            return "".join(value.split()).upper()
        return value


# Adding a payment method never requires validator changes: new fields only
# need an entry here when they have a format rule.
FIELD_FORMATS: Dict[str, FieldFormat] = {
    "iban": FieldFormat(
        26, re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]+$"), "an IBAN such as TR330006100519786457841326", compact=True
    ),
    "tc_number": FieldFormat(11, re.compile(r"^\d{11}$"), "11 digits"),
    "papara_id": FieldFormat(10, re.compile(r"^\d+$"), "digits only"),
    "pep_id": FieldFormat(9, re.compile(r"^\d+$"), "digits only"),
    "paratim_id": FieldFormat(10, re.compile(r"^\d+$"), "digits only"),
    "popy_id": FieldFormat(10, re.compile(r"^\d+$"), "digits only"),
    "papel_id": FieldFormat(10, re.compile(r"^\d+$"), "digits only"),
    "parolapara_id": FieldFormat(10, re.compile(r"^\d+$"), "digits only"),
    "paybol_id": FieldFormat(10, re.compile(r"^\d+$"), "digits only"),
    "crypto_address": FieldFormat(128, re.compile(r"^[A-Za-z0-9]{20,128}$"), "a wallet address"),
    "crypto_type": FieldFormat(pattern=re.compile(r"^(btc|eth|usdt|bnb|xrp)$"), description="one of btc, eth, usdt, bnb, xrp"),
}

FIELD_LABELS: Dict[str, str] = {
    "iban": "IBAN",
    "bank_name": "Bank name",
    "user_full_name": "Full name",
    "account_owner": "Account holder",
    "papara_id": "Papara number",
    "pay_co_id": "Pay-Co ID",
    "pay_co_full_name": "Pay-Co full name",
    "pep_id": "Pep number",
    "tc_number": "T.C. identity number",
    "paratim_id": "Paratim number",
    "crypto_address": "Wallet address",
    "crypto_type": "Cryptocurrency",
    "popy_id": "Popy number",
    "papel_id": "Papel number",
    "parolapara_id": "Parolapara number",
    "paybol_id": "Paybol number",
    "method_description": "Payment method",
    "reference": "Reference",
}


def field_label(key: str) -> str:
    """Display name of a field; unknown keys become e.g. "Wallet x id" """
    return FIELD_LABELS.get(key) or key.replace("_", " ").capitalize()


def normalize_field(key: str, value: Optional[str], formats: Optional[Dict[str, FieldFormat]] = None) -> str:
    """Stripped value, compacted when the field's format asks for it"""
    text = (value or "").strip()
    rule = (FIELD_FORMATS if formats is None else formats).get(key)
    if rule is None:
        return text
    return rule.normalize(text)


def _method(
    id: str,
    name: str,
    category: MethodCategory,
    required_fields: List[str],
    min_amount: str,
    max_amount: str,
    processing_time: str,
    fee_description: str = "Free",
    description: str = "",
    is_active: bool = True,
) -> PaymentMethod:
    return PaymentMethod(
        id=id,
        name=name,
        category=category,
        required_fields=tuple(required_fields),
        min_amount=Decimal(min_amount),
        max_amount=Decimal(max_amount),
        processing_time=processing_time,
        fee_description=fee_description,
        is_active=is_active,
        description=description,
    )


WITHDRAWAL_METHODS: List[PaymentMethod] = [
    _method("havale", "Bank Transfer", MethodCategory.BANK, ["iban", "bank_name", "user_full_name"],
            "100", "50000", "1-3 business days", description="Withdraw to your bank account"),
    _method("papara", "Papara", MethodCategory.E_WALLET, ["papara_id"],
            "50", "25000", "Instant", description="Instant transfer to your Papara account"),
    _method("payco", "Pay-Co", MethodCategory.E_WALLET, ["pay_co_id", "pay_co_full_name"],
            "50", "20000", "15-30 minutes"),
    _method("pep", "Pep", MethodCategory.E_WALLET, ["pep_id", "tc_number"],
            "50", "15000", "15-30 minutes"),
    _method("paratim", "Paratim", MethodCategory.E_WALLET, ["paratim_id"],
            "50", "20000", "15-30 minutes"),
    _method("crypto", "Cryptocurrency", MethodCategory.CRYPTO, ["crypto_address"],
            "100", "100000", "30-60 minutes", description="Transfer to your crypto wallet"),
    _method("popy", "Popy", MethodCategory.E_WALLET, ["popy_id"], "50", "15000", "15-30 minutes"),
    _method("papel", "Papel", MethodCategory.E_WALLET, ["papel_id"], "50", "15000", "15-30 minutes"),
    _method("parolapara", "Parolapara", MethodCategory.E_WALLET, ["parolapara_id"], "50", "15000", "15-30 minutes"),
    _method("paybol", "Paybol", MethodCategory.E_WALLET, ["paybol_id"], "50", "15000", "15-30 minutes"),
]

DEPOSIT_METHODS: List[PaymentMethod] = [
    _method("bank_transfer", "Bank Transfer", MethodCategory.BANK, ["account_owner", "bank_name", "iban"],
            "50", "100000", "5-15 minutes", description="Fast and secure bank transfer"),
    _method("papara", "Papara", MethodCategory.E_WALLET, ["papara_id"],
            "20", "50000", "Instant", description="Instant deposit with Papara"),
    _method("crypto", "Cryptocurrency", MethodCategory.CRYPTO, ["crypto_type", "crypto_address"],
            "100", "200000", "10-30 minutes", fee_description="1%", description="Bitcoin, Ethereum and more"),
    _method("other", "Other Methods", MethodCategory.OTHER, ["method_description", "reference"],
            "50", "75000", "5-30 minutes", fee_description="Variable"),
]


def default_methods(kind: TransactionKind) -> List[PaymentMethod]:
    """Built-in catalog for a transaction direction"""
    if kind == TransactionKind.DEPOSIT:
        return list(DEPOSIT_METHODS)
    return list(WITHDRAWAL_METHODS)
