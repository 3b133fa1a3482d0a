"""Field validator - gates the move from form entry to confirmation"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Mapping, Optional

from cashier_workflow.domain.catalog import FIELD_FORMATS, FieldFormat, field_label, normalize_field
from cashier_workflow.domain.exceptions import ValidationError
from cashier_workflow.domain.models import AccountLimits, PaymentMethod, TransactionKind
from cashier_workflow.utils.money import format_amount, parse_amount


class ValidationReason(str, Enum):
    INVALID_AMOUNT = "invalid_amount"
    BELOW_METHOD_MINIMUM = "below_method_minimum"
    ABOVE_METHOD_MAXIMUM = "above_method_maximum"
    ABOVE_ACCOUNT_MAXIMUM = "above_account_maximum"
    DAILY_LIMIT_EXCEEDED = "daily_limit_exceeded"
    MONTHLY_LIMIT_EXCEEDED = "monthly_limit_exceeded"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    MISSING_FIELD = "missing_field"
    INVALID_FIELD_FORMAT = "invalid_field_format"

    @property
    def is_limit_exceeded(self) -> bool:
        return self in (
            ValidationReason.ABOVE_METHOD_MAXIMUM,
            ValidationReason.ABOVE_ACCOUNT_MAXIMUM,
            ValidationReason.DAILY_LIMIT_EXCEEDED,
            ValidationReason.MONTHLY_LIMIT_EXCEEDED,
        )


@dataclass(frozen=True)
class ValidationResult:
    """Verdict of validate(); message is empty when valid"""

    valid: bool
    reason: Optional[ValidationReason] = None
    message: str = ""
    field: Optional[str] = None
    limits_verified: bool = True

    @classmethod
    def ok(cls, limits_verified: bool = True) -> "ValidationResult":
        return cls(valid=True, limits_verified=limits_verified)

    @classmethod
    def invalid(
        cls,
        reason: ValidationReason,
        message: str,
        field: Optional[str] = None,
        limits_verified: bool = True,
    ) -> "ValidationResult":
        return cls(valid=False, reason=reason, message=message, field=field, limits_verified=limits_verified)

    def ensure_valid(self) -> None:
        """Raise ValidationError when the verdict is invalid"""
        if not self.valid:
            raise ValidationError(self.reason, self.message, self.field)


def _check_format(key: str, value: str, rule: FieldFormat) -> Optional[str]:
    label = field_label(key)
    if rule.max_length is not None and len(value) > rule.max_length:
        return f"{label} must be at most {rule.max_length} characters"
    if rule.pattern is not None and not rule.pattern.match(value):
        hint = f" ({rule.description})" if rule.description else ""
        return f"{label} has an invalid format{hint}"
    return None


def validate(
    method: PaymentMethod,
    amount: str | None,
    fields: Mapping[str, str],
    limits: Optional[AccountLimits] = None,
    *,
    kind: TransactionKind = TransactionKind.WITHDRAWAL,
    balance: Optional[Decimal] = None,
    formats: Optional[Dict[str, FieldFormat]] = None,
) -> ValidationResult:
    """
    Validate a draft against method bounds, account limits and field rules.

    Rules run in a fixed order and the first failure wins:
    1. amount parses as a positive number
    2-3. amount within the method's [min, max]
    4. amount <= account per-transaction ceiling (when limits are known)
    5. amount <= remaining daily, then remaining monthly allowance (when limits are known)
    6. withdrawals: amount <= balance (when the caller supplies one)
    7. every required field has a non-blank value
    8. declarative per-field format rules

    Pure function, safe to call on every keystroke.
    """
    formats = FIELD_FORMATS if formats is None else formats
    verified = limits is not None

    value = parse_amount(amount)
    if value is None:
        return ValidationResult.invalid(
            ValidationReason.INVALID_AMOUNT, "Please enter a valid positive amount", limits_verified=verified
        )

    if value < method.min_amount:
        return ValidationResult.invalid(
            ValidationReason.BELOW_METHOD_MINIMUM,
            f"Amount is below minimum of {format_amount(method.min_amount)} for {method.name}",
            limits_verified=verified,
        )

    if value > method.max_amount:
        return ValidationResult.invalid(
            ValidationReason.ABOVE_METHOD_MAXIMUM,
            f"Amount is above maximum of {format_amount(method.max_amount)} for {method.name}",
            limits_verified=verified,
        )

    if limits is not None:
        if value > limits.max_amount:
            return ValidationResult.invalid(
                ValidationReason.ABOVE_ACCOUNT_MAXIMUM,
                f"Amount exceeds your per-transaction limit of {format_amount(limits.max_amount)}",
            )
        if value > limits.daily_limit - limits.daily_used:
            return ValidationResult.invalid(
                ValidationReason.DAILY_LIMIT_EXCEEDED,
                f"Amount exceeds your remaining daily limit of {format_amount(limits.daily_remaining)}",
            )
        if value > limits.monthly_limit - limits.monthly_used:
            return ValidationResult.invalid(
                ValidationReason.MONTHLY_LIMIT_EXCEEDED,
                f"Amount exceeds your remaining monthly limit of {format_amount(limits.monthly_remaining)}",
            )

    if kind == TransactionKind.WITHDRAWAL and balance is not None and value > balance:
        return ValidationResult.invalid(
            ValidationReason.INSUFFICIENT_BALANCE, "Insufficient balance", limits_verified=verified
        )

    for key in method.required_fields:
        if not (fields.get(key) or "").strip():
            return ValidationResult.invalid(
                ValidationReason.MISSING_FIELD, f"Please fill in {field_label(key)}", field=key, limits_verified=verified
            )

    extra_keys = sorted(k for k in fields if k not in method.required_fields)
    for key in list(method.required_fields) + extra_keys:
        rule = formats.get(key)
        text = normalize_field(key, fields.get(key), formats)
        if rule is None or not text:
            continue
        problem = _check_format(key, text, rule)
        if problem:
            return ValidationResult.invalid(
                ValidationReason.INVALID_FIELD_FORMAT, problem, field=key, limits_verified=verified
            )

    return ValidationResult.ok(limits_verified=verified)
