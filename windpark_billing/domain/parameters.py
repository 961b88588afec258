"""
Typed parameter structs for billing rules.

A rule's ``parameters`` JSON blob is decoded exactly once, by the executor,
into the frozen dataclass of its rule type.  Handlers only ever see the
typed struct.  Keys are snake_case; unknown keys are rejected so that a
typo never silently falls back to a default.

Failure modes:
    InvalidRuleParametersError -- wrong type, missing required key,
    unknown key or value out of range.  Raised before any side effect.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Union
from uuid import UUID

from windpark_kernel.db.types import ZERO, to_decimal
from windpark_kernel.domain.values import InvoiceType, TaxType
from windpark_kernel.exceptions import InvalidRuleParametersError
from windpark_modules.invoicing.models import RecipientType

from windpark_billing.domain.types import BillingRuleType


class CalculationType(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class FeeBaseValue(str, Enum):
    TOTAL_CAPITAL = "TOTAL_CAPITAL"
    NET_ASSET_VALUE = "NET_ASSET_VALUE"
    ANNUAL_REVENUE = "ANNUAL_REVENUE"


# =============================================================================
# Field readers
# =============================================================================


class _Reader:
    """Reads typed values out of a raw blob, reporting errors per rule type."""

    def __init__(self, rule_type: BillingRuleType, raw: Mapping[str, Any], allowed: set[str]):
        if not isinstance(raw, Mapping):
            raise InvalidRuleParametersError(rule_type.value, "parameters must be an object")
        unknown = sorted(set(raw) - allowed)
        if unknown:
            raise InvalidRuleParametersError(
                rule_type.value, f"unknown keys: {', '.join(unknown)}"
            )
        self._rule_type = rule_type
        self._raw = raw

    def fail(self, reason: str) -> InvalidRuleParametersError:
        return InvalidRuleParametersError(self._rule_type.value, reason)

    def _get(self, key: str, required: bool) -> Any:
        value = self._raw.get(key)
        if value is None and required:
            raise self.fail(f"{key} is required")
        return value

    def uuid(self, key: str, required: bool = False) -> UUID | None:
        value = self._get(key, required)
        if value is None:
            return None
        try:
            return value if isinstance(value, UUID) else UUID(str(value))
        except ValueError:
            raise self.fail(f"{key} is not a valid id: {value!r}") from None

    def integer(self, key: str, required: bool = False) -> int | None:
        value = self._get(key, required)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise self.fail(f"{key} must be an integer")
        return value

    def decimal(self, key: str, required: bool = False) -> Decimal | None:
        value = self._get(key, required)
        if value is None:
            return None
        try:
            return to_decimal(value)
        except ValueError:
            raise self.fail(f"{key} must be a number") from None

    def text(self, key: str, required: bool = False) -> str | None:
        value = self._get(key, required)
        if value is None:
            return None
        if not isinstance(value, str):
            raise self.fail(f"{key} must be a string")
        return value

    def boolean(self, key: str, default: bool = False) -> bool:
        value = self._raw.get(key)
        if value is None:
            return default
        if not isinstance(value, bool):
            raise self.fail(f"{key} must be true or false")
        return value

    def iso_date(self, key: str) -> date | None:
        value = self._get(key, False)
        if value is None:
            return None
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            raise self.fail(f"{key} must be an ISO date") from None

    def choice(self, key: str, enum_type: type[Enum], required: bool = False):
        value = self._get(key, required)
        if value is None:
            return None
        try:
            return enum_type(value)
        except ValueError:
            allowed = ", ".join(m.value for m in enum_type)
            raise self.fail(f"{key} must be one of {allowed}") from None


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items() if v is not None}
    return value


class _Parameters:
    def to_dict(self) -> dict[str, Any]:
        """JSON-safe blob (None values dropped)."""
        return {k: _encode(v) for k, v in asdict(self).items() if v is not None}


# =============================================================================
# Per-type structs
# =============================================================================


@dataclass(frozen=True)
class LeaseAdvanceParameters(_Parameters):
    """Monthly advance credit notes to lessors.  Period defaults to ``as_of``."""

    year: int | None = None
    month: int | None = None
    park_id: UUID | None = None
    tax_type: TaxType | None = None
    due_days: int | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], rule_type=BillingRuleType.LEASE_ADVANCE):
        r = _Reader(rule_type, raw, {"year", "month", "park_id", "tax_type", "due_days"})
        due_days = r.integer("due_days")
        if due_days is not None and due_days < 0:
            raise r.fail("due_days cannot be negative")
        return cls(
            year=r.integer("year"),
            month=r.integer("month"),
            park_id=r.uuid("park_id"),
            tax_type=r.choice("tax_type", TaxType),
            due_days=due_days,
        )


@dataclass(frozen=True)
class LeasePaymentParameters(LeaseAdvanceParameters):
    """Monthly lease payment invoices; same shape as the advance."""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], rule_type=BillingRuleType.LEASE_PAYMENT):
        return super().from_dict(raw, rule_type)


@dataclass(frozen=True)
class DistributionParameters(_Parameters):
    fund_id: UUID
    total_amount: Decimal
    description: str | None = None
    distribution_date: date | None = None
    notify_shareholders: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> DistributionParameters:
        r = _Reader(
            BillingRuleType.DISTRIBUTION,
            raw,
            {"fund_id", "total_amount", "description", "distribution_date", "notify_shareholders"},
        )
        total = r.decimal("total_amount", required=True)
        if total <= ZERO:
            raise r.fail("total_amount must be positive")
        return cls(
            fund_id=r.uuid("fund_id", required=True),
            total_amount=total,
            description=r.text("description"),
            distribution_date=r.iso_date("distribution_date"),
            notify_shareholders=r.boolean("notify_shareholders"),
        )


@dataclass(frozen=True)
class ManagementFeeParameters(_Parameters):
    calculation_type: CalculationType
    amount: Decimal | None = None
    percentage: Decimal | None = None
    base_value: FeeBaseValue | None = None
    fund_id: UUID | None = None
    park_id: UUID | None = None
    recipient_name: str | None = None
    recipient_address: str | None = None
    tax_type: TaxType | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ManagementFeeParameters:
        r = _Reader(
            BillingRuleType.MANAGEMENT_FEE,
            raw,
            {
                "calculation_type",
                "amount",
                "percentage",
                "base_value",
                "fund_id",
                "park_id",
                "recipient_name",
                "recipient_address",
                "tax_type",
                "description",
            },
        )
        calculation_type = r.choice("calculation_type", CalculationType, required=True)
        amount = r.decimal("amount")
        percentage = r.decimal("percentage")
        base_value = r.choice("base_value", FeeBaseValue)
        if calculation_type == CalculationType.FIXED:
            if amount is None or amount <= ZERO:
                raise r.fail("FIXED fees need a positive amount")
        else:
            if percentage is None or percentage <= ZERO:
                raise r.fail("PERCENTAGE fees need a positive percentage")
            if base_value is None:
                raise r.fail("PERCENTAGE fees need a base_value")
        return cls(
            calculation_type=calculation_type,
            amount=amount,
            percentage=percentage,
            base_value=base_value,
            fund_id=r.uuid("fund_id"),
            park_id=r.uuid("park_id"),
            recipient_name=r.text("recipient_name"),
            recipient_address=r.text("recipient_address"),
            tax_type=r.choice("tax_type", TaxType),
            description=r.text("description"),
        )


@dataclass(frozen=True)
class CustomRuleItem(_Parameters):
    description: str
    quantity: Decimal
    unit_price: Decimal
    unit: str | None = None
    tax_type: TaxType | None = None


@dataclass(frozen=True)
class CustomRuleParameters(_Parameters):
    invoice_type: InvoiceType
    items: tuple[CustomRuleItem, ...]
    recipient_type: RecipientType | None = None
    recipient_name: str | None = None
    recipient_address: str | None = None
    fund_id: UUID | None = None
    park_id: UUID | None = None
    shareholder_id: UUID | None = None
    lease_id: UUID | None = None
    notes: str | None = None
    tax_type: TaxType | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> CustomRuleParameters:
        r = _Reader(
            BillingRuleType.CUSTOM,
            raw,
            {
                "invoice_type",
                "items",
                "recipient_type",
                "recipient_name",
                "recipient_address",
                "fund_id",
                "park_id",
                "shareholder_id",
                "lease_id",
                "notes",
                "tax_type",
            },
        )
        raw_items = raw.get("items")
        if not isinstance(raw_items, (list, tuple)) or not raw_items:
            raise r.fail("items must be a non-empty list")
        items = []
        for index, raw_item in enumerate(raw_items, start=1):
            ir = _Reader(
                BillingRuleType.CUSTOM,
                raw_item,
                {"description", "quantity", "unit_price", "unit", "tax_type"},
            )
            description = ir.text("description", required=True)
            if not description.strip():
                raise r.fail(f"item {index}: description is empty")
            quantity = ir.decimal("quantity", required=True)
            if quantity <= ZERO:
                raise r.fail(f"item {index}: quantity must be positive")
            items.append(
                CustomRuleItem(
                    description=description,
                    quantity=quantity,
                    unit_price=ir.decimal("unit_price", required=True),
                    unit=ir.text("unit"),
                    tax_type=ir.choice("tax_type", TaxType),
                )
            )
        return cls(
            invoice_type=r.choice("invoice_type", InvoiceType, required=True),
            items=tuple(items),
            recipient_type=r.choice("recipient_type", RecipientType),
            recipient_name=r.text("recipient_name"),
            recipient_address=r.text("recipient_address"),
            fund_id=r.uuid("fund_id"),
            park_id=r.uuid("park_id"),
            shareholder_id=r.uuid("shareholder_id"),
            lease_id=r.uuid("lease_id"),
            notes=r.text("notes"),
            tax_type=r.choice("tax_type", TaxType),
        )


RuleParameters = Union[
    LeaseAdvanceParameters,
    LeasePaymentParameters,
    DistributionParameters,
    ManagementFeeParameters,
    CustomRuleParameters,
]

PARAMETER_TYPES: dict[BillingRuleType, type] = {
    BillingRuleType.LEASE_PAYMENT: LeasePaymentParameters,
    BillingRuleType.LEASE_ADVANCE: LeaseAdvanceParameters,
    BillingRuleType.DISTRIBUTION: DistributionParameters,
    BillingRuleType.MANAGEMENT_FEE: ManagementFeeParameters,
    BillingRuleType.CUSTOM: CustomRuleParameters,
}


def decode_parameters(
    rule_type: BillingRuleType | str, raw: Mapping[str, Any] | None
) -> RuleParameters:
    """Decode a stored blob into the typed struct of ``rule_type``.

    Raises:
        InvalidRuleParametersError: unknown rule type or invalid blob.
    """
    try:
        rule_type = BillingRuleType(rule_type)
    except ValueError:
        raise InvalidRuleParametersError(str(rule_type), "unknown rule type") from None
    return PARAMETER_TYPES[rule_type].from_dict(raw or {})
