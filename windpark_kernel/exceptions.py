"""
Typed Exception Hierarchy for the wind-park billing system.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Billing runs touch many beneficiaries at once.  Callers (the rule executor,
the scheduler, API adapters) must decide per error whether to abort a run,
record a single failed item, or answer a client with 404/409.  That decision
is made by exception TYPE and machine-readable CODE, never by parsing
messages.

Every exception:
  1. has a typed class (catch by type, not message)
  2. has a ``code`` class attribute (machine-readable, API-safe)
  3. carries structured data as attributes (logged by StructuredFormatter)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WindparkError (base)
    |
    +-- ValidationError                  -> raised before any side effect
    |   +-- InvalidRuleParametersError
    |   +-- InvalidScheduleError
    |   +-- InvalidPeriodError
    |   +-- InvalidSettlementRequestError
    |   +-- InvalidAllocationRequestError
    |   +-- InvalidDistributionAmountError
    |   +-- NoEligibleShareholdersError
    |   +-- ZeroDistributionWeightError
    |   +-- SettlementDataIncompleteError
    |   +-- RecipientDataError            -> caught per item by handlers
    |
    +-- NotFoundError                    -> aborts the run (HTTP 404)
    |   +-- BillingRuleNotFoundError
    |   +-- ParkNotFoundError
    |   +-- FundNotFoundError
    |   +-- DistributionNotFoundError
    |   +-- SettlementNotFoundError
    |   +-- EnergyRevenueNotFoundError
    |
    +-- ConflictError                    -> state or uniqueness clash (HTTP 409)
    |   +-- DistributionStateError
    |   +-- SettlementConflictError
    |   +-- SettlementStateError
    |   +-- BillingRuleInUseError
    |
    +-- HandlerNotRegisteredError

===============================================================================
HANDLING PATTERNS
===============================================================================

1. PER-ITEM FAILURES ARE DATA, NOT ABORTS:

    try:
        invoice = self._bill_lessor(group)
    except RecipientDataError as e:
        outcomes.append(InvoiceOutcome.failure(group.name, str(e)))

2. STRUCTURED DATA FOR CALLERS:

    except SettlementConflictError as e:
        return {"error": e.code, "status": e.status, "year": e.year}
"""


class WindparkError(Exception):
    """
    Base exception for all wind-park billing errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "WINDPARK_ERROR"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(WindparkError):
    """Base for input validation failures."""

    code: str = "VALIDATION_ERROR"


class InvalidRuleParametersError(ValidationError):
    """A billing rule's parameter blob does not decode for its rule type."""

    code: str = "INVALID_RULE_PARAMETERS"

    def __init__(self, rule_type: str, reason: str):
        self.rule_type = rule_type
        self.reason = reason
        super().__init__(f"Invalid parameters for rule type {rule_type}: {reason}")


class InvalidScheduleError(ValidationError):
    """Frequency / cron pattern / day of month combination is invalid."""

    code: str = "INVALID_SCHEDULE"

    def __init__(self, frequency: str, reason: str):
        self.frequency = frequency
        self.reason = reason
        super().__init__(f"Invalid schedule for frequency {frequency}: {reason}")


class InvalidPeriodError(ValidationError):
    """Year/month combination is out of range."""

    code: str = "INVALID_PERIOD"

    def __init__(self, year: int | None, month: int | None, reason: str):
        self.year = year
        self.month = month
        self.reason = reason
        super().__init__(f"Invalid period {year}/{month}: {reason}")


class InvalidSettlementRequestError(ValidationError):
    """Settlement creation request is inconsistent."""

    code: str = "INVALID_SETTLEMENT_REQUEST"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid settlement request: {reason}")


class InvalidAllocationRequestError(ValidationError):
    """Number allocation request is invalid (count < 1, unknown type)."""

    code: str = "INVALID_ALLOCATION_REQUEST"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid number allocation request: {reason}")


class InvalidDistributionAmountError(ValidationError):
    """Distribution total is zero or negative."""

    code: str = "INVALID_DISTRIBUTION_AMOUNT"

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Distribution amount must be positive, got {amount}")


class NoEligibleShareholdersError(ValidationError):
    """Fund has no active shareholders to distribute to."""

    code: str = "NO_ELIGIBLE_SHAREHOLDERS"

    def __init__(self, fund_id: str):
        self.fund_id = fund_id
        super().__init__(f"Fund {fund_id} has no active shareholders")


class ZeroDistributionWeightError(ValidationError):
    """All active shareholders have a zero distribution weight."""

    code: str = "ZERO_DISTRIBUTION_WEIGHT"

    def __init__(self, fund_id: str):
        self.fund_id = fund_id
        super().__init__(
            f"Fund {fund_id}: sum of shareholder percentages is zero"
        )


class SettlementDataIncompleteError(ValidationError):
    """Park master data is missing a value required by the fee calculation."""

    code: str = "SETTLEMENT_DATA_INCOMPLETE"

    def __init__(self, park_id: str, reason: str):
        self.park_id = park_id
        self.reason = reason
        super().__init__(f"Park {park_id}: {reason}")


class RecipientDataError(ValidationError):
    """Recipient lacks data required on a payment document (IBAN, address)."""

    code: str = "RECIPIENT_DATA_MISSING"

    def __init__(self, recipient_name: str, missing: list[str]):
        self.recipient_name = recipient_name
        self.missing = list(missing)
        super().__init__(
            f"{recipient_name}: missing {', '.join(self.missing)}"
        )


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(WindparkError):
    """Base for missing or cross-tenant entities."""

    code: str = "NOT_FOUND"
    entity: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class BillingRuleNotFoundError(NotFoundError):
    code: str = "BILLING_RULE_NOT_FOUND"
    entity: str = "Billing rule"


class ParkNotFoundError(NotFoundError):
    code: str = "PARK_NOT_FOUND"
    entity: str = "Park"


class FundNotFoundError(NotFoundError):
    code: str = "FUND_NOT_FOUND"
    entity: str = "Fund"


class DistributionNotFoundError(NotFoundError):
    code: str = "DISTRIBUTION_NOT_FOUND"
    entity: str = "Distribution"


class SettlementNotFoundError(NotFoundError):
    code: str = "SETTLEMENT_NOT_FOUND"
    entity: str = "Lease revenue settlement"


class EnergyRevenueNotFoundError(NotFoundError):
    code: str = "ENERGY_REVENUE_NOT_FOUND"
    entity: str = "Energy revenue"


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictError(WindparkError):
    """Base for state machine and uniqueness conflicts."""

    code: str = "CONFLICT"


class DistributionStateError(ConflictError):
    """Operation not allowed in the distribution's current status."""

    code: str = "DISTRIBUTION_STATE_CONFLICT"

    def __init__(self, distribution_id: str, status: str, action: str):
        self.distribution_id = distribution_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} distribution {distribution_id} in status {status}"
        )


class SettlementConflictError(ConflictError):
    """A settlement for the same park and period is already settled or closed."""

    code: str = "SETTLEMENT_CONFLICT"

    def __init__(
        self,
        park_id: str,
        year: int,
        period_type: str,
        month: int | None,
        status: str,
    ):
        self.park_id = park_id
        self.year = year
        self.period_type = period_type
        self.month = month
        self.status = status
        super().__init__(
            f"Settlement {period_type} {year}/{month or '-'} for park {park_id} "
            f"already exists in status {status}"
        )


class SettlementStateError(ConflictError):
    """Illegal settlement state transition."""

    code: str = "SETTLEMENT_STATE_CONFLICT"

    def __init__(self, settlement_id: str, status: str, action: str):
        self.settlement_id = settlement_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} settlement {settlement_id} in status {status}"
        )


class BillingRuleInUseError(ConflictError):
    """Rule cannot be deleted while executions reference it."""

    code: str = "BILLING_RULE_IN_USE"

    def __init__(self, rule_id: str, execution_count: int):
        self.rule_id = rule_id
        self.execution_count = execution_count
        super().__init__(
            f"Billing rule {rule_id} has {execution_count} executions; "
            "deactivate it instead"
        )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class HandlerNotRegisteredError(WindparkError):
    """No handler registered for a rule type."""

    code: str = "HANDLER_NOT_REGISTERED"

    def __init__(self, rule_type: str, available: list[str]):
        self.rule_type = rule_type
        self.available = sorted(available)
        super().__init__(
            f"No handler registered for rule type {rule_type!r}. "
            f"Available: {self.available}"
        )
