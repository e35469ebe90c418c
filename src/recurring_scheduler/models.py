from dataclasses import dataclass, field
from datetime import date

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
FREQUENCIES = (DAILY, WEEKLY, MONTHLY)

EXPENSE = "expense"
INCOME = "income"

INSERT_STAGE = "insert"
ADVANCE_STAGE = "advance"
INVALID_STAGE = "invalid"


@dataclass(frozen=True)
class RecurringRule:
    """A standing instruction to produce a transaction on a schedule."""

    id: str
    user_id: str
    wallet_id: str
    amount_minor: int
    next_run_date: date
    frequency: str | None = MONTHLY
    interval: int | None = 1
    category_id: str | None = None
    description: str | None = None
    is_paused: bool = False
    currency_code: str | None = None
    type: str = EXPENSE
    day_of_month: int | None = None
    start_date: date | None = None
    end_date: date | None = None

    def is_due(self, reference_date: date) -> bool:
        return not self.is_paused and self.next_run_date <= reference_date

    def is_within_window(self, reference_date: date) -> bool:
        if self.start_date and reference_date < self.start_date:
            return False
        if self.end_date and reference_date > self.end_date:
            return False
        return True


@dataclass(frozen=True)
class TransactionInstance:
    """One materialized occurrence of a recurring rule."""

    rule_id: str
    user_id: str
    wallet_id: str
    category_id: str | None
    amount_minor: int
    description: str | None
    occurred_on: date
    currency_code: str | None = None
    type: str = EXPENSE

    @classmethod
    def from_rule(cls, rule: RecurringRule, occurred_on: date) -> "TransactionInstance":
        return cls(
            rule_id=rule.id,
            user_id=rule.user_id,
            wallet_id=rule.wallet_id,
            category_id=rule.category_id,
            amount_minor=rule.amount_minor,
            description=rule.description,
            occurred_on=occurred_on,
            currency_code=rule.currency_code,
            type=rule.type,
        )


@dataclass(frozen=True)
class RuleFailure:
    """A rule that could not be fully processed during a run."""

    rule_id: str
    stage: str
    message: str


@dataclass
class RunResult:
    """Summary of one scheduler run. Not persisted."""

    reference_date: date
    rules_considered: int = 0
    transactions_created: int = 0
    rules_advanced: int = 0
    rules_outside_window: int = 0
    insert_failures: list[RuleFailure] = field(default_factory=list)
    advance_failures: list[RuleFailure] = field(default_factory=list)
    invalid_rules: list[RuleFailure] = field(default_factory=list)
    frequency_fallbacks: list[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.insert_failures or self.advance_failures or self.invalid_rules)

    def to_dict(self) -> dict:
        return {
            "reference_date": self.reference_date.isoformat(),
            "rules_considered": self.rules_considered,
            "transactions_created": self.transactions_created,
            "rules_advanced": self.rules_advanced,
            "rules_outside_window": self.rules_outside_window,
            "insert_failures": [
                {"rule_id": f.rule_id, "message": f.message}
                for f in self.insert_failures
            ],
            "advance_failures": [
                {"rule_id": f.rule_id, "message": f.message}
                for f in self.advance_failures
            ],
            "invalid_rules": [
                {"rule_id": f.rule_id, "message": f.message}
                for f in self.invalid_rules
            ],
            "frequency_fallbacks": list(self.frequency_fallbacks),
        }
