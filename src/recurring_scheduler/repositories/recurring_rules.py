"""Supabase-backed rule store: recurring rules and the transaction ledger."""

import logging
from collections.abc import Callable
from datetime import date, timedelta

from recurring_scheduler.config import settings
from recurring_scheduler.errors import InvalidRuleError, RuleStoreError
from recurring_scheduler.models import (
    EXPENSE,
    INCOME,
    INVALID_STAGE,
    RecurringRule,
    RuleFailure,
    TransactionInstance,
)
from recurring_scheduler.services.supabase_client import get_supabase
from recurring_scheduler.utils.time import parse_utc_date

logger = logging.getLogger(__name__)

RULE_COLUMNS = (
    "id, user_id, wallet_id, category_id, amount_minor, currency_code, type, "
    "description, frequency, interval, day_of_month, start_date, end_date, "
    "next_run_at, is_active"
)


def _required_str(row: dict, key: str, rule_id: str | None) -> str:
    value = row.get(key)
    if value is None or str(value).strip() == "":
        raise InvalidRuleError(rule_id, f"missing {key}")
    return str(value)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_amount(value: object, rule_id: str | None) -> int:
    if isinstance(value, bool):
        raise InvalidRuleError(rule_id, f"invalid amount_minor {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidRuleError(rule_id, f"invalid amount_minor {value!r}")


def _parse_interval(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_day_of_month(value: object, rule_id: str | None) -> int | None:
    day = _parse_interval(value)
    if day is None:
        return None
    if not 1 <= day <= 31:
        logger.warning("Ignoring day_of_month %s on rule %s.", day, rule_id)
        return None
    return day


def _parse_date(row: dict, key: str, rule_id: str | None) -> date | None:
    try:
        return parse_utc_date(row.get(key))
    except (TypeError, ValueError) as exc:
        raise InvalidRuleError(rule_id, f"invalid {key} {row.get(key)!r}") from exc


def build_rule(row: dict) -> RecurringRule:
    """Validate a stored row and turn it into a ``RecurringRule``."""
    raw_id = row.get("id")
    rule_id = str(raw_id) if raw_id is not None else None
    rule_id = _required_str(row, "id", rule_id)

    next_run_date = _parse_date(row, "next_run_at", rule_id)
    if next_run_date is None:
        raise InvalidRuleError(rule_id, "missing next_run_at")

    frequency = _optional_str(row.get("frequency"))
    rule_type = (_optional_str(row.get("type")) or EXPENSE).lower()
    if rule_type not in (EXPENSE, INCOME):
        raise InvalidRuleError(rule_id, f"invalid type {row.get('type')!r}")

    return RecurringRule(
        id=rule_id,
        user_id=_required_str(row, "user_id", rule_id),
        wallet_id=_required_str(row, "wallet_id", rule_id),
        category_id=_optional_str(row.get("category_id")),
        amount_minor=_parse_amount(row.get("amount_minor"), rule_id),
        currency_code=_optional_str(row.get("currency_code")),
        type=rule_type,
        description=row.get("description"),
        frequency=frequency.lower() if frequency else None,
        interval=_parse_interval(row.get("interval")),
        day_of_month=_parse_day_of_month(row.get("day_of_month"), rule_id),
        start_date=_parse_date(row, "start_date", rule_id),
        end_date=_parse_date(row, "end_date", rule_id),
        next_run_date=next_run_date,
        is_paused=not bool(row.get("is_active", True)),
    )


def transaction_row(instance: TransactionInstance) -> dict:
    return {
        "user_id": instance.user_id,
        "wallet_id": instance.wallet_id,
        "category_id": instance.category_id,
        "amount_minor": instance.amount_minor,
        "currency_code": instance.currency_code,
        "type": instance.type,
        "description": instance.description,
        "occurred_at": instance.occurred_on.isoformat(),
    }


class SupabaseRuleStore:
    def __init__(
        self,
        rules_table: str | None = None,
        transactions_table: str | None = None,
        page_size: int | None = None,
    ) -> None:
        self.rules_table = rules_table or settings.recurring_rules_table
        self.transactions_table = transactions_table or settings.transactions_table
        self.page_size = page_size or settings.recurring_page_size

    def _due_page(self, reference_date: date, start: int) -> list[dict]:
        supabase = get_supabase()
        # next_run_at may be a timestamp; anything before the following midnight is due.
        cutoff = reference_date + timedelta(days=1)
        day = reference_date.isoformat()
        response = (
            supabase.table(self.rules_table)
            .select(RULE_COLUMNS)
            .eq("is_active", True)
            .lt("next_run_at", cutoff.isoformat())
            .or_(f"start_date.is.null,start_date.lte.{day}")
            .or_(f"end_date.is.null,end_date.gte.{day}")
            .order("next_run_at")
            .order("id")
            .range(start, start + self.page_size - 1)
            .execute()
        )
        return response.data or []

    def list_due_rules(
        self,
        reference_date: date,
        on_invalid: Callable[[RuleFailure], None] | None = None,
    ) -> list[RecurringRule]:
        """
        Every due rule inside its active window, fetched page by page.

        All pages are read before any rule is processed, so advancing rules
        cannot shift the offsets of later pages.
        """
        rows: list[dict] = []
        while True:
            page = self._due_page(reference_date, len(rows))
            rows.extend(page)
            if len(page) < self.page_size:
                break

        rules: list[RecurringRule] = []
        for row in rows:
            try:
                rule = build_rule(row)
            except InvalidRuleError as exc:
                logger.error("Skipping malformed recurring rule: %s", exc)
                if on_invalid:
                    on_invalid(
                        RuleFailure(exc.rule_id or "<unknown>", INVALID_STAGE, str(exc))
                    )
                continue
            if rule.is_due(reference_date):
                rules.append(rule)
        return rules

    def insert_transaction(self, instance: TransactionInstance) -> None:
        supabase = get_supabase()
        response = (
            supabase.table(self.transactions_table)
            .insert(transaction_row(instance))
            .execute()
        )
        if not response.data:
            raise RuleStoreError(
                f"Transaction insert for rule {instance.rule_id} returned no rows"
            )

    def update_next_run_date(self, rule_id: str, new_date: date) -> None:
        supabase = get_supabase()
        response = (
            supabase.table(self.rules_table)
            .update({"next_run_at": new_date.isoformat()})
            .eq("id", rule_id)
            .execute()
        )
        if not response.data:
            raise RuleStoreError(f"Recurring rule {rule_id} was not updated")
