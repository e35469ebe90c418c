"""In-process rule store and run lease, used for local runs and tests."""

import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime, timedelta
from uuid import uuid4

from recurring_scheduler.errors import RuleStoreError
from recurring_scheduler.models import RecurringRule, RuleFailure, TransactionInstance
from recurring_scheduler.utils.time import utc_now


class InMemoryRuleStore:
    """
    Keeps rules and transactions in dictionaries.

    ``fail_inserts_for`` / ``fail_updates_for`` hold rule ids whose writes
    should fail, and ``fail_listing`` makes ``list_due_rules`` raise.
    ``rejected_rows`` stands in for stored rows that failed validation; they
    are reported to ``on_invalid`` on every listing.
    """

    def __init__(self, rules: list[RecurringRule] | None = None) -> None:
        self._lock = threading.Lock()
        self.rules: dict[str, RecurringRule] = {rule.id: rule for rule in rules or []}
        self.transactions: list[TransactionInstance] = []
        self.fail_inserts_for: set[str] = set()
        self.fail_updates_for: set[str] = set()
        self.fail_listing = False
        self.rejected_rows: list[RuleFailure] = []

    def add_rule(self, rule: RecurringRule) -> None:
        with self._lock:
            self.rules[rule.id] = rule

    def list_due_rules(
        self,
        reference_date: date,
        on_invalid: Callable[[RuleFailure], None] | None = None,
    ) -> list[RecurringRule]:
        if self.fail_listing:
            raise RuleStoreError("Rule store unavailable")
        with self._lock:
            rejected = list(self.rejected_rows)
            due = [rule for rule in self.rules.values() if rule.is_due(reference_date)]
        if on_invalid:
            for failure in rejected:
                on_invalid(failure)
        return due

    def insert_transaction(self, instance: TransactionInstance) -> None:
        if instance.rule_id in self.fail_inserts_for:
            raise RuleStoreError(f"Insert rejected for rule {instance.rule_id}")
        with self._lock:
            self.transactions.append(instance)

    def update_next_run_date(self, rule_id: str, new_date: date) -> None:
        if rule_id in self.fail_updates_for:
            raise RuleStoreError(f"Update rejected for rule {rule_id}")
        with self._lock:
            rule = self.rules.get(rule_id)
            if rule is None:
                raise RuleStoreError(f"Recurring rule {rule_id} was not updated")
            self.rules[rule_id] = replace(rule, next_run_date=new_date)

    def transactions_for(self, rule_id: str) -> list[TransactionInstance]:
        with self._lock:
            return [tx for tx in self.transactions if tx.rule_id == rule_id]


class InMemoryRunLease:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._leases: dict[str, tuple[str, datetime]] = {}

    def acquire(self, name: str, ttl_seconds: int) -> str | None:
        now = utc_now()
        with self._lock:
            held = self._leases.get(name)
            if held and held[1] > now:
                return None
            token = uuid4().hex
            self._leases[name] = (token, now + timedelta(seconds=ttl_seconds))
            return token

    def release(self, name: str, token: str) -> None:
        with self._lock:
            held = self._leases.get(name)
            if held and held[0] == token:
                del self._leases[name]

    def renew(self, name: str, token: str, ttl_seconds: int) -> bool:
        with self._lock:
            held = self._leases.get(name)
            if not held or held[0] != token:
                return False
            self._leases[name] = (token, utc_now() + timedelta(seconds=ttl_seconds))
            return True

    def is_held(self, name: str) -> bool:
        with self._lock:
            held = self._leases.get(name)
            return bool(held and held[1] > utc_now())
