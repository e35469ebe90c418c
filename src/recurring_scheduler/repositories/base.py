"""Contracts the scheduler consumes from its storage collaborators."""

from collections.abc import Callable
from datetime import date
from typing import Protocol

from recurring_scheduler.models import RecurringRule, RuleFailure, TransactionInstance


class RuleStoreGateway(Protocol):
    def list_due_rules(
        self,
        reference_date: date,
        on_invalid: Callable[[RuleFailure], None] | None = None,
    ) -> list[RecurringRule]:
        """
        Unpaused rules whose next run date is on or before ``reference_date``.

        Stored rows that fail validation are left out and passed to
        ``on_invalid``.
        """
        ...

    def insert_transaction(self, instance: TransactionInstance) -> None:
        """Append one transaction. Raises if nothing was written."""
        ...

    def update_next_run_date(self, rule_id: str, new_date: date) -> None:
        """Move one rule's next run date. Raises if the rule was not updated."""
        ...


class RunLock(Protocol):
    def acquire(self, name: str, ttl_seconds: int) -> str | None:
        """Return a lease token, or None when the lease is held elsewhere."""
        ...

    def release(self, name: str, token: str) -> None:
        ...

    def renew(self, name: str, token: str, ttl_seconds: int) -> bool:
        """Push the lease expiry forward. False when ``token`` no longer holds it."""
        ...
