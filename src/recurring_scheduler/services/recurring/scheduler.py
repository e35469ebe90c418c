"""Materializes due recurring rules into transactions and advances their schedules."""

import logging
import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date

from recurring_scheduler.errors import RuleListError, RunInProgressError
from recurring_scheduler.models import (
    ADVANCE_STAGE,
    INSERT_STAGE,
    RecurringRule,
    RuleFailure,
    RunResult,
    TransactionInstance,
)
from recurring_scheduler.repositories.base import RuleStoreGateway, RunLock
from recurring_scheduler.services.recurring.date_advancer import (
    advance,
    is_known_frequency,
)
from recurring_scheduler.utils.time import utc_today

logger = logging.getLogger(__name__)

RUN_LEASE_NAME = "recurring-run"
DEFAULT_LEASE_SECONDS = 900


@dataclass(frozen=True)
class RuleOutcome:
    rule_id: str
    in_window: bool = True
    created: bool = False
    advanced: bool = False
    failure: RuleFailure | None = None
    frequency_fallback: bool = False


class _LeaseHeartbeat(threading.Thread):
    """Renews a held lease until stopped, so long runs are not taken over as stale."""

    def __init__(
        self, lock: RunLock, name: str, token: str, ttl_seconds: int, interval: float
    ) -> None:
        super().__init__(name=f"lease-heartbeat-{name}", daemon=True)
        self.lock = lock
        self.lease_name = name
        self.token = token
        self.ttl_seconds = ttl_seconds
        self.interval = interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                renewed = self.lock.renew(self.lease_name, self.token, self.ttl_seconds)
            except Exception:
                logger.exception("Failed to renew lease %s; retrying.", self.lease_name)
                continue
            if not renewed:
                logger.error(
                    "Lease %s was lost mid-run; an overlapping run may start.",
                    self.lease_name,
                )
                return

    def stop(self) -> None:
        self._stopped.set()
        self.join()


@contextmanager
def hold_run_lease(
    lock: RunLock,
    name: str,
    ttl_seconds: int,
    renew_interval: float | None = None,
) -> Iterator[str]:
    token = lock.acquire(name, ttl_seconds)
    if not token:
        raise RunInProgressError(f"Lease {name} is held by another run")
    interval = renew_interval if renew_interval is not None else ttl_seconds / 3
    heartbeat = None
    if interval > 0:
        heartbeat = _LeaseHeartbeat(lock, name, token, ttl_seconds, interval)
        heartbeat.start()
    try:
        yield token
    finally:
        if heartbeat:
            heartbeat.stop()
        try:
            lock.release(name, token)
        except Exception:
            logger.exception("Failed to release lease %s; it expires after %ss.", name, ttl_seconds)


class RecurringScheduler:
    """
    Runs one pass over the due recurring rules.

    Each rule is handled on its own: the transaction insert must succeed
    before the rule's next run date is advanced. A rule whose insert fails
    keeps its date and is retried by the next run. Only a failure to list
    the due rules aborts the run.
    """

    def __init__(
        self,
        gateway: RuleStoreGateway,
        *,
        run_lock: RunLock | None = None,
        max_workers: int = 1,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
    ) -> None:
        self.gateway = gateway
        self.run_lock = run_lock
        self.max_workers = max(1, max_workers)
        self.lease_seconds = lease_seconds

    def run(self, reference_date: date | None = None) -> RunResult:
        reference_date = reference_date or utc_today()
        if self.run_lock is None:
            return self._run(reference_date)
        with hold_run_lease(self.run_lock, RUN_LEASE_NAME, self.lease_seconds):
            return self._run(reference_date)

    def _run(self, reference_date: date) -> RunResult:
        result = RunResult(reference_date=reference_date)

        try:
            rules = self.gateway.list_due_rules(
                reference_date, on_invalid=result.invalid_rules.append
            )
        except Exception as exc:
            logger.exception("Failed to load recurring rules for %s", reference_date)
            raise RuleListError(f"Failed to load recurring rules: {exc}") from exc

        if result.invalid_rules:
            logger.warning(
                "%d recurring rules on %s could not be read and were skipped",
                len(result.invalid_rules),
                reference_date,
            )
        if not rules:
            logger.info("No recurring rules due on %s", reference_date)
            return result

        logger.info("Processing %d recurring rules due on %s", len(rules), reference_date)
        for outcome in self._process_all(rules, reference_date):
            _record(result, outcome)

        logger.info(
            "Recurring run %s: considered=%d created=%d advanced=%d "
            "insert_failures=%d advance_failures=%d",
            reference_date,
            result.rules_considered,
            result.transactions_created,
            result.rules_advanced,
            len(result.insert_failures),
            len(result.advance_failures),
        )
        return result

    def _process_all(
        self, rules: list[RecurringRule], reference_date: date
    ) -> list[RuleOutcome]:
        if self.max_workers == 1 or len(rules) == 1:
            return [self.process_rule(rule, reference_date) for rule in rules]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(
                pool.map(lambda rule: self.process_rule(rule, reference_date), rules)
            )

    def process_rule(self, rule: RecurringRule, reference_date: date) -> RuleOutcome:
        if not rule.is_within_window(reference_date):
            logger.info("Rule %s is outside its active window on %s", rule.id, reference_date)
            return RuleOutcome(rule_id=rule.id, in_window=False)

        instance = TransactionInstance.from_rule(rule, reference_date)
        try:
            self.gateway.insert_transaction(instance)
        except Exception as exc:
            logger.exception("Failed to create transaction for rule %s", rule.id)
            return RuleOutcome(
                rule_id=rule.id,
                failure=RuleFailure(rule.id, INSERT_STAGE, str(exc)),
            )

        fallback = not is_known_frequency(rule.frequency)
        next_run_date = advance(
            rule.next_run_date,
            rule.frequency,
            rule.interval,
            day_of_month=rule.day_of_month,
        )
        try:
            self.gateway.update_next_run_date(rule.id, next_run_date)
        except Exception as exc:
            logger.error(
                "Rule %s was materialized on %s but next_run_date was not advanced "
                "to %s; the next run may create it again: %s",
                rule.id,
                reference_date,
                next_run_date,
                exc,
                exc_info=True,
            )
            return RuleOutcome(
                rule_id=rule.id,
                created=True,
                failure=RuleFailure(rule.id, ADVANCE_STAGE, str(exc)),
                frequency_fallback=fallback,
            )

        return RuleOutcome(
            rule_id=rule.id, created=True, advanced=True, frequency_fallback=fallback
        )


def _record(result: RunResult, outcome: RuleOutcome) -> None:
    if not outcome.in_window:
        result.rules_outside_window += 1
        return

    result.rules_considered += 1
    if outcome.created:
        result.transactions_created += 1
    if outcome.advanced:
        result.rules_advanced += 1
    if outcome.frequency_fallback:
        result.frequency_fallbacks.append(outcome.rule_id)
    if outcome.failure is None:
        return
    if outcome.failure.stage == INSERT_STAGE:
        result.insert_failures.append(outcome.failure)
    else:
        result.advance_failures.append(outcome.failure)
