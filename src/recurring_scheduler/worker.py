import argparse
import logging
import sys
from datetime import date
from functools import lru_cache

from recurring_scheduler.config import settings
from recurring_scheduler.errors import RuleListError, RunInProgressError
from recurring_scheduler.models import RunResult
from recurring_scheduler.repositories.base import RuleStoreGateway, RunLock
from recurring_scheduler.repositories.leases import SupabaseRunLease
from recurring_scheduler.repositories.memory import InMemoryRuleStore, InMemoryRunLease
from recurring_scheduler.repositories.recurring_rules import SupabaseRuleStore
from recurring_scheduler.services.recurring.scheduler import RecurringScheduler

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_rule_store() -> RuleStoreGateway:
    if settings.rule_store_backend == "memory":
        return InMemoryRuleStore()
    return SupabaseRuleStore()


@lru_cache(maxsize=1)
def get_run_lock() -> RunLock:
    if settings.rule_store_backend == "memory":
        return InMemoryRunLease()
    return SupabaseRunLease()


def build_scheduler() -> RecurringScheduler:
    return RecurringScheduler(
        get_rule_store(),
        run_lock=get_run_lock(),
        max_workers=settings.recurring_max_workers,
        lease_seconds=settings.recurring_lease_seconds,
    )


def run_recurring_job(reference_date: date | None = None) -> RunResult:
    return build_scheduler().run(reference_date)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Materialize due recurring transactions once."
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Reference date (YYYY-MM-DD, UTC). Defaults to today.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.log_level)
    args = _parse_args(argv)

    try:
        result = run_recurring_job(args.date)
    except RuleListError:
        logger.error("Recurring run aborted: due rules could not be loaded.")
        return 1
    except RunInProgressError as exc:
        logger.warning("Recurring run skipped: %s", exc)
        return 2

    if result.has_failures:
        logger.warning(
            "Recurring run finished with %d insert failures, %d advance failures "
            "and %d unreadable rules.",
            len(result.insert_failures),
            len(result.advance_failures),
            len(result.invalid_rules),
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
