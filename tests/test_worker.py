"""Tests for the command-line worker and its wiring."""

from datetime import date
from unittest.mock import patch

from recurring_scheduler import worker
from recurring_scheduler.errors import RuleListError, RunInProgressError
from recurring_scheduler.models import RuleFailure, RunResult
from recurring_scheduler.repositories.memory import InMemoryRuleStore, InMemoryRunLease
from recurring_scheduler.repositories.recurring_rules import SupabaseRuleStore


class TestWorkerMain:
    @patch("recurring_scheduler.worker.run_recurring_job")
    def test_runs_with_date_override(self, mock_run):
        mock_run.return_value = RunResult(reference_date=date(2025, 11, 5))

        assert worker.main(["--date", "2025-11-05"]) == 0
        mock_run.assert_called_once_with(date(2025, 11, 5))

    @patch("recurring_scheduler.worker.run_recurring_job")
    def test_defaults_to_today(self, mock_run):
        mock_run.return_value = RunResult(reference_date=date(2025, 11, 5))

        assert worker.main([]) == 0
        mock_run.assert_called_once_with(None)

    @patch("recurring_scheduler.worker.run_recurring_job")
    def test_rule_failures_do_not_fail_the_process(self, mock_run):
        mock_run.return_value = RunResult(
            reference_date=date(2025, 11, 5),
            rules_considered=1,
            insert_failures=[RuleFailure("rule-1", "insert", "timeout")],
        )
        assert worker.main([]) == 0

    @patch("recurring_scheduler.worker.run_recurring_job")
    def test_list_failure_exit_code(self, mock_run):
        mock_run.side_effect = RuleListError("database unavailable")
        assert worker.main([]) == 1

    @patch("recurring_scheduler.worker.run_recurring_job")
    def test_run_in_progress_exit_code(self, mock_run):
        mock_run.side_effect = RunInProgressError("held")
        assert worker.main([]) == 2


class TestWiring:
    def setup_method(self):
        worker.get_rule_store.cache_clear()
        worker.get_run_lock.cache_clear()

    def teardown_method(self):
        worker.get_rule_store.cache_clear()
        worker.get_run_lock.cache_clear()

    @patch("recurring_scheduler.worker.settings")
    def test_memory_backend(self, mock_settings):
        mock_settings.rule_store_backend = "memory"
        assert isinstance(worker.get_rule_store(), InMemoryRuleStore)
        assert isinstance(worker.get_run_lock(), InMemoryRunLease)

    @patch("recurring_scheduler.worker.settings")
    def test_supabase_backend(self, mock_settings):
        mock_settings.rule_store_backend = "supabase"
        assert isinstance(worker.get_rule_store(), SupabaseRuleStore)

    @patch("recurring_scheduler.worker.settings")
    def test_build_scheduler_uses_settings(self, mock_settings):
        mock_settings.rule_store_backend = "memory"
        mock_settings.recurring_max_workers = 4
        mock_settings.recurring_lease_seconds = 120

        scheduler = worker.build_scheduler()

        assert scheduler.max_workers == 4
        assert scheduler.lease_seconds == 120
        assert isinstance(scheduler.run_lock, InMemoryRunLease)
