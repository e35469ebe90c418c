"""Exceptions raised by the recurring scheduler and its gateways."""


class SchedulerError(RuntimeError):
    """Base class for scheduler failures."""


class RuleListError(SchedulerError):
    """Due rules could not be enumerated; the run is aborted."""


class RunInProgressError(SchedulerError):
    """Another run currently holds the run lease."""


class RuleStoreError(SchedulerError):
    """A write against the rule store did not take effect."""


class InvalidRuleError(SchedulerError):
    """A stored rule row is missing required fields or holds bad values."""

    def __init__(self, rule_id: str | None, message: str) -> None:
        super().__init__(f"Rule {rule_id or '<unknown>'}: {message}")
        self.rule_id = rule_id
