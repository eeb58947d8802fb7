"""
Exception hierarchy for the booking flow.

Only exhaustion at the stage level is meant to travel upward. Per-strategy
lookup misses are logged and swallowed by the resolver, and the manual-step
timeout is reported through FlowOutcome rather than raised.
"""


class BookingError(Exception):
    """Base class for all railbook errors."""


class ConfigurationError(BookingError):
    """A required configuration value is missing or malformed."""


class TargetUnavailable(BookingError):
    """The railway site is unreachable or returned an unexpected structure."""


class StrategyExhausted(BookingError):
    """Every strategy for a required step of a stage failed."""

    def __init__(self, stage: str, step: str, attempted: list[str] | None = None) -> None:
        self.stage = stage
        self.step = step
        self.attempted = list(attempted or [])
        super().__init__(
            f"No strategy matched for step '{step}' of stage '{stage}' "
            f"(tried {len(self.attempted)})"
        )

    @property
    def last_attempted(self) -> str | None:
        return self.attempted[-1] if self.attempted else None


class StageFailed(BookingError):
    """A required stage could not complete; fatal to the run."""

    def __init__(self, stage: str, reason: str, last_strategy: str | None = None) -> None:
        self.stage = stage
        self.reason = reason
        self.last_strategy = last_strategy
        message = f"Stage '{stage}' failed: {reason}"
        if last_strategy:
            message += f" (last strategy: {last_strategy})"
        super().__init__(message)
