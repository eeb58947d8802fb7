"""
Stages of the booking flow and the executor that runs one stage.

A stage first decides whether it applies to the page currently rendered
(many screens are conditional, e.g. coach selection), then works through its
steps. Each step is a strategy chain handed to the StrategyResolver.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from railbook.config import Settings
from railbook.errors import StageFailed, StrategyExhausted, TargetUnavailable
from railbook.models.flow import StageResult
from railbook.models.schemas import BookingRequest
from railbook.providers.base import BrowserPage, Locator
from railbook.services.deadline import Deadline
from railbook.services.strategy_resolver import Resolution, Strategy, StrategyResolver

logger = logging.getLogger(__name__)

DEFAULT_STEP_BUDGET_SECONDS = 30.0


@dataclass
class StageContext:
    """What a stage may touch. Side effects are confined to `page`."""

    page: BrowserPage
    # None only for standalone credential checks, which never read it
    request: BookingRequest | None
    settings: Settings
    resolver: StrategyResolver
    deadline: Deadline


@dataclass(frozen=True)
class StageStep:
    name: str
    strategies: tuple[Strategy, ...]
    required: bool = True
    budget: float = DEFAULT_STEP_BUDGET_SECONDS


class Stage:
    """
    One named step of the booking flow.

    The default behaviour probes `signals` for applicability and resolves
    `steps` in order. Screens that need loops or request-dependent selectors
    subclass and override `run` (and sometimes `is_applicable`).
    """

    name: str = "stage"
    required: bool = False
    signals: tuple[Locator, ...] = ()
    signal_timeout: float = 3.0
    steps: tuple[StageStep, ...] = ()

    def __init__(
        self,
        name: str | None = None,
        *,
        required: bool | None = None,
        signals: Sequence[Locator] | None = None,
        steps: Sequence[StageStep] | None = None,
    ) -> None:
        if name is not None:
            self.name = name
        if required is not None:
            self.required = required
        if signals is not None:
            self.signals = tuple(signals)
        if steps is not None:
            self.steps = tuple(steps)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, required={self.required})"

    async def is_applicable(self, ctx: StageContext) -> bool:
        if not self.signals:
            return True
        for signal in self.signals:
            timeout = ctx.deadline.bounded(self.signal_timeout)
            if await ctx.page.find_visible(signal, timeout) is not None:
                logger.debug(f"BOOKING_DEBUG: Stage '{self.name}' applies (found {signal[1]})")
                return True
        return False

    async def run(self, ctx: StageContext) -> str | None:
        """Resolve every step; returns the description of the last matched strategy."""
        last = None
        for step in self.steps:
            resolution = await self.resolve(
                ctx, step.name, step.strategies, step.required, step.budget
            )
            if resolution.matched:
                last = resolution.strategy.description
        return last

    async def resolve(
        self,
        ctx: StageContext,
        step: str,
        strategies: Sequence[Strategy],
        required: bool = True,
        budget: float = DEFAULT_STEP_BUDGET_SECONDS,
    ) -> Resolution:
        """Resolve one step, raising StrategyExhausted if a required step finds nothing."""
        resolution = await ctx.resolver.resolve(strategies, ctx.deadline.bounded(budget))
        if not resolution.matched:
            if required:
                raise StrategyExhausted(self.name, step, resolution.attempted)
            logger.info(f"BOOKING_DEBUG: Optional step '{step}' of '{self.name}' found nothing")
        return resolution


class StageExecutor:
    """Runs a single stage and turns its outcome into a StageResult."""

    async def execute(self, stage: Stage, ctx: StageContext) -> StageResult:
        if not await stage.is_applicable(ctx):
            logger.info(f"BOOKING_DEBUG: Stage '{stage.name}' not applicable, skipping")
            return StageResult.skipped(stage.name)

        logger.info(f"BOOKING_DEBUG: Stage '{stage.name}' started. URL: {await ctx.page.url()}")
        if ctx.settings.capture_diagnostics:
            await ctx.page.capture(f"{stage.name}_page")

        try:
            last_strategy = await stage.run(ctx)
        except StrategyExhausted as e:
            logger.warning(f"BOOKING_DEBUG: {e}")
            return StageResult.failed(stage.name, str(e), e.last_attempted)
        except StageFailed as e:
            logger.warning(f"BOOKING_DEBUG: {e}")
            return StageResult.failed(stage.name, e.reason, e.last_strategy)
        except TargetUnavailable as e:
            logger.warning(f"BOOKING_DEBUG: Stage '{stage.name}' lost the site: {e}")
            return StageResult.failed(stage.name, f"Target unavailable: {e}")

        logger.info(f"BOOKING_DEBUG: Stage '{stage.name}' advanced (last strategy: {last_strategy})")
        return StageResult.advanced(stage.name, last_strategy)
