"""
Sequential driver for a booking run.

Runs stages one after another on a single page, stops on the first failed
required stage, and hands control to a human when the site asks for a
one-time passcode. While the human works, the controller only watches the
page; it never clicks or types.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from railbook.config import Settings, settings as default_settings
from railbook.models.flow import FlowOutcome, ManualStepKind, StageResult, StageStatus
from railbook.models.schemas import BookingRequest
from railbook.providers.base import BrowserPage, Locator
from railbook.services.deadline import Deadline
from railbook.services.stage_executor import Stage, StageContext, StageExecutor
from railbook.services.strategy_resolver import StrategyResolver

logger = logging.getLogger(__name__)

MIN_STAGE_BUDGET_SECONDS = 5.0
MANUAL_STEP_PROBE_SECONDS = 0.5

ManualStepCallback = Callable[[ManualStepKind, datetime], Awaitable[None]]


@dataclass(frozen=True)
class ManualStepSpec:
    """
    How to recognise a point where a human has to take over.

    Attributes:
        kind: What the human is asked to do.
        signals: Any of these visible means the manual step is pending.
        success_signals: Any of these visible means the run finished.
        route_fragment: URL fragment of the manual-step screen. Once the signals
            are gone and the URL no longer contains it, the step is considered
            done and the remaining stages resume.
    """

    kind: ManualStepKind
    signals: tuple[Locator, ...]
    success_signals: tuple[Locator, ...] = ()
    route_fragment: str | None = None


class FlowController:
    def __init__(
        self,
        config: Settings | None = None,
        manual_steps: Sequence[ManualStepSpec] = (),
        on_manual_step: ManualStepCallback | None = None,
        executor: StageExecutor | None = None,
        poll_seconds: float | None = None,
        max_wait_seconds: float | None = None,
    ) -> None:
        self.settings = config or default_settings
        self.manual_steps = tuple(manual_steps)
        self.on_manual_step = on_manual_step
        self.executor = executor or StageExecutor()
        self.poll_seconds = (
            poll_seconds if poll_seconds is not None else self.settings.manual_step_poll_seconds
        )
        self.max_wait_seconds = (
            max_wait_seconds
            if max_wait_seconds is not None
            else self.settings.manual_step_max_wait_seconds
        )

    async def run(
        self,
        request: BookingRequest,
        stages: Sequence[Stage],
        page: BrowserPage,
        deadline: Deadline | None = None,
    ) -> FlowOutcome:
        """
        Drive `stages` in order against `page`.

        Args:
            request: Validated booking inputs, shared read-only by every stage.
            stages: Stage sequence, in site order.
            page: The one page this run owns.
            deadline: Overall budget; defaults to RUN_TIMEOUT_SECONDS.

        Returns:
            Completed, AwaitingManualStep (only when the human wait timed out)
            or Failed naming the stage that halted the run.
        """
        deadline = deadline or Deadline(self.settings.run_timeout_seconds)
        ctx = StageContext(
            page=page,
            request=request,
            settings=self.settings,
            resolver=StrategyResolver(page),
            deadline=deadline,
        )
        results: list[StageResult] = []

        logger.info(
            f"BOOKING_DEBUG: Starting run for {request.train_name} "
            f"{request.origin} -> {request.destination} on {request.travel_date}"
        )

        for stage in stages:
            if deadline.remaining() < MIN_STAGE_BUDGET_SECONDS:
                logger.error(
                    f"BOOKING_DEBUG: Deadline exceeded before stage '{stage.name}' "
                    f"({deadline.remaining():.1f}s left)"
                )
                return FlowOutcome.failed(
                    stage.name, "deadline exceeded", stage_results=tuple(results)
                )

            result = await self.executor.execute(stage, ctx)
            results.append(result)

            if result.status == StageStatus.FAILED:
                if stage.required:
                    logger.error(
                        f"BOOKING_DEBUG: Required stage '{stage.name}' failed: {result.reason}"
                    )
                    return FlowOutcome.failed(
                        stage.name,
                        result.reason or "stage failed",
                        result.last_strategy,
                        tuple(results),
                    )
                logger.warning(
                    f"BOOKING_DEBUG: Optional stage '{stage.name}' failed, "
                    f"continuing: {result.reason}"
                )

            spec = await self._pending_manual_step(page, deadline)
            if spec is not None:
                outcome = await self._await_manual_step(
                    spec, stage.name, page, deadline, results
                )
                if outcome is not None:
                    return outcome

        logger.info("BOOKING_DEBUG: All stages finished")
        return FlowOutcome.completed(tuple(results))

    async def _pending_manual_step(
        self, page: BrowserPage, deadline: Deadline
    ) -> ManualStepSpec | None:
        probe = deadline.bounded(MANUAL_STEP_PROBE_SECONDS)
        for spec in self.manual_steps:
            if await self._any_visible(page, spec.signals, probe):
                return spec
        return None

    async def _await_manual_step(
        self,
        spec: ManualStepSpec,
        stage: str,
        page: BrowserPage,
        deadline: Deadline,
        results: list[StageResult],
    ) -> FlowOutcome | None:
        """
        Watch the page while a human completes the manual step.

        Returns the terminal outcome, or None when the step was completed and
        the remaining stages should run.
        """
        loop = asyncio.get_running_loop()
        wait_seconds = deadline.bounded(self.max_wait_seconds)
        manual_deadline = deadline.wall_clock(self.max_wait_seconds)
        expires_at = loop.time() + wait_seconds

        logger.info(
            f"BOOKING_DEBUG: Manual step '{spec.kind.value}' required after '{stage}'. "
            f"Waiting until {manual_deadline.isoformat(timespec='seconds')}"
        )
        if self.on_manual_step is not None:
            await self.on_manual_step(spec.kind, manual_deadline)

        polls = 0
        while True:
            if await self._any_visible(page, spec.success_signals, 0):
                logger.info(f"BOOKING_DEBUG: Success signal seen after {polls} polls")
                return FlowOutcome.completed(tuple(results))

            if not await self._any_visible(page, spec.signals, 0):
                current_url = await page.url()
                fragment = spec.route_fragment
                if fragment is None or fragment not in current_url.lower():
                    logger.info(
                        f"BOOKING_DEBUG: Manual step '{spec.kind.value}' done, "
                        f"resuming at {current_url}"
                    )
                    return None

            remaining = expires_at - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_seconds, remaining))
            polls += 1

        logger.warning(
            f"BOOKING_DEBUG: Manual step '{spec.kind.value}' not completed "
            f"within {wait_seconds:.0f}s"
        )
        return FlowOutcome.awaiting_manual_step(
            spec.kind,
            manual_deadline,
            stage=stage,
            timed_out=True,
            stage_results=tuple(results),
        )

    @staticmethod
    async def _any_visible(page: BrowserPage, locators: Sequence[Locator], timeout: float) -> bool:
        for locator in locators:
            if await page.find_visible(locator, timeout) is not None:
                return True
        return False
