"""
Ordered fallback resolution for one goal on the page.

The railway site's markup is unstable, so each goal ("find the continue
button", "fill the password") is expressed as a chain of candidate strategies.
The resolver tries them in priority order within a time budget and reports
which one matched.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from railbook.providers.base import BrowserPage, InputMethod, Locator

logger = logging.getLogger(__name__)

DEFAULT_INPUT_METHODS = (InputMethod.DIRECT, InputMethod.KEYSTROKES, InputMethod.CLIPBOARD)


class Action(str, Enum):
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    PRESENCE = "presence"


@dataclass(frozen=True)
class Strategy:
    """
    One attempt toward a goal: where to look, what to do, and what should follow.

    Attributes:
        description: Human-readable label, reported back for diagnostics.
        locator: Element to look for.
        action: What to do with the element once visible.
        value: Text for FILL, option label for SELECT.
        verify_value: For FILL, read the value back and escalate input methods until it matches.
        scan: Try every visible match of the locator instead of only the first.
        leaves_url: Success requires the URL to no longer contain this fragment.
        reveals: Success requires this locator to become visible.
        timeout: Upper bound on the wait for the element.
        settle: Pause after the action before checking the outcome.
    """

    description: str
    locator: Locator
    action: Action = Action.CLICK
    value: str | None = None
    verify_value: bool = False
    scan: bool = False
    leaves_url: str | None = None
    reveals: Locator | None = None
    timeout: float = 3.0
    settle: float = 0.0


class ResolveStatus(str, Enum):
    MATCHED = "matched"
    NO_STRATEGY_MATCHED = "no_strategy_matched"


@dataclass
class Resolution:
    status: ResolveStatus
    strategy: Strategy | None = None
    element: Any = None
    input_method: InputMethod | None = None
    attempted: list[str] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.status == ResolveStatus.MATCHED


class StrategyResolver:
    """Runs strategy chains against a page."""

    def __init__(
        self,
        page: BrowserPage,
        input_methods: Sequence[InputMethod] = DEFAULT_INPUT_METHODS,
        outcome_timeout: float = 5.0,
    ) -> None:
        self.page = page
        self.input_methods = tuple(input_methods)
        self.outcome_timeout = outcome_timeout

    async def resolve(self, strategies: Sequence[Strategy], budget: float) -> Resolution:
        """
        Try each strategy in order until one succeeds or the budget runs out.

        Never raises for lookup or interaction problems: those are logged and
        the next strategy is tried. An empty chain is simply unmatched.

        Args:
            strategies: Candidates in priority order.
            budget: Total seconds available for the whole chain.

        Returns:
            Resolution naming the matched strategy, or NO_STRATEGY_MATCHED.
        """
        loop = asyncio.get_running_loop()
        expires_at = loop.time() + budget
        attempted: list[str] = []

        for index, strategy in enumerate(strategies):
            remaining = expires_at - loop.time()
            if remaining <= 0:
                logger.debug(f"Budget exhausted before trying '{strategy.description}'")
                break

            left = len(strategies) - index
            timeout = min(strategy.timeout, remaining / left)
            attempted.append(strategy.description)

            try:
                resolution = await self._attempt(strategy, timeout)
            except Exception as e:
                logger.debug(f"Strategy '{strategy.description}' raised: {e}")
                continue

            if resolution is not None:
                resolution.attempted = attempted
                logger.info(f"Matched strategy: {strategy.description}")
                return resolution

            logger.debug(f"Strategy '{strategy.description}' did not match")

        return Resolution(status=ResolveStatus.NO_STRATEGY_MATCHED, attempted=attempted)

    async def _attempt(self, strategy: Strategy, timeout: float) -> Resolution | None:
        loop = asyncio.get_running_loop()
        expires_at = loop.time() + timeout
        if strategy.scan:
            candidates = await self._visible_matches(strategy.locator)
        else:
            element = await self.page.find_visible(strategy.locator, timeout)
            candidates = [element] if element is not None else []

        for index, element in enumerate(candidates):
            # A scan gets the strategy's time slice, not one slice per match
            remaining = expires_at - loop.time()
            if strategy.scan and index > 0 and remaining <= 0:
                logger.debug(
                    f"Scan for '{strategy.description}' out of time after {index} of "
                    f"{len(candidates)} matches"
                )
                break
            method = await self._perform(strategy, element)
            if method is False:
                continue
            settle = strategy.settle
            if strategy.scan:
                settle = min(settle, max(expires_at - loop.time(), 0.0))
            if await self._outcome_reached(strategy, settle):
                return Resolution(
                    status=ResolveStatus.MATCHED,
                    strategy=strategy,
                    element=element,
                    input_method=method or None,
                )
        return None

    async def _visible_matches(self, locator: Locator) -> list[Any]:
        visible = []
        for element in await self.page.find_all(locator):
            if await self.page.is_visible(element):
                visible.append(element)
        return visible

    async def _perform(self, strategy: Strategy, element: Any) -> InputMethod | bool | None:
        """Run the strategy's action. Returns False when a verified fill never sticks."""
        if strategy.action == Action.CLICK:
            await self.page.click(element)
        elif strategy.action == Action.SELECT:
            await self.page.select_option(element, strategy.value or "")
        elif strategy.action == Action.FILL:
            return await self._fill(strategy, element)
        return None

    async def _fill(self, strategy: Strategy, element: Any) -> InputMethod | bool:
        value = strategy.value or ""
        if not strategy.verify_value:
            await self.page.fill(element, value, self.input_methods[0])
            return self.input_methods[0]

        for method in self.input_methods:
            try:
                await self.page.fill(element, value, method)
                entered = await self.page.read_value(element)
            except Exception as e:
                logger.debug(f"Input method {method.value} raised for '{strategy.description}': {e}")
                continue
            if entered == value:
                logger.debug(f"Value for '{strategy.description}' verified via {method.value}")
                return method
            logger.warning(
                f"Input method {method.value} entered {len(entered)} of {len(value)} characters "
                f"for '{strategy.description}', escalating"
            )
        return False

    async def _outcome_reached(self, strategy: Strategy, settle: float) -> bool:
        if settle > 0:
            await self.page.pause(settle)

        if strategy.leaves_url is not None:
            current = await self.page.url()
            if strategy.leaves_url in current:
                logger.debug(f"Still on '{strategy.leaves_url}' after '{strategy.description}'")
                return False

        if strategy.reveals is not None:
            revealed = await self.page.find_visible(strategy.reveals, self.outcome_timeout)
            if revealed is None:
                return False

        return True
