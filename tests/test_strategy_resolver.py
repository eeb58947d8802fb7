"""
Tests for StrategyResolver in railbook/services/strategy_resolver.py.

Runs strategy chains against a scripted FakePage.
"""

import asyncio

import pytest
from selenium.webdriver.common.by import By

from railbook.providers.base import InputMethod
from railbook.services.strategy_resolver import (
    Action,
    ResolveStatus,
    Strategy,
    StrategyResolver,
)
from tests.fixtures.fake_page import FakeElement, FakePage

FIRST = (By.CSS_SELECTOR, "button.first")
SECOND = (By.CSS_SELECTOR, "button.second")
FIELD = (By.CSS_SELECTOR, "input[type='password']")
DIALOG = (By.CSS_SELECTOR, "dialog")


class SleepingPage(FakePage):
    """FakePage whose pauses take real time."""

    async def pause(self, seconds: float) -> None:
        await super().pause(seconds)
        await asyncio.sleep(seconds)


@pytest.fixture
def page() -> FakePage:
    return FakePage("https://railapp.railway.gov.bd/splash/select-language")


@pytest.fixture
def resolver(page: FakePage) -> StrategyResolver:
    return StrategyResolver(page, outcome_timeout=0.1)


class TestResolveOrdering:
    """Tests for priority order and budgets."""

    @pytest.mark.asyncio
    async def test_empty_chain_is_unmatched(self, resolver: StrategyResolver) -> None:
        """An empty chain reports no match instead of raising."""
        resolution = await resolver.resolve([], budget=5.0)

        assert resolution.status == ResolveStatus.NO_STRATEGY_MATCHED
        assert not resolution.matched
        assert resolution.attempted == []

    @pytest.mark.asyncio
    async def test_first_visible_strategy_wins(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """Strategies are tried in order and the first visible one is used."""
        second = page.show(SECOND)

        resolution = await resolver.resolve(
            [Strategy("first", FIRST), Strategy("second", SECOND)], budget=5.0
        )

        assert resolution.matched
        assert resolution.strategy.description == "second"
        assert resolution.element is second
        assert resolution.attempted == ["first", "second"]
        assert page.clicks == [second]

    @pytest.mark.asyncio
    async def test_stops_after_first_match(self, page: FakePage, resolver: StrategyResolver) -> None:
        """Later strategies are not touched once one matches."""
        first = page.show(FIRST)
        page.show(SECOND)

        resolution = await resolver.resolve(
            [Strategy("first", FIRST), Strategy("second", SECOND)], budget=5.0
        )

        assert resolution.attempted == ["first"]
        assert page.clicks == [first]

    @pytest.mark.asyncio
    async def test_no_budget_tries_nothing(self, page: FakePage, resolver: StrategyResolver) -> None:
        """A spent budget ends the chain before any lookup."""
        page.show(FIRST)

        resolution = await resolver.resolve([Strategy("first", FIRST)], budget=0)

        assert not resolution.matched
        assert page.lookups == []

    @pytest.mark.asyncio
    async def test_interaction_error_moves_to_next(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """An exception from one strategy is swallowed and the next is tried."""
        broken = page.show(FIRST)
        page.show(SECOND)

        def explode() -> None:
            raise RuntimeError("element detached")

        page.on_click[broken] = explode

        resolution = await resolver.resolve(
            [Strategy("first", FIRST), Strategy("second", SECOND)], budget=5.0
        )

        assert resolution.strategy.description == "second"


class TestResolveOutcomes:
    """Tests for outcome checks after the action."""

    @pytest.mark.asyncio
    async def test_leaves_url_requires_navigation(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """A click that leaves the page on the same route does not count."""
        page.show(FIRST)

        resolution = await resolver.resolve(
            [Strategy("english", FIRST, leaves_url="/splash/select-language")], budget=5.0
        )

        assert not resolution.matched

    @pytest.mark.asyncio
    async def test_leaves_url_matches_after_navigation(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """A click that moves the URL on counts as a match."""
        element = page.show(FIRST)
        page.on_click[element] = lambda: setattr(
            page, "current_url", "https://railapp.railway.gov.bd/auth/login"
        )

        resolution = await resolver.resolve(
            [Strategy("english", FIRST, leaves_url="/splash/select-language", settle=3.0)],
            budget=5.0,
        )

        assert resolution.matched
        assert page.pauses == [3.0]

    @pytest.mark.asyncio
    async def test_scan_tries_every_visible_match(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """A scanning strategy clicks each visible match until one works."""
        hidden = FakeElement("hidden", displayed=False)
        decoy = FakeElement("decoy")
        target = FakeElement("target")
        page.all_matches[FIRST] = [hidden, decoy, target]
        page.on_click[target] = lambda: setattr(page, "current_url", "https://x/auth/login")

        resolution = await resolver.resolve(
            [Strategy("any button", FIRST, scan=True, leaves_url="/splash")], budget=5.0
        )

        assert resolution.element is target
        assert page.clicks == [decoy, target]

    @pytest.mark.asyncio
    async def test_scan_stops_when_its_time_is_spent(self) -> None:
        """A scan over many matches stops clicking once its timeout is used up."""
        page = SleepingPage("https://railapp.railway.gov.bd/splash/select-language")
        page.all_matches[FIRST] = [FakeElement(f"button {i}") for i in range(40)]
        resolver = StrategyResolver(page, outcome_timeout=0.1)
        strategy = Strategy(
            "any button", FIRST, scan=True, leaves_url="/splash", timeout=0.2, settle=0.05
        )

        resolution = await resolver.resolve([strategy], budget=0.2)

        assert not resolution.matched
        assert len(page.clicks) <= 10
        assert sum(page.pauses) <= 0.25

    @pytest.mark.asyncio
    async def test_reveals_requires_follow_up_element(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """A strategy expecting a dialog only matches once the dialog is visible."""
        element = page.show(FIRST)

        missing = await resolver.resolve([Strategy("open", FIRST, reveals=DIALOG)], budget=5.0)
        page.on_click[element] = lambda: page.show(DIALOG)
        found = await resolver.resolve([Strategy("open", FIRST, reveals=DIALOG)], budget=5.0)

        assert not missing.matched
        assert found.matched

    @pytest.mark.asyncio
    async def test_select_action(self, page: FakePage, resolver: StrategyResolver) -> None:
        """SELECT strategies pick the option by label."""
        element = page.show(FIRST)

        resolution = await resolver.resolve(
            [Strategy("gender", FIRST, action=Action.SELECT, value="Female")], budget=5.0
        )

        assert resolution.matched
        assert page.selections == [(element, "Female")]


class TestFillEscalation:
    """Tests for verified fills and input-method escalation."""

    @pytest.mark.asyncio
    async def test_unverified_fill_uses_first_method(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """Without verification the fastest method is used once."""
        field = page.show(FIELD)

        resolution = await resolver.resolve(
            [Strategy("age", FIELD, action=Action.FILL, value="30")], budget=5.0
        )

        assert resolution.input_method == InputMethod.DIRECT
        assert page.fills == [(field, "30", InputMethod.DIRECT)]

    @pytest.mark.asyncio
    async def test_escalates_when_characters_are_dropped(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """A value the mask truncates is re-entered with the next method."""
        page.show(FIELD)
        page.input_filter = lambda element, value, method: (
            value.replace("#", "") if method == InputMethod.DIRECT else value
        )

        resolution = await resolver.resolve(
            [Strategy("password", FIELD, action=Action.FILL, value="pa#ss", verify_value=True)],
            budget=5.0,
        )

        assert resolution.matched
        assert resolution.input_method == InputMethod.KEYSTROKES
        assert [method for _, _, method in page.fills] == [
            InputMethod.DIRECT,
            InputMethod.KEYSTROKES,
        ]

    @pytest.mark.asyncio
    async def test_unmatched_when_no_method_sticks(
        self, page: FakePage, resolver: StrategyResolver
    ) -> None:
        """If every input method drops characters the strategy fails."""
        page.show(FIELD)
        page.input_filter = lambda element, value, method: value[:-1]

        resolution = await resolver.resolve(
            [Strategy("password", FIELD, action=Action.FILL, value="secret", verify_value=True)],
            budget=5.0,
        )

        assert not resolution.matched
        assert len(page.fills) == 3
