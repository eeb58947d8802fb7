"""
Booking stages for the Bangladesh Railway web app, in site order.

Each stage wraps one screen. Locators come from railway_dom_schema; what to
type and which seats to try come from the BookingRequest in the stage context.
"""

import logging
from typing import Any
from urllib.parse import urlencode

from railbook.errors import StageFailed, StrategyExhausted
from railbook.models.flow import ManualStepKind
from railbook.providers.base import Locator
from railbook.providers.railway_dom_schema import DOM, fill
from railbook.services.flow_controller import ManualStepSpec
from railbook.services.seat_allocator import candidate_plans
from railbook.services.stage_executor import Stage, StageContext, StageStep
from railbook.services.strategy_resolver import Action, Strategy

logger = logging.getLogger(__name__)

LOGIN_SETTLE_SECONDS = 3.0
LOGIN_LOADING_WAIT_SECONDS = 5.0
SEARCH_RESULTS_TIMEOUT_SECONDS = 15.0
SEAT_LOOKUP_SECONDS = 1.0
SEAT_STEP_BUDGET_SECONDS = 6.0
PASSENGER_FIELD_BUDGET_SECONDS = 10.0

OTP_STEP = ManualStepSpec(
    kind=ManualStepKind.OTP,
    signals=DOM.OTP.signals,
    success_signals=DOM.OTP.success_signals,
    route_fragment=DOM.OTP.route_fragment,
)


def click_chain(label: str, locators: tuple[Locator, ...], **options: Any) -> tuple[Strategy, ...]:
    """One click strategy per locator, described as `label (expression)`."""
    return tuple(Strategy(f"{label} ({loc[1]})", loc, **options) for loc in locators)


def fill_chain(
    label: str, locators: tuple[Locator, ...], value: str, **options: Any
) -> tuple[Strategy, ...]:
    return tuple(
        Strategy(f"{label} ({loc[1]})", loc, action=Action.FILL, value=value, **options)
        for loc in locators
    )


async def first_visible_text(
    ctx: StageContext, locators: tuple[Locator, ...], timeout: float
) -> str | None:
    """Text of the first visible match (or its locator if it has none); None if nothing shows."""
    for locator in locators:
        element = await ctx.page.find_visible(locator, ctx.deadline.bounded(timeout))
        if element is not None:
            return (await ctx.page.text_of(element)).strip() or locator[1]
    return None


async def perform_login(stage: Stage, ctx: StageContext) -> str | None:
    """
    Fill and submit the login form.

    Mobile number and password are read back after entry and re-entered with a
    slower input method when the site's input masks drop characters (passwords
    containing '#' are the usual victim).

    Raises:
        StageFailed: credentials are missing or the site keeps us on the login page.
    """
    username = ctx.settings.railway_username
    password = ctx.settings.railway_password
    if not username or not password:
        raise StageFailed(stage.name, "RAILWAY_USERNAME and RAILWAY_PASSWORD are not configured")

    logger.info(f"BOOKING_DEBUG: Logging in as {username[:3]}***")
    await stage.resolve(
        ctx,
        "mobile number",
        fill_chain("mobile input", DOM.LOGIN.mobile_inputs, username, verify_value=True),
    )
    await stage.resolve(
        ctx,
        "password",
        fill_chain("password input", DOM.LOGIN.password_inputs, password, verify_value=True),
    )

    submit = await stage.resolve(
        ctx, "submit", click_chain("login button", DOM.LOGIN.submit_buttons), required=False
    )
    if submit.matched:
        last = submit.strategy.description
    else:
        logger.info("BOOKING_DEBUG: Login button not clickable, pressing Enter")
        await ctx.page.press("ENTER")
        last = "enter key"

    await ctx.page.pause(ctx.deadline.bounded(LOGIN_SETTLE_SECONDS))
    if DOM.LOGIN.route not in await ctx.page.url():
        logger.info(f"BOOKING_DEBUG: Login successful. Current URL: {await ctx.page.url()}")
        return last

    if await first_visible_text(ctx, DOM.LOGIN.loading_indicators, 2.0) is not None:
        logger.info("BOOKING_DEBUG: Login still processing, waiting")
        await ctx.page.pause(ctx.deadline.bounded(LOGIN_LOADING_WAIT_SECONDS))
        if DOM.LOGIN.route not in await ctx.page.url():
            return last

    if await first_visible_text(ctx, DOM.LOGIN.captcha_indicators, 1.0) is not None:
        logger.warning("BOOKING_DEBUG: Login page shows a captcha or verification prompt")

    error_text = await first_visible_text(ctx, DOM.LOGIN.error_messages, 1.0)
    await ctx.page.capture("login_error")
    if error_text:
        raise StageFailed(stage.name, f"Still on login page: {error_text}", last)
    raise StageFailed(stage.name, "Still on login page after submitting", last)


class LanguageStage(Stage):
    name = "language"

    async def is_applicable(self, ctx: StageContext) -> bool:
        return DOM.SPLASH.route in await ctx.page.url()

    async def run(self, ctx: StageContext) -> str | None:
        # Splash animation before the picker shows up
        await ctx.page.pause(ctx.deadline.bounded(2.0))
        if DOM.SPLASH.route not in await ctx.page.url():
            return None

        strategies = click_chain(
            "language option",
            DOM.SPLASH.language_options,
            scan=True,
            leaves_url=DOM.SPLASH.language_route,
            settle=3.0,
            timeout=15.0,
        )
        resolution = await self.resolve(ctx, "language", strategies, required=False, budget=60.0)
        if resolution.matched:
            return resolution.strategy.description

        logger.info("BOOKING_DEBUG: No language option worked, navigating directly")
        await ctx.page.goto(f"{ctx.settings.railway_base_url}/")
        return "direct navigation"


def terms_stage(name: str) -> Stage:
    """The terms dialog; shown on first visit and again after login."""
    return Stage(
        name,
        required=False,
        signals=(DOM.TERMS.dialog,),
        steps=(StageStep("agree", click_chain("terms agree", DOM.TERMS.agree_buttons, settle=1.0)),),
    )


class LoginStage(Stage):
    name = "login"
    required = True

    async def is_applicable(self, ctx: StageContext) -> bool:
        return DOM.LOGIN.route in await ctx.page.url()

    async def run(self, ctx: StageContext) -> str | None:
        return await perform_login(self, ctx)


class TrainSearchStage(Stage):
    """Open the search results and click BOOK NOW for the configured train."""

    name = "train_search"
    required = True

    def search_url(self, ctx: StageContext) -> str:
        query = urlencode(ctx.request.search_params())
        return f"{ctx.settings.railway_base_url}/search?{query}"

    def book_strategies(self, ctx: StageContext) -> tuple[Strategy, ...]:
        request = ctx.request
        train_button = fill(
            DOM.SEARCH.train_class_book_button,
            train=request.train_name,
            travel_class=request.travel_class,
        )
        strategies = [
            Strategy(
                f"{request.train_name} {request.travel_class} book button",
                train_button,
                timeout=5.0,
                settle=3.0,
            ),
            Strategy("any seats-layout book button", DOM.SEARCH.any_book_button, settle=3.0),
            Strategy(
                f"{request.travel_class} book button",
                fill(DOM.SEARCH.class_book_button, travel_class=request.travel_class),
                settle=3.0,
            ),
        ]
        for other in DOM.SEARCH.other_classes:
            if other != request.travel_class:
                strategies.append(
                    Strategy(
                        f"{other} book button",
                        fill(DOM.SEARCH.class_book_button, travel_class=other),
                        timeout=1.0,
                        settle=3.0,
                    )
                )
        return tuple(strategies)

    async def run(self, ctx: StageContext) -> str | None:
        last = await self._search_and_book(ctx)
        if DOM.LOGIN.route not in await ctx.page.url():
            return last

        logger.info("BOOKING_DEBUG: Booking redirected to login, logging in and searching again")
        await perform_login(self, ctx)
        terms = terms_stage("accept_terms_after_login")
        if await terms.is_applicable(ctx):
            await terms.run(ctx)

        last = await self._search_and_book(ctx)
        if DOM.LOGIN.route in await ctx.page.url():
            raise StageFailed(self.name, "Redirected to login again after logging in", last)
        return last

    async def _search_and_book(self, ctx: StageContext) -> str:
        url = self.search_url(ctx)
        logger.info(f"BOOKING_DEBUG: Searching trains: {url}")
        await ctx.page.goto(url)
        await first_visible_text(ctx, DOM.SEARCH.results_loaded, SEARCH_RESULTS_TIMEOUT_SECONDS)

        resolution = await self.resolve(
            ctx, "book", self.book_strategies(ctx), required=False, budget=45.0
        )
        if resolution.matched:
            return resolution.strategy.description

        await self._log_trains_on_page(ctx)
        raise StrategyExhausted(self.name, "book", resolution.attempted)

    async def _log_trains_on_page(self, ctx: StageContext) -> None:
        headings = await ctx.page.find_all(DOM.SEARCH.train_headings)
        names = [(await ctx.page.text_of(heading)).strip() for heading in headings[:15]]
        logger.warning(
            f"BOOKING_DEBUG: No book button for {ctx.request.train_name}. "
            f"Trains on page: {[name for name in names if name]}"
        )


class CoachSelectionStage(Stage):
    name = "coach_selection"
    signals = DOM.COACH.signals
    steps = (
        StageStep("coach", click_chain("coach", DOM.COACH.coach_options, timeout=2.0, settle=2.0)),
        StageStep(
            "continue", click_chain("coach continue", DOM.COACH.continue_buttons), required=False
        ),
    )


class SeatSelectionStage(Stage):
    """
    Select `seat_count` seats on the seat map.

    Seats are tried plan by plan: the preferred seats, then the generated
    backup patterns. Whatever is still missing is topped up with any seat the
    map marks as available.
    """

    name = "seat_selection"
    required = True
    signals = DOM.SEATS.signals

    async def run(self, ctx: StageContext) -> str | None:
        await self._dismiss_overlays(ctx)

        count = ctx.request.seat_count
        selected: list[str] = []
        clicked: list[Any] = []
        for plan in candidate_plans(ctx.request.preferred_seats, count):
            for seat in plan.seats:
                if len(selected) >= count:
                    break
                if seat in selected:
                    continue
                element = await self._select_seat(ctx, seat, clicked)
                if element is not None:
                    selected.append(seat)
                    clicked.append(element)
            if len(selected) >= count:
                break
            if plan.seats:
                logger.info(
                    f"BOOKING_DEBUG: {plan.source.value} plan filled {len(selected)}/{count} seats"
                )

        topped_up = await self._select_any_available(ctx, count - len(selected), clicked)
        picked = len(selected) + topped_up
        if picked == 0:
            await ctx.page.capture("no_seats")
            raise StageFailed(self.name, "No seat could be selected")

        logger.info(f"BOOKING_DEBUG: Selected {picked}/{count} seats: {selected}")
        resolution = await self.resolve(
            ctx, "continue", click_chain("seat continue", DOM.SEATS.continue_buttons, settle=2.0)
        )
        return resolution.strategy.description

    async def _dismiss_overlays(self, ctx: StageContext) -> None:
        for overlay in DOM.OVERLAY.overlays:
            if await ctx.page.find_visible(overlay, ctx.deadline.bounded(2.0)) is None:
                continue
            logger.info(f"BOOKING_DEBUG: Overlay {overlay[1]} is blocking the seat map")
            closed = await self.resolve(
                ctx,
                "close overlay",
                click_chain("overlay close", DOM.OVERLAY.close_buttons, timeout=1.0, settle=0.5),
                required=False,
                budget=5.0,
            )
            if not closed.matched:
                await ctx.page.press("ESCAPE")
            return

    async def _select_seat(self, ctx: StageContext, seat: str, clicked: list[Any]) -> Any:
        """Click `seat` and return its element; None if absent or already clicked."""
        strategies = tuple(
            Strategy(
                f"seat {seat} ({loc[1]})",
                fill(loc, seat=seat),
                action=Action.PRESENCE,
                timeout=SEAT_LOOKUP_SECONDS,
            )
            for loc in DOM.SEATS.seat_templates
        )
        budget = ctx.deadline.bounded(SEAT_STEP_BUDGET_SECONDS)
        resolution = await ctx.resolver.resolve(strategies, budget)
        if not resolution.matched:
            return None
        if resolution.element in clicked:
            logger.info(f"BOOKING_DEBUG: Seat {seat} resolved to an already selected seat")
            return None

        try:
            await ctx.page.click(resolution.element)
        except Exception as e:
            logger.debug(f"Could not click seat {seat}: {e}")
            return None
        await ctx.page.pause(0.5)
        logger.info(f"BOOKING_DEBUG: Selected seat {seat}")
        return resolution.element

    async def _select_any_available(
        self, ctx: StageContext, missing: int, clicked: list[Any]
    ) -> int:
        if missing <= 0:
            return 0
        logger.info(f"BOOKING_DEBUG: Need {missing} more seats, selecting any available")

        picked = 0
        for locator in DOM.SEATS.available_seats:
            for element in await ctx.page.find_all(locator):
                if picked >= missing:
                    return picked
                try:
                    if element not in clicked and await ctx.page.is_visible(element):
                        await ctx.page.click(element)
                        await ctx.page.pause(0.5)
                        clicked.append(element)
                        picked += 1
                except Exception as e:
                    logger.debug(f"Could not select available seat via {locator[1]}: {e}")
        return picked


class PassengerDetailsStage(Stage):
    name = "passenger_details"
    signals = DOM.PASSENGERS.signals

    async def run(self, ctx: StageContext) -> str | None:
        for index in range(1, ctx.request.seat_count + 1):
            await self._fill_passenger(ctx, index)
            logger.info(f"BOOKING_DEBUG: Filled details for passenger {index}")

        resolution = await self.resolve(
            ctx,
            "continue",
            click_chain("passenger continue", DOM.PASSENGERS.continue_buttons, settle=2.0),
        )
        return resolution.strategy.description

    async def _fill_passenger(self, ctx: StageContext, index: int) -> None:
        config = ctx.settings
        gender = config.passenger_gender
        names = tuple(fill(loc, index=index) for loc in DOM.PASSENGERS.name_inputs)
        ages = tuple(fill(loc, index=index) for loc in DOM.PASSENGERS.age_inputs)

        await self.resolve(
            ctx,
            f"passenger {index} name",
            fill_chain("name", names, f"{config.passenger_name_prefix} {index}"),
            required=False,
            budget=PASSENGER_FIELD_BUDGET_SECONDS,
        )
        await self.resolve(
            ctx,
            f"passenger {index} age",
            fill_chain("age", ages, str(config.passenger_age)),
            required=False,
            budget=PASSENGER_FIELD_BUDGET_SECONDS,
        )

        gender_strategies = tuple(
            Strategy(
                f"gender select ({loc[1]})",
                fill(loc, index=index),
                action=Action.SELECT,
                value=gender,
            )
            for loc in DOM.PASSENGERS.gender_selects
        ) + tuple(
            Strategy(f"gender option ({loc[1]})", fill(loc, index=index, gender=gender))
            for loc in DOM.PASSENGERS.gender_clickables
        )
        await self.resolve(
            ctx,
            f"passenger {index} gender",
            gender_strategies,
            required=False,
            budget=PASSENGER_FIELD_BUDGET_SECONDS,
        )


class PaymentStage(Stage):
    name = "payment"
    signals = DOM.PAYMENT.signals

    async def run(self, ctx: StageContext) -> str | None:
        methods = tuple(
            Strategy(f"{method} payment", fill(template, method=method), timeout=1.0, settle=1.0)
            for method in DOM.PAYMENT.methods
            for template in DOM.PAYMENT.method_templates
        )
        chosen = await self.resolve(ctx, "payment method", methods)
        logger.info(f"BOOKING_DEBUG: Payment method chosen: {chosen.strategy.description}")

        proceed = await self.resolve(
            ctx,
            "proceed",
            click_chain("payment proceed", DOM.PAYMENT.proceed_buttons, settle=2.0),
            required=False,
        )
        if proceed.matched:
            return proceed.strategy.description
        return chosen.strategy.description


def build_booking_stages() -> list[Stage]:
    """The full stage sequence for one booking run, in site order."""
    return [
        LanguageStage(),
        terms_stage("accept_terms"),
        LoginStage(),
        terms_stage("accept_terms_after_login"),
        TrainSearchStage(),
        CoachSelectionStage(),
        SeatSelectionStage(),
        PassengerDetailsStage(),
        PaymentStage(),
    ]
