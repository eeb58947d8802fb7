import asyncio
import logging
import os
from collections.abc import Sequence
from typing import Any

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from webdriver_manager.chrome import ChromeDriverManager

from railbook.config import Settings, settings as default_settings
from railbook.errors import TargetUnavailable
from railbook.models.flow import FlowOutcome, FlowStatus, StageStatus
from railbook.models.schemas import BookingRequest
from railbook.providers.railway_dom_schema import DOM
from railbook.providers.railway_stages import (
    OTP_STEP,
    LanguageStage,
    LoginStage,
    build_booking_stages,
    terms_stage,
)
from railbook.providers.selenium_page import SeleniumPage
from railbook.services.deadline import Deadline
from railbook.services.flow_controller import FlowController
from railbook.services.sms_service import SMSService
from railbook.services.stage_executor import Stage, StageContext, StageExecutor
from railbook.services.strategy_resolver import StrategyResolver

logger = logging.getLogger(__name__)


class RailwayBookingProvider:
    """
    Selenium-based provider for booking tickets on the Bangladesh Railway web app.

    The flow (language, terms, login, search, coach, seats, passengers, payment)
    is a list of stages run by the FlowController. It ends at the OTP screen,
    where the operator types the passcode into the open browser; the browser is
    headed by default for that reason.

    Implementation Note:
        Each booking owns one WebDriver for its whole run (create -> book -> quit).
        Blocking Selenium calls go through asyncio.to_thread() inside SeleniumPage.
    """

    def __init__(
        self,
        config: Settings | None = None,
        sms: SMSService | None = None,
        stages: Sequence[Stage] | None = None,
    ) -> None:
        self.settings = config or default_settings
        self.sms = sms or SMSService(self.settings)
        self.stages = list(stages) if stages is not None else build_booking_stages()

        if not self.settings.railway_username or not self.settings.railway_password:
            logger.warning(
                "Railway credentials not configured. "
                "Set RAILWAY_USERNAME and RAILWAY_PASSWORD environment variables."
            )

    async def __aenter__(self) -> "RailwayBookingProvider":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _create_driver(self) -> webdriver.Chrome:
        """Create a Chrome WebDriver; headed unless HEADLESS is set."""
        options = Options()
        if self.settings.headless:
            options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--window-size=1920,1080")
        options.add_argument("--disable-blink-features=AutomationControlled")
        options.add_experimental_option("excludeSwitches", ["enable-automation"])
        options.add_experimental_option("useAutomationExtension", False)

        # CHROMEDRIVER_PATH wins over ChromeDriverManager's automatic download
        chromedriver_path = os.environ.get("CHROMEDRIVER_PATH")
        if chromedriver_path and os.path.exists(chromedriver_path):
            service = Service(chromedriver_path)
        else:
            service = Service(ChromeDriverManager().install())
        driver = webdriver.Chrome(service=service, options=options)

        driver.execute_cdp_cmd(
            "Page.addScriptToEvaluateOnNewDocument",
            {
                "source": """
                Object.defineProperty(navigator, 'webdriver', {
                    get: () => undefined
                })
            """
            },
        )

        return driver

    async def book(self, request: BookingRequest, deadline: Deadline | None = None) -> FlowOutcome:
        """
        Run the whole booking flow in a fresh browser.

        Args:
            request: Validated booking inputs (see load_booking_request()).
            deadline: Overall budget; defaults to RUN_TIMEOUT_SECONDS.

        Returns:
            The FlowOutcome of the run. The operator is texted when the OTP screen
            is reached and again with the outcome.
        """
        logger.info(
            f"BOOKING_DEBUG: === STARTING BOOKING ATTEMPT === train={request.train_name}, "
            f"route={request.origin}->{request.destination}, date={request.travel_date}, "
            f"class={request.travel_class}, seats={request.seat_count}"
        )
        deadline = deadline or Deadline(self.settings.run_timeout_seconds)
        driver = await asyncio.to_thread(self._create_driver)
        page = SeleniumPage(driver, self.settings)
        try:
            outcome = await self._run(page, request, deadline)
            if self.settings.capture_diagnostics:
                if outcome.status == FlowStatus.FAILED:
                    await page.capture(f"failed_{outcome.stage}")
                elif outcome.status == FlowStatus.COMPLETED:
                    # Confirmation / PNR page, before the browser closes
                    await page.capture("booking_confirmation")
        finally:
            logger.debug("BOOKING_DEBUG: === BOOKING ATTEMPT COMPLETE - Closing driver ===")
            await asyncio.to_thread(driver.quit)

        logger.info(
            f"BOOKING_DEBUG: Booking result: status={outcome.status.value}, "
            f"stage={outcome.stage}, reason={outcome.reason}"
        )
        await self.sms.notify_outcome(outcome)
        return outcome

    async def _run(
        self, page: SeleniumPage, request: BookingRequest, deadline: Deadline
    ) -> FlowOutcome:
        controller = FlowController(
            self.settings,
            manual_steps=(OTP_STEP,),
            on_manual_step=self.sms.notify_manual_step,
        )
        try:
            await page.goto(self.settings.railway_base_url)
            return await controller.run(request, self.stages, page, deadline)
        except TargetUnavailable as e:
            logger.error(f"BOOKING_DEBUG: Site unavailable: {e}")
            return FlowOutcome.failed("open_site", str(e))
        except WebDriverException as e:
            logger.error(f"BOOKING_DEBUG: Booking WebDriver exception: {e}")
            return FlowOutcome.failed("browser", f"Booking error: {e}")

    async def login(self) -> bool:
        """
        Check the configured credentials in a throwaway browser.

        Returns:
            True if the site let us past the login page, False otherwise.
        """
        driver = await asyncio.to_thread(self._create_driver)
        page = SeleniumPage(driver, self.settings)
        try:
            await page.goto(f"{self.settings.railway_base_url}{DOM.LOGIN.route}")
            ctx = StageContext(
                page=page,
                request=None,
                settings=self.settings,
                resolver=StrategyResolver(page),
                deadline=Deadline(120.0),
            )
            executor = StageExecutor()
            for stage in (LanguageStage(), terms_stage("accept_terms")):
                await executor.execute(stage, ctx)
            if DOM.LOGIN.route not in await page.url():
                await page.goto(f"{self.settings.railway_base_url}{DOM.LOGIN.route}")

            result = await executor.execute(LoginStage(), ctx)
            if result.status != StageStatus.ADVANCED:
                logger.error(f"Login check failed: {result.reason or 'login page never shown'}")
            return result.status == StageStatus.ADVANCED
        except (TargetUnavailable, WebDriverException) as e:
            logger.error(f"Login check failed: {e}")
            return False
        finally:
            await asyncio.to_thread(driver.quit)

    async def close(self) -> None:
        """
        Close any resources.

        Each booking quits its own driver, so there is nothing left to release here.
        """
        pass
