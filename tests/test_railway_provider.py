"""
Tests for RailwayBookingProvider in railbook/providers/railway_provider.py.

The Chrome driver is never started: _create_driver is patched and the
SeleniumPage is swapped for a scripted FakePage.
"""

import logging
import os
from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from selenium.common.exceptions import WebDriverException

from railbook.config import Settings
from railbook.errors import TargetUnavailable
from railbook.models.flow import FlowStatus
from railbook.models.schemas import BookingRequest
from railbook.providers.railway_dom_schema import DOM
from railbook.providers.railway_provider import RailwayBookingProvider
from railbook.services.stage_executor import Stage, StageContext
from tests.fixtures.fake_page import FakePage

BASE_URL = "https://railapp.railway.gov.bd"


class PassingStage(Stage):
    async def run(self, ctx: StageContext) -> str | None:
        return "done"


class BrokenBrowserStage(Stage):
    async def run(self, ctx: StageContext) -> str | None:
        raise WebDriverException("chrome not reachable")


@pytest.fixture
def sms() -> MagicMock:
    mock_sms = MagicMock()
    mock_sms.notify_outcome = AsyncMock(return_value="mock_sid")
    mock_sms.notify_manual_step = AsyncMock(return_value="mock_sid")
    return mock_sms


@pytest.fixture
def driver() -> MagicMock:
    return MagicMock()


@pytest.fixture
def page_patch(page: FakePage, driver: MagicMock) -> Iterator[MagicMock]:
    with patch.object(RailwayBookingProvider, "_create_driver", return_value=driver):
        with patch(
            "railbook.providers.railway_provider.SeleniumPage", return_value=page
        ) as page_class:
            yield page_class


class TestRailwayProviderInit:
    """Tests for provider construction."""

    def test_warns_without_credentials(
        self, test_settings: Settings, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A missing password is reported when the provider is created."""
        config = test_settings.model_copy(update={"railway_password": ""})

        with caplog.at_level(logging.WARNING):
            RailwayBookingProvider(config)

        assert "credentials not configured" in caplog.text.lower()

    def test_default_stages(self, test_settings: Settings) -> None:
        provider = RailwayBookingProvider(test_settings)

        assert provider.stages[0].name == "language"
        assert provider.stages[-1].name == "payment"


class TestRailwayProviderBook:
    """Tests for RailwayBookingProvider.book()."""

    @pytest.mark.asyncio
    async def test_completed_run(
        self,
        test_settings: Settings,
        booking_request: BookingRequest,
        sms: MagicMock,
        driver: MagicMock,
        page: FakePage,
        page_patch: MagicMock,
    ) -> None:
        """A run opens the site, drives the stages and always quits the driver."""
        provider = RailwayBookingProvider(test_settings, sms=sms, stages=[PassingStage("one")])

        outcome = await provider.book(booking_request)

        assert outcome.status == FlowStatus.COMPLETED
        assert page.visited == [BASE_URL]
        page_patch.assert_called_once_with(driver, test_settings)
        driver.quit.assert_called_once()
        sms.notify_outcome.assert_awaited_once_with(outcome)

    @pytest.mark.asyncio
    async def test_completed_run_captures_confirmation(
        self,
        test_settings: Settings,
        booking_request: BookingRequest,
        sms: MagicMock,
        driver: MagicMock,
        page: FakePage,
        page_patch: MagicMock,
    ) -> None:
        """The confirmation page is saved while the browser is still open."""
        config = test_settings.model_copy(update={"capture_diagnostics": True})
        driver.quit.side_effect = lambda: page.captures.append("quit")
        provider = RailwayBookingProvider(config, sms=sms, stages=[PassingStage("one")])

        outcome = await provider.book(booking_request)

        assert outcome.status == FlowStatus.COMPLETED
        assert page.captures == ["booking_confirmation", "quit"]

    @pytest.mark.asyncio
    async def test_site_unavailable(
        self,
        test_settings: Settings,
        booking_request: BookingRequest,
        sms: MagicMock,
        driver: MagicMock,
        page: FakePage,
        page_patch: MagicMock,
    ) -> None:
        """An unreachable site fails the run at open_site and saves diagnostics."""
        config = test_settings.model_copy(update={"capture_diagnostics": True})
        page.goto_error = TargetUnavailable("ERR_NAME_NOT_RESOLVED")
        provider = RailwayBookingProvider(config, sms=sms, stages=[PassingStage("one")])

        outcome = await provider.book(booking_request)

        assert outcome.status == FlowStatus.FAILED
        assert outcome.stage == "open_site"
        assert page.captures == ["failed_open_site"]
        driver.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_browser_crash(
        self,
        test_settings: Settings,
        booking_request: BookingRequest,
        sms: MagicMock,
        driver: MagicMock,
        page_patch: MagicMock,
    ) -> None:
        """A WebDriver failure inside a stage ends the run as a browser failure."""
        provider = RailwayBookingProvider(
            test_settings, sms=sms, stages=[BrokenBrowserStage("search")]
        )

        outcome = await provider.book(booking_request)

        assert outcome.status == FlowStatus.FAILED
        assert outcome.stage == "browser"
        assert "chrome not reachable" in outcome.reason
        driver.quit.assert_called_once()
        sms.notify_outcome.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_quits_driver_on_unexpected_error(
        self,
        test_settings: Settings,
        booking_request: BookingRequest,
        sms: MagicMock,
        driver: MagicMock,
        page_patch: MagicMock,
    ) -> None:
        class Exploding(Stage):
            async def run(self, ctx: StageContext) -> str | None:
                raise RuntimeError("bug")

        provider = RailwayBookingProvider(test_settings, sms=sms, stages=[Exploding("x")])

        with pytest.raises(RuntimeError):
            await provider.book(booking_request)

        driver.quit.assert_called_once()


class TestRailwayProviderLogin:
    """Tests for the standalone credential check."""

    @pytest.mark.asyncio
    async def test_login_succeeds(
        self,
        test_settings: Settings,
        driver: MagicMock,
        page: FakePage,
        page_patch: MagicMock,
    ) -> None:
        page.show(DOM.LOGIN.mobile_inputs[0])
        page.show(DOM.LOGIN.password_inputs[0])
        submit = page.show(DOM.LOGIN.submit_buttons[0])
        page.on_click[submit] = lambda: setattr(page, "current_url", f"{BASE_URL}/")

        assert await RailwayBookingProvider(test_settings).login() is True
        assert page.visited[0] == f"{BASE_URL}/auth/login"
        driver.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_login_rejected(
        self,
        test_settings: Settings,
        driver: MagicMock,
        page: FakePage,
        page_patch: MagicMock,
    ) -> None:
        page.show(DOM.LOGIN.mobile_inputs[0])
        page.show(DOM.LOGIN.password_inputs[0])
        page.show(DOM.LOGIN.submit_buttons[0])

        assert await RailwayBookingProvider(test_settings).login() is False
        driver.quit.assert_called_once()

    @pytest.mark.asyncio
    async def test_login_site_down(
        self,
        test_settings: Settings,
        driver: MagicMock,
        page: FakePage,
        page_patch: MagicMock,
    ) -> None:
        page.goto_error = TargetUnavailable("timeout")

        assert await RailwayBookingProvider(test_settings).login() is False
        driver.quit.assert_called_once()


class TestCreateDriver:
    """Tests for Chrome driver creation."""

    def test_headless_and_chromedriver_override(
        self, test_settings: Settings, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """CHROMEDRIVER_PATH skips the download and HEADLESS adds the flag."""
        chromedriver = tmp_path / "chromedriver"
        chromedriver.write_text("")
        monkeypatch.setenv("CHROMEDRIVER_PATH", str(chromedriver))
        provider = RailwayBookingProvider(test_settings.model_copy(update={"headless": True}))

        with patch("railbook.providers.railway_provider.webdriver.Chrome") as chrome, patch(
            "railbook.providers.railway_provider.Service"
        ) as service, patch(
            "railbook.providers.railway_provider.ChromeDriverManager"
        ) as manager:
            provider._create_driver()

        service.assert_called_once_with(os.fspath(chromedriver))
        manager.assert_not_called()
        options = chrome.call_args.kwargs["options"]
        assert "--headless=new" in options.arguments
        chrome.return_value.execute_cdp_cmd.assert_called_once()

    def test_headed_by_default(self, test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
        """The browser stays visible so the operator can type the OTP."""
        monkeypatch.delenv("CHROMEDRIVER_PATH", raising=False)
        provider = RailwayBookingProvider(test_settings)

        with patch("railbook.providers.railway_provider.webdriver.Chrome") as chrome, patch(
            "railbook.providers.railway_provider.Service"
        ), patch("railbook.providers.railway_provider.ChromeDriverManager") as manager:
            provider._create_driver()

        manager.return_value.install.assert_called_once()
        assert "--headless=new" not in chrome.call_args.kwargs["options"].arguments
