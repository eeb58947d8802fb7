import asyncio
import functools
import logging
import os
import time as time_module
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from selenium.common.exceptions import (
    ElementClickInterceptedException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support.ui import Select

from railbook.config import Settings, settings as default_settings
from railbook.errors import TargetUnavailable
from railbook.providers.base import BrowserPage, InputMethod, Locator
from railbook.providers.wait_helper import WaitStrategy

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_EXCEPTIONS = (
    StaleElementReferenceException,
    ElementClickInterceptedException,
    TimeoutException,
)

KEYSTROKE_DELAY_SECONDS = 0.05

_SET_VALUE_SCRIPT = """
arguments[0].focus();
arguments[0].value = arguments[1];
arguments[0].dispatchEvent(new Event('input', {bubbles: true}));
arguments[0].dispatchEvent(new Event('change', {bubbles: true}));
"""

# Put the text on the clipboard through a throwaway textarea
_COPY_SCRIPT = """
const area = document.createElement('textarea');
area.value = arguments[0];
document.body.appendChild(area);
area.select();
document.execCommand('copy');
document.body.removeChild(area);
"""


def with_retry(
    max_attempts: int = 3,
    backoff_base: float = 0.5,
    exceptions: tuple[type[Exception], ...] = TRANSIENT_EXCEPTIONS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry a blocking Selenium call that may fail for transient reasons.

    Uses exponential backoff between attempts and only retries the given
    exception types; anything else propagates immediately.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception: Exception | None = None
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        delay = backoff_base * (2**attempt)
                        logger.debug(
                            f"Attempt {attempt + 1}/{max_attempts} failed for {func.__name__}: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        time_module.sleep(delay)
            raise last_exception  # type: ignore[misc]

        return wrapper

    return decorator


class SeleniumPage(BrowserPage):
    """
    BrowserPage over a Chrome WebDriver.

    Every blocking driver call runs in a worker thread via asyncio.to_thread(),
    so element waits suspend the booking coroutine instead of blocking the loop.
    The driver itself is owned by the caller.
    """

    def __init__(
        self,
        driver: WebDriver,
        config: Settings | None = None,
        waits: WaitStrategy | None = None,
    ) -> None:
        self.driver = driver
        self.settings = config or default_settings
        self.waits = waits or WaitStrategy(self.settings.wait_mode)

    async def url(self) -> str:
        try:
            return await asyncio.to_thread(lambda: self.driver.current_url)
        except WebDriverException as e:
            raise TargetUnavailable(f"Browser session lost: {e}") from e

    async def goto(self, url: str) -> None:
        logger.info(f"Navigating to {url}")
        try:
            await asyncio.to_thread(self.driver.get, url)
        except WebDriverException as e:
            raise TargetUnavailable(f"Could not load {url}: {e}") from e

    async def find_visible(self, locator: Locator, timeout: float) -> Any | None:
        try:
            return await asyncio.to_thread(
                self.waits.wait_for_element, self.driver, locator, max(timeout, 0.0)
            )
        except WebDriverException as e:
            logger.debug(f"Lookup of {locator} failed: {e}")
            return None

    async def find_all(self, locator: Locator) -> list[Any]:
        try:
            return await asyncio.to_thread(self.driver.find_elements, *locator)
        except WebDriverException as e:
            logger.debug(f"Lookup of all {locator} failed: {e}")
            return []

    async def is_visible(self, element: Any) -> bool:
        try:
            return await asyncio.to_thread(element.is_displayed)
        except WebDriverException:
            return False

    async def click(self, element: Any) -> None:
        await asyncio.to_thread(self._click_sync, element)

    @with_retry(max_attempts=2, exceptions=(StaleElementReferenceException,))
    def _click_sync(self, element: Any) -> None:
        self.driver.execute_script("arguments[0].scrollIntoView({block: 'center'});", element)
        try:
            element.click()
        except ElementClickInterceptedException:
            logger.debug("Click intercepted, falling back to JavaScript click")
            self.driver.execute_script("arguments[0].click();", element)
        self.waits.settle(fixed_duration=1.0)

    async def fill(self, element: Any, value: str, method: InputMethod = InputMethod.DIRECT) -> None:
        await asyncio.to_thread(self._fill_sync, element, value, method)

    def _fill_sync(self, element: Any, value: str, method: InputMethod) -> None:
        if method == InputMethod.DIRECT:
            self.driver.execute_script(_SET_VALUE_SCRIPT, element, value)
        elif method == InputMethod.KEYSTROKES:
            element.clear()
            for char in value:
                element.send_keys(char)
                time_module.sleep(KEYSTROKE_DELAY_SECONDS)
        else:
            self.driver.execute_script(_COPY_SCRIPT, value)
            element.click()
            element.send_keys(Keys.CONTROL, "a")
            element.send_keys(Keys.CONTROL, "v")
        self.waits.settle(fixed_duration=0.5)

    async def read_value(self, element: Any) -> str:
        value = await asyncio.to_thread(element.get_attribute, "value")
        return value or ""

    async def select_option(self, element: Any, label: str) -> None:
        await asyncio.to_thread(self._select_sync, element, label)

    def _select_sync(self, element: Any, label: str) -> None:
        if element.tag_name.lower() == "select":
            Select(element).select_by_visible_text(label)
            return

        # Angular Material selects render their options in an overlay
        element.click()
        option = self.waits.wait_for_element(
            self.driver,
            (
                By.XPATH,
                f"//mat-option[contains(normalize-space(.), '{label}')]"
                f" | //*[@role='option'][contains(normalize-space(.), '{label}')]",
            ),
            timeout=3.0,
        )
        if option is None:
            raise TimeoutException(f"Option '{label}' did not appear")
        option.click()

    async def text_of(self, element: Any) -> str:
        try:
            return await asyncio.to_thread(lambda: element.text)
        except WebDriverException:
            return ""

    async def press(self, key: str) -> None:
        keys = getattr(Keys, key.upper())
        await asyncio.to_thread(lambda: ActionChains(self.driver).send_keys(keys).perform())

    async def pause(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def capture(self, name: str) -> None:
        await asyncio.to_thread(self._capture_sync, name)

    def _capture_sync(self, name: str) -> None:
        """
        Save a screenshot and the page source for later inspection.

        Args:
            name: Short label for what the page was doing, used in file names
        """
        try:
            os.makedirs(self.settings.artifacts_dir, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            base = os.path.join(self.settings.artifacts_dir, f"railbook_{name}_{timestamp}")

            self.driver.save_screenshot(f"{base}.png")
            with open(f"{base}.html", "w", encoding="utf-8") as f:
                f.write(self.driver.page_source)
            logger.info(f"Saved diagnostics to {base}.png/.html")

        except Exception as e:
            logger.warning(f"Failed to capture diagnostic info: {e}")
