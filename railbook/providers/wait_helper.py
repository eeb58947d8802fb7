"""
Wait strategies for Selenium lookups on the railway site.

The mode comes from WAIT_MODE:
- FIXED: sleep a fixed duration, then look once (slow, tolerant of heavy pages)
- EVENT_DRIVEN: WebDriverWait only (fastest)
- HYBRID: WebDriverWait plus a short buffer so Angular finishes rendering
"""

import logging
import time as time_module
from typing import Any

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support import expected_conditions
from selenium.webdriver.support.ui import WebDriverWait

from railbook.config import WaitMode, settings

logger = logging.getLogger(__name__)

HYBRID_BUFFER_SECONDS = 0.3

_CONDITIONS = {
    "presence": expected_conditions.presence_of_element_located,
    "visible": expected_conditions.visibility_of_element_located,
    "clickable": expected_conditions.element_to_be_clickable,
}


class WaitStrategy:
    """
    Element waits whose behaviour depends on the wait mode.

    Usage:
        waits = WaitStrategy()
        button = waits.wait_for_element(driver, (By.XPATH, "//button"), timeout=3.0)
        waits.settle(fixed_duration=1.0)
    """

    def __init__(self, mode: WaitMode | None = None) -> None:
        self.mode = mode or settings.wait_mode
        logger.info(f"WaitStrategy initialized with mode: {self.mode.value}")

    def wait_for_element(
        self,
        driver: WebDriver,
        locator: tuple[str, str],
        timeout: float,
        condition: str = "visible",
        fixed_duration: float | None = None,
    ) -> Any | None:
        """
        Wait for an element and return it, or None if it never shows up.

        Args:
            driver: The WebDriver instance
            locator: Tuple of (By.*, selector)
            timeout: Maximum wait for WebDriverWait; also the FIXED sleep when
                fixed_duration is not given
            condition: "presence", "visible" or "clickable"
            fixed_duration: Sleep before the single lookup in FIXED mode
        """
        if timeout <= 0:
            return self._find_now(driver, locator, condition)

        if self.mode == WaitMode.FIXED:
            duration = timeout if fixed_duration is None else min(fixed_duration, timeout)
            logger.debug(f"FIXED mode: sleeping {duration}s for element {locator}")
            time_module.sleep(duration)
            return self._find_now(driver, locator, condition)

        element = None
        try:
            element = WebDriverWait(driver, timeout).until(
                _CONDITIONS.get(condition, expected_conditions.presence_of_element_located)(locator)
            )
            logger.debug(f"{self.mode.value} mode: element {locator} found after WebDriverWait")
        except TimeoutException:
            logger.debug(f"{self.mode.value} mode: timeout waiting for element {locator}")

        if element is not None and self.mode == WaitMode.HYBRID:
            time_module.sleep(HYBRID_BUFFER_SECONDS)

        return element

    def settle(self, fixed_duration: float, event_driven_duration: float = 0.0) -> None:
        """
        Pause after an action (click, submit) so the page can react.

        Args:
            fixed_duration: Sleep in FIXED mode
            event_driven_duration: Sleep in EVENT_DRIVEN mode (default 0)
        """
        if self.mode == WaitMode.FIXED:
            duration = fixed_duration
        elif self.mode == WaitMode.EVENT_DRIVEN:
            duration = event_driven_duration
        else:
            duration = max(event_driven_duration, min(fixed_duration, HYBRID_BUFFER_SECONDS))

        if duration > 0:
            logger.debug(f"{self.mode.value} mode: settling {duration}s")
            time_module.sleep(duration)

    @staticmethod
    def _find_now(driver: WebDriver, locator: tuple[str, str], condition: str) -> Any | None:
        try:
            for element in driver.find_elements(*locator):
                if condition == "presence" or element.is_displayed():
                    if condition != "clickable" or element.is_enabled():
                        return element
        except WebDriverException as e:
            logger.debug(f"Immediate lookup of {locator} failed: {e}")
        return None
