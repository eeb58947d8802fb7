from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

# (By.*, expression) pair, the same shape Selenium's find_element takes
Locator = tuple[str, str]


class InputMethod(str, Enum):
    """Ways of getting text into a field, from fastest to most forgiving."""

    DIRECT = "direct"
    KEYSTROKES = "keystrokes"
    CLIPBOARD = "clipboard"


class BrowserPage(ABC):
    """
    Async view of one browser tab.

    The booking flow only talks to the site through this interface, so stages
    can be exercised against a scripted page in tests. Element handles are
    opaque to callers.
    """

    @abstractmethod
    async def url(self) -> str:
        """Current page URL."""
        pass

    @abstractmethod
    async def goto(self, url: str) -> None:
        """Navigate to a URL. Raises TargetUnavailable when the site cannot be reached."""
        pass

    @abstractmethod
    async def find_visible(self, locator: Locator, timeout: float) -> Any | None:
        """Wait up to `timeout` seconds for a visible match; None if there is none."""
        pass

    @abstractmethod
    async def find_all(self, locator: Locator) -> list[Any]:
        """All current matches, visible or not, without waiting."""
        pass

    @abstractmethod
    async def is_visible(self, element: Any) -> bool:
        pass

    @abstractmethod
    async def click(self, element: Any) -> None:
        pass

    @abstractmethod
    async def fill(self, element: Any, value: str, method: InputMethod = InputMethod.DIRECT) -> None:
        """Replace the field's content with `value` using the given input method."""
        pass

    @abstractmethod
    async def read_value(self, element: Any) -> str:
        pass

    @abstractmethod
    async def select_option(self, element: Any, label: str) -> None:
        pass

    @abstractmethod
    async def text_of(self, element: Any) -> str:
        pass

    @abstractmethod
    async def press(self, key: str) -> None:
        """Press a named key (e.g. "ENTER", "ESCAPE") on the focused element."""
        pass

    @abstractmethod
    async def pause(self, seconds: float) -> None:
        """Let the page settle after an action."""
        pass

    @abstractmethod
    async def capture(self, name: str) -> None:
        """Save diagnostic artifacts for the current page. Never raises."""
        pass
