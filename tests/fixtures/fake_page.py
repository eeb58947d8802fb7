"""
Scripted BrowserPage for exercising stages and the flow controller offline.

Visibility is a dict of locator -> element that tests mutate directly; lookups
never wait. Clicks can be wired to callbacks that change the page (navigate,
reveal or hide elements), which is enough to walk a stage through a screen.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from railbook.providers.base import BrowserPage, InputMethod, Locator


@dataclass(eq=False)
class FakeElement:
    name: str
    text: str = ""
    displayed: bool = True

    def __repr__(self) -> str:
        return f"FakeElement({self.name!r})"


class FakePage(BrowserPage):
    def __init__(self, url: str = "https://railapp.railway.gov.bd/") -> None:
        self.current_url = url
        self.visible: dict[Locator, FakeElement] = {}
        self.all_matches: dict[Locator, list[FakeElement]] = {}
        self.on_click: dict[FakeElement, Callable[[], None]] = {}
        # (element, value, method) -> what actually lands in the field
        self.input_filter: Callable[[FakeElement, str, InputMethod], str] | None = None
        self.goto_error: Exception | None = None

        self.values: dict[FakeElement, str] = {}
        self.lookups: list[Locator] = []
        self.clicks: list[FakeElement] = []
        self.fills: list[tuple[FakeElement, str, InputMethod]] = []
        self.selections: list[tuple[FakeElement, str]] = []
        self.keys: list[str] = []
        self.pauses: list[float] = []
        self.captures: list[str] = []
        self.visited: list[str] = []

    def show(self, locator: Locator, name: str | None = None, text: str = "") -> FakeElement:
        element = FakeElement(name or locator[1], text=text)
        self.visible[locator] = element
        return element

    def hide(self, locator: Locator) -> None:
        self.visible.pop(locator, None)

    async def url(self) -> str:
        return self.current_url

    async def goto(self, url: str) -> None:
        if self.goto_error is not None:
            raise self.goto_error
        self.visited.append(url)
        self.current_url = url

    async def find_visible(self, locator: Locator, timeout: float) -> Any | None:
        self.lookups.append(locator)
        return self.visible.get(locator)

    async def find_all(self, locator: Locator) -> list[Any]:
        if locator in self.all_matches:
            return list(self.all_matches[locator])
        element = self.visible.get(locator)
        return [element] if element is not None else []

    async def is_visible(self, element: Any) -> bool:
        return element.displayed

    async def click(self, element: Any) -> None:
        self.clicks.append(element)
        callback = self.on_click.get(element)
        if callback is not None:
            callback()

    async def fill(self, element: Any, value: str, method: InputMethod = InputMethod.DIRECT) -> None:
        self.fills.append((element, value, method))
        if self.input_filter is not None:
            value = self.input_filter(element, value, method)
        self.values[element] = value

    async def read_value(self, element: Any) -> str:
        return self.values.get(element, "")

    async def select_option(self, element: Any, label: str) -> None:
        self.selections.append((element, label))

    async def text_of(self, element: Any) -> str:
        return element.text

    async def press(self, key: str) -> None:
        self.keys.append(key)

    async def pause(self, seconds: float) -> None:
        self.pauses.append(seconds)

    async def capture(self, name: str) -> None:
        self.captures.append(name)
