from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Hashable, Optional, Union

from ..accessibility import extract_accessible_strings
from ..appium_http_client import AppiumHTTPError, WebDriverElementRef
from ..capabilities import Platform
from ..config import ConfigurationResolver
from ..errors import ElementTimeout
from ..session_registry import Session, SessionRegistry, default_worker_key

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.5


@dataclass(frozen=True)
class Locator:
    using: str
    value: str

    def __str__(self) -> str:
        return f"{self.using}={self.value}"


@dataclass(frozen=True)
class PlatformLocator:
    android: Locator
    ios: Locator

    def for_platform(self, platform: Platform) -> Locator:
        return self.android if platform is Platform.ANDROID else self.ios


LocatorLike = Union[Locator, PlatformLocator]


def android_id(resource_id: str) -> Locator:
    return Locator("id", resource_id)


def accessibility_id(value: str) -> Locator:
    return Locator("accessibility id", value)


def xpath(value: str) -> Locator:
    return Locator("xpath", value)


class ElementState(Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"
    NOT_FOUND = "not_found"


class BasePage:
    """
    Common interactions for page objects.

    A page borrows the worker's open session at construction time and
    fails fast with NotInitialized when there is none. Pages keep no
    other state and need no cleanup.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        worker_key: Optional[Hashable] = None,
        *,
        resolver: Optional[ConfigurationResolver] = None,
    ) -> None:
        self.registry = registry
        self.worker_key = worker_key if worker_key is not None else default_worker_key()
        self.session: Session = registry.current(self.worker_key)
        self.client = self.session.client
        resolver = resolver or registry.resolver
        self.explicit_wait_s = resolver.explicit_wait().total_seconds()

    def _page(self, page_cls: type["BasePage"]) -> "BasePage":
        return page_cls(self.registry, self.worker_key)

    # ========== PLATFORM ==========

    @property
    def platform(self) -> Platform:
        return self.session.platform

    def is_android(self) -> bool:
        return self.platform is Platform.ANDROID

    def is_ios(self) -> bool:
        return self.platform is Platform.IOS

    def _resolve(self, locator: LocatorLike) -> Locator:
        if isinstance(locator, PlatformLocator):
            return locator.for_platform(self.platform)
        return locator

    # ========== LOOKUP ==========

    def find_all(self, locator: LocatorLike) -> list[WebDriverElementRef]:
        resolved = self._resolve(locator)
        return self.client.find_elements(using=resolved.using, value=resolved.value)

    def element_state(self, locator: LocatorLike) -> ElementState:
        elements = self.find_all(locator)
        if not elements:
            return ElementState.NOT_FOUND
        try:
            displayed = self.client.is_element_displayed(elements[0])
        except AppiumHTTPError as e:
            if e.is_missing_element:
                return ElementState.NOT_FOUND
            raise
        return ElementState.VISIBLE if displayed else ElementState.HIDDEN

    def is_displayed(self, locator: LocatorLike) -> bool:
        return self.element_state(locator) is ElementState.VISIBLE

    def is_enabled(self, locator: LocatorLike) -> bool:
        elements = self.find_all(locator)
        if not elements:
            return False
        try:
            return self.client.is_element_enabled(elements[0])
        except AppiumHTTPError as e:
            if e.is_missing_element:
                return False
            raise

    # ========== WAITS ==========

    def _poll(
        self,
        condition: Callable[[], Optional[WebDriverElementRef] | bool],
        *,
        timeout_s: Optional[float],
        description: str,
    ):
        timeout = self.explicit_wait_s if timeout_s is None else timeout_s
        deadline = time.monotonic() + timeout
        while True:
            result = condition()
            if result:
                return result
            if time.monotonic() >= deadline:
                raise ElementTimeout(f"Timed out after {timeout:.1f}s waiting for {description}")
            time.sleep(POLL_INTERVAL_S)

    def _first_in_state(self, locator: Locator, *, require_enabled: bool = False) -> Optional[WebDriverElementRef]:
        elements = self.client.find_elements(using=locator.using, value=locator.value)
        if not elements:
            return None
        element = elements[0]
        try:
            if not self.client.is_element_displayed(element):
                return None
            if require_enabled and not self.client.is_element_enabled(element):
                return None
        except AppiumHTTPError as e:
            if e.is_missing_element:
                return None
            raise
        return element

    def wait_for_visible(self, locator: LocatorLike, timeout_s: Optional[float] = None) -> WebDriverElementRef:
        resolved = self._resolve(locator)
        logger.debug("Waiting for element to be visible: %s", resolved)
        return self._poll(
            lambda: self._first_in_state(resolved),
            timeout_s=timeout_s,
            description=f"{resolved} to be visible",
        )

    def wait_for_clickable(self, locator: LocatorLike, timeout_s: Optional[float] = None) -> WebDriverElementRef:
        resolved = self._resolve(locator)
        logger.debug("Waiting for element to be clickable: %s", resolved)
        return self._poll(
            lambda: self._first_in_state(resolved, require_enabled=True),
            timeout_s=timeout_s,
            description=f"{resolved} to be clickable",
        )

    def wait_for_present(self, locator: LocatorLike, timeout_s: Optional[float] = None) -> WebDriverElementRef:
        resolved = self._resolve(locator)
        logger.debug("Waiting for element to be present: %s", resolved)

        def _present() -> Optional[WebDriverElementRef]:
            elements = self.client.find_elements(using=resolved.using, value=resolved.value)
            return elements[0] if elements else None

        return self._poll(_present, timeout_s=timeout_s, description=f"{resolved} to be present")

    def wait_for_gone(self, locator: LocatorLike, timeout_s: Optional[float] = None) -> bool:
        resolved = self._resolve(locator)
        logger.debug("Waiting for element to disappear: %s", resolved)
        return self._poll(
            lambda: self.element_state(resolved) is not ElementState.VISIBLE,
            timeout_s=timeout_s,
            description=f"{resolved} to disappear",
        )

    # ========== INTERACTIONS ==========

    def click(self, locator: LocatorLike) -> None:
        element = self.wait_for_clickable(locator)
        self.client.click(element)
        logger.info("Clicked %s", self._resolve(locator))

    def type_text(self, locator: LocatorLike, text: str, *, secret: bool = False) -> None:
        element = self.wait_for_visible(locator)
        self.client.clear(element)
        self.client.send_keys(element, text=text)
        logger.info("Entered text into %s: %s", self._resolve(locator), "***" if secret else text)

    def clear(self, locator: LocatorLike) -> None:
        element = self.wait_for_visible(locator)
        self.client.clear(element)

    def text_of(self, locator: LocatorLike) -> str:
        element = self.wait_for_visible(locator)
        text = self.client.get_element_text(element)
        logger.info("Retrieved text from %s: %s", self._resolve(locator), text)
        return text

    def attribute_of(self, locator: LocatorLike, name: str) -> Optional[str]:
        element = self.wait_for_present(locator)
        return self.client.get_element_attribute(element, name)

    def count(self, locator: LocatorLike) -> int:
        return len(self.find_all(locator))

    # ========== GESTURES ==========

    @staticmethod
    def _center(rect: dict[str, int]) -> tuple[int, int]:
        return rect["x"] + rect["width"] // 2, rect["y"] + rect["height"] // 2

    def tap(self, locator: LocatorLike) -> None:
        element = self.wait_for_visible(locator)
        x, y = self._center(self.client.get_element_rect(element))
        self.client.tap(x=x, y=y)
        logger.info("Performed tap gesture at (%d, %d)", x, y)

    def long_press(self, locator: LocatorLike, duration_s: float = 2.0) -> None:
        element = self.wait_for_visible(locator)
        x, y = self._center(self.client.get_element_rect(element))
        self.client.long_press(x=x, y=y, duration_ms=int(duration_s * 1000))
        logger.info("Performed long press gesture for %.1f seconds", duration_s)

    def swipe_between(self, start: LocatorLike, end: LocatorLike, duration_ms: int = 1000) -> None:
        start_rect = self.client.get_element_rect(self.wait_for_present(start))
        end_rect = self.client.get_element_rect(self.wait_for_present(end))
        self.client.swipe(
            x1=start_rect["x"],
            y1=start_rect["y"],
            x2=end_rect["x"],
            y2=end_rect["y"],
            duration_ms=duration_ms,
        )
        logger.info("Performed swipe gesture")

    def _vertical_swipe(self, start_ratio: float, end_ratio: float) -> None:
        rect = self.client.get_window_rect()
        x = rect["x"] + rect["width"] // 2
        self.client.swipe(
            x1=x,
            y1=rect["y"] + int(rect["height"] * start_ratio),
            x2=x,
            y2=rect["y"] + int(rect["height"] * end_ratio),
            duration_ms=1000,
        )

    def scroll_down(self) -> None:
        self._vertical_swipe(0.8, 0.2)
        logger.info("Scrolled down")

    def scroll_up(self) -> None:
        self._vertical_swipe(0.2, 0.8)
        logger.info("Scrolled up")

    def scroll_to(self, locator: LocatorLike, max_scrolls: int = 5) -> bool:
        for i in range(max_scrolls):
            if self.is_displayed(locator):
                logger.info("Element found after %d scrolls", i)
                return True
            self.scroll_down()
        logger.warning("Element %s not found after %d scrolls", self._resolve(locator), max_scrolls)
        return False

    def hide_keyboard(self) -> None:
        try:
            self.client.hide_keyboard()
            logger.info("Keyboard hidden")
        except AppiumHTTPError:
            logger.debug("Keyboard not visible or already hidden")

    # ========== SCREEN ==========

    def visible_strings(self, limit: int = 500) -> list[str]:
        return extract_accessible_strings(self.client.get_page_source(), limit=limit)
