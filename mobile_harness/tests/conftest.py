from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import pytest

from mobile_harness.appium_http_client import AppiumHTTPError, WebDriverElementRef
from mobile_harness.capabilities import reset_build_name
from mobile_harness.config import ConfigurationResolver, OverrideStore, reset_resolver
from mobile_harness.session_registry import SessionRegistry

BASE_CONFIG = {
    "appium.server.url": "http://127.0.0.1:4723",
    "android.platform.version": "13.0",
    "android.device.name": "Android Emulator",
    "android.app.package": "com.example.sampleapp",
    "android.app.activity": "com.example.sampleapp.MainActivity",
    "ios.platform.version": "16.0",
    "ios.device.name": "iPhone 14",
    "ios.bundle.id": "com.example.sampleapp",
    "implicit.wait": "0",
    "explicit.wait": "0",
}


def make_resolver(
    base: Optional[dict[str, str]] = None,
    *,
    overrides: Optional[dict[str, str]] = None,
    environ: Optional[dict[str, str]] = None,
) -> ConfigurationResolver:
    merged = dict(BASE_CONFIG)
    merged.update(base or {})
    return ConfigurationResolver(merged, OverrideStore(overrides, environ=environ or {}))


@dataclass
class FakeElement:
    displayed: bool = True
    enabled: bool = True
    text: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    rect: dict[str, int] = field(default_factory=lambda: {"x": 10, "y": 20, "width": 100, "height": 40})
    stale: bool = False
    on_click: Optional[Callable[[], None]] = None


def _stale_error() -> AppiumHTTPError:
    return AppiumHTTPError(
        message="stale element reference",
        method="GET",
        url="http://fake",
        status_code=404,
        error="stale element reference",
    )


class FakeAppiumClient:
    """In-memory stand-in for AppiumHTTPClient."""

    _ids = itertools.count(1)

    def __init__(self, server_url: str, *, timeout_s: float = 30.0) -> None:
        self.server_url = server_url
        self.timeout_s = timeout_s
        self.session_id: Optional[str] = None
        self.calls: list[tuple[str, Any]] = []
        self.elements: dict[tuple[str, str], list[FakeElement]] = {}
        self._by_id: dict[str, FakeElement] = {}
        self.typed: dict[str, str] = {}
        self.page_source = "<hierarchy/>"
        self.screenshot = b"\x89PNG\r\n\x1a\nfake"
        self.window = {"x": 0, "y": 0, "width": 1000, "height": 2000}
        self.fail_create: Optional[Exception] = None
        self.fail_timeouts: Optional[Exception] = None
        self.fail_delete: Optional[Exception] = None
        self.keyboard_error: Optional[Exception] = None
        self.closed = False

    # ----- test helpers

    def add(self, using: str, value: str, **kwargs: Any) -> FakeElement:
        element = FakeElement(**kwargs)
        self.elements.setdefault((using, value), []).append(element)
        return element

    def _element(self, ref: WebDriverElementRef) -> FakeElement:
        element = self._by_id[ref.element_id]
        if element.stale:
            raise _stale_error()
        return element

    def called(self, name: str) -> list[Any]:
        return [args for call, args in self.calls if call == name]

    # ----- session

    def create_session(self, payload: dict[str, Any]) -> str:
        self.calls.append(("create_session", payload))
        if self.fail_create:
            raise self.fail_create
        self.session_id = f"session-{next(self._ids)}"
        return self.session_id

    def set_timeouts(self, *, implicit_ms: int) -> None:
        self.calls.append(("set_timeouts", implicit_ms))
        if self.fail_timeouts:
            raise self.fail_timeouts

    def delete_session(self) -> None:
        self.calls.append(("delete_session", self.session_id))
        if self.fail_delete:
            raise self.fail_delete
        self.session_id = None

    def close(self) -> None:
        self.closed = True

    # ----- screen

    def get_page_source(self) -> str:
        return self.page_source

    def get_screenshot_png_bytes(self) -> bytes:
        return self.screenshot

    def get_window_rect(self) -> dict[str, int]:
        return dict(self.window)

    # ----- elements

    def find_elements(self, *, using: str, value: str) -> list[WebDriverElementRef]:
        self.calls.append(("find_elements", (using, value)))
        refs = []
        for element in self.elements.get((using, value), []):
            element_id = str(id(element))
            self._by_id[element_id] = element
            refs.append(WebDriverElementRef(element_id))
        return refs

    def is_element_displayed(self, ref: WebDriverElementRef) -> bool:
        return self._element(ref).displayed

    def is_element_enabled(self, ref: WebDriverElementRef) -> bool:
        return self._element(ref).enabled

    def get_element_text(self, ref: WebDriverElementRef) -> str:
        return self._element(ref).text

    def get_element_attribute(self, ref: WebDriverElementRef, name: str) -> Optional[str]:
        return self._element(ref).attributes.get(name)

    def get_element_rect(self, ref: WebDriverElementRef) -> dict[str, int]:
        return dict(self._element(ref).rect)

    def click(self, ref: WebDriverElementRef) -> None:
        element = self._element(ref)
        self.calls.append(("click", ref.element_id))
        if element.on_click:
            element.on_click()

    def clear(self, ref: WebDriverElementRef) -> None:
        self.calls.append(("clear", ref.element_id))
        self.typed[ref.element_id] = ""

    def send_keys(self, ref: WebDriverElementRef, *, text: str) -> None:
        self.calls.append(("send_keys", text))
        self.typed[ref.element_id] = self.typed.get(ref.element_id, "") + text

    # ----- gestures / mobile commands

    def tap(self, *, x: int, y: int) -> None:
        self.calls.append(("tap", (x, y)))

    def long_press(self, *, x: int, y: int, duration_ms: int) -> None:
        self.calls.append(("long_press", (x, y, duration_ms)))

    def swipe(self, *, x1: int, y1: int, x2: int, y2: int, duration_ms: int = 1000) -> None:
        self.calls.append(("swipe", (x1, y1, x2, y2, duration_ms)))

    def hide_keyboard(self) -> None:
        self.calls.append(("hide_keyboard", None))
        if self.keyboard_error:
            raise self.keyboard_error

    def activate_app(self, app_id: str) -> None:
        self.calls.append(("activate_app", app_id))

    def terminate_app(self, app_id: str) -> None:
        self.calls.append(("terminate_app", app_id))


class FakeClientFactory:
    """Callable passed as `client_factory`; remembers every client it made."""

    def __init__(self, configure: Optional[Callable[[FakeAppiumClient], None]] = None) -> None:
        self.configure = configure
        self.clients: list[FakeAppiumClient] = []

    def __call__(self, server_url: str, *, timeout_s: float = 30.0) -> FakeAppiumClient:
        client = FakeAppiumClient(server_url, timeout_s=timeout_s)
        if self.configure:
            self.configure(client)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeAppiumClient:
        return self.clients[-1]


@pytest.fixture(autouse=True)
def _reset_process_state():
    reset_resolver()
    reset_build_name()
    yield
    reset_resolver()
    reset_build_name()


@pytest.fixture
def resolver() -> ConfigurationResolver:
    return make_resolver()


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def registry(resolver: ConfigurationResolver, client_factory: FakeClientFactory) -> SessionRegistry:
    reg = SessionRegistry(resolver, client_factory=client_factory)
    yield reg
    reg.close_all()
