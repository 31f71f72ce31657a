"""
pytest integration for the harness.

Loaded through `pytest_plugins` in the repository conftest. Tests that
request `mobile_session` get a freshly opened Appium session for their
worker, a report entry, and a failure screenshot when they fail.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Callable, Hashable, Optional

import pytest

from .capabilities import CapabilityBuilder, Platform
from .config import ConfigurationResolver, OverrideStore, parse_override_args
from .log import configure_logging, reset_logging
from .reporting import HtmlReport, Status
from .screenshots import capture_failure_screenshot
from .session_registry import SessionRegistry, default_worker_key

DEVICE_MARKER = "device"


@dataclass
class HarnessState:
    """Per-run objects shared by the fixtures and hooks."""

    overrides: dict[str, str]
    platform_option: Optional[str]
    resolver: Optional[ConfigurationResolver] = None
    registry: Optional[SessionRegistry] = None
    report: Optional[HtmlReport] = None
    session_keys: dict[str, Hashable] = field(default_factory=dict)

    def get_resolver(self) -> ConfigurationResolver:
        if self.resolver is None:
            store = OverrideStore(self.overrides)
            if self.platform_option:
                store.set("platform", self.platform_option)
            self.resolver = ConfigurationResolver.from_file(overrides=store)
            configure_logging(self.resolver)
        return self.resolver

    def get_registry(self) -> SessionRegistry:
        if self.registry is None:
            self.registry = SessionRegistry(self.get_resolver())
        return self.registry

    def get_report(self) -> HtmlReport:
        if self.report is None:
            resolver = self.get_resolver()
            name = resolver.report_name()
            worker = os.environ.get("PYTEST_XDIST_WORKER")
            if worker:
                name = f"{name}_{worker}"
            self.report = HtmlReport(
                resolver.report_path(),
                report_name=name,
                title=resolver.report_title(),
                system_info={
                    "Platform": resolver.platform(),
                    "Execution Mode": resolver.execution_mode(),
                },
            )
        return self.report


def _state(config: pytest.Config) -> HarnessState:
    return config._mobile_harness


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("mobile_harness", "mobile UI test harness")
    group.addoption(
        "--platform",
        default=None,
        help="Target platform (android or ios). Wins over the `platform` setting.",
    )
    group.addoption(
        "--config-override",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a configuration key for this run. Repeatable.",
    )
    group.addoption(
        "--run-device",
        action="store_true",
        default=False,
        help="Run tests marked `device` (needs a reachable Appium server).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", f"{DEVICE_MARKER}: needs a real device or emulator behind Appium")
    config._mobile_harness = HarnessState(
        overrides=parse_override_args(config.getoption("--config-override")),
        platform_option=config.getoption("--platform"),
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-device"):
        return
    skip_device = pytest.mark.skip(reason="device test; pass --run-device to run it")
    for item in items:
        if DEVICE_MARKER in item.keywords:
            item.add_marker(skip_device)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo):
    outcome = yield
    report = outcome.get_result()

    state = _state(item.config)
    worker_key = state.session_keys.get(item.nodeid)
    if worker_key is None or state.report is None:
        return
    # Setup errors and the test body end the report entry; teardown never does.
    if report.when == "teardown" or (report.when == "setup" and report.passed):
        return

    duration_ms = int(report.duration * 1000)
    if report.passed:
        state.report.end_test(worker_key, Status.PASS, duration_ms=duration_ms)
    elif report.skipped:
        state.report.end_test(worker_key, Status.SKIP, duration_ms=duration_ms, error=_skip_reason(report))
    else:
        screenshot_dir = state.get_resolver().screenshot_path()
        registry = getattr(item, "funcargs", {}).get("session_registry") or state.registry
        path = None
        if registry is not None:
            path = capture_failure_screenshot(registry, worker_key, screenshot_dir, item.name)
        if path is not None:
            state.report.attach_screenshot(worker_key, path, "Failure Screenshot")
        state.report.end_test(worker_key, Status.FAIL, duration_ms=duration_ms, error=str(report.longrepr))
    state.session_keys.pop(item.nodeid, None)


def _skip_reason(report: pytest.TestReport) -> Optional[str]:
    if isinstance(report.longrepr, tuple) and len(report.longrepr) == 3:
        return str(report.longrepr[2])
    return None


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    state: Optional[HarnessState] = getattr(session.config, "_mobile_harness", None)
    if state is None:
        return
    if state.registry is not None:
        state.registry.close_all()
    if state.report is not None and state.report.tests:
        state.report.write()


def pytest_unconfigure(config: pytest.Config) -> None:
    if getattr(config, "_mobile_harness", None) is not None:
        reset_logging()


# ========== FIXTURES ==========


@pytest.fixture(scope="session")
def harness_config(pytestconfig: pytest.Config) -> ConfigurationResolver:
    return _state(pytestconfig).get_resolver()


@pytest.fixture(scope="session")
def session_registry(pytestconfig: pytest.Config) -> SessionRegistry:
    return _state(pytestconfig).get_registry()


@pytest.fixture(scope="session")
def harness_report(pytestconfig: pytest.Config) -> HtmlReport:
    return _state(pytestconfig).get_report()


@pytest.fixture(scope="session")
def target_platform(harness_config: ConfigurationResolver) -> Platform:
    """--platform, then the `platform` setting (env/config), then android."""
    return Platform.parse(harness_config.platform())


@pytest.fixture
def worker_key() -> str:
    return default_worker_key()


@pytest.fixture
def mobile_session(
    request: pytest.FixtureRequest,
    harness_config: ConfigurationResolver,
    session_registry: SessionRegistry,
    harness_report: HtmlReport,
    target_platform: Platform,
    worker_key: str,
):
    """Open a session for this test's worker and close it afterwards, whatever the outcome."""
    state = _state(request.config)
    node = request.node
    doc = (request.function.__doc__ or "").strip()
    description = doc.splitlines()[0] if doc else ""
    harness_report.start_test(worker_key, node.name, category=target_platform.value, description=description)
    state.session_keys[node.nodeid] = worker_key

    builder = CapabilityBuilder(harness_config)
    capabilities = builder.build(target_platform, harness_config.execution_mode(), session_name=node.name)
    session = session_registry.open(worker_key, capabilities)
    started = time.monotonic()
    try:
        yield session
    finally:
        harness_report.log(
            worker_key,
            Status.INFO,
            f"Session {session.session_id} closed after {time.monotonic() - started:.1f}s",
        )
        session_registry.close(worker_key)


@pytest.fixture
def report_step(harness_report: HtmlReport, worker_key: str) -> Callable[[str], None]:
    def _step(message: str) -> None:
        harness_report.log(worker_key, Status.INFO, message)

    return _step


@pytest.fixture
def report_assertion(harness_report: HtmlReport, worker_key: str) -> Callable[[str, bool], bool]:
    """Record an assertion outcome in the report; returns `passed` so it can be asserted on."""

    def _assertion(message: str, passed: bool) -> bool:
        if passed:
            harness_report.log(worker_key, Status.PASS, f"Assertion passed: {message}")
        else:
            harness_report.log(worker_key, Status.FAIL, f"Assertion failed: {message}")
        return passed

    return _assertion
