from __future__ import annotations

import json
import logging
import os
import re
import threading
from datetime import timedelta
from importlib import resources
from pathlib import Path
from typing import Any, Mapping, Optional, overload

from .env import parse_key_value_lines
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.properties"
CONFIG_PATH_ENV = "MOBILE_HARNESS_CONFIG"
_BUNDLED_PACKAGE = "mobile_harness.resources"
_BUNDLED_NAME = "config.properties"

_TRUE_VALUES = {"true", "yes", "on", "1"}
_FALSE_VALUES = {"false", "no", "off", "0"}
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def load_json_file(path: str | Path) -> Any:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"JSON file not found: {file_path}")
    if file_path.is_dir():
        raise IsADirectoryError(f"Expected a JSON file but found a directory: {file_path}")

    raw = file_path.read_text(encoding="utf-8")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_path}: {e}") from e


def env_var_name(key: str) -> str:
    """`appium.server.url` -> `APPIUM_SERVER_URL`."""
    return re.sub(r"[^A-Za-z0-9]+", "_", key).strip("_").upper()


class OverrideStore:
    """
    Runtime overrides, consulted on every read.

    Explicit overrides (command line) win over the process environment. An
    environment variable matches the exact key or its upper-snake form.
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, str]] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._overrides: dict[str, str] = dict(overrides or {})
        self._environ = environ if environ is not None else os.environ
        self._lock = threading.Lock()

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._overrides[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._overrides.pop(key, None)

    def lookup(self, key: str) -> Optional[str]:
        # Blank values count as unset, the same as blank base entries.
        for value in (
            self._overrides.get(key),
            self._environ.get(key),
            self._environ.get(env_var_name(key)),
        ):
            if value is not None and value.strip():
                return value
        return None


def parse_override_args(raw: list[str]) -> dict[str, str]:
    """Parse `key=value` command-line overrides."""
    parsed: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ConfigurationError(f"Override must look like key=value, got {item!r}")
        key, value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise ConfigurationError(f"Override has an empty key: {item!r}")
        parsed[key] = value.strip()
    return parsed


def _decode_properties(raw: bytes, source: object) -> dict[str, str]:
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        # java.util.Properties files are ISO-8859-1 by convention.
        logger.warning("%s is not valid UTF-8; reading it as ISO-8859-1", source)
        text = raw.decode("latin-1")
    return parse_key_value_lines(text)


def _read_primary(path: Path) -> dict[str, str]:
    if path.is_dir():
        raise IsADirectoryError(f"Expected a properties file but found a directory: {path}")
    return _decode_properties(path.read_bytes(), path)


def _read_bundled() -> dict[str, str]:
    raw = resources.files(_BUNDLED_PACKAGE).joinpath(_BUNDLED_NAME).read_bytes()
    return _decode_properties(raw, _BUNDLED_NAME)


def load_base_config(path: Optional[str | Path] = None) -> dict[str, str]:
    """
    Load the base configuration once.

    Primary location first, then the bundled resource. When both fail the
    harness starts with an empty base configuration.
    """
    primary = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    try:
        values = _read_primary(primary)
        logger.info("Configuration loaded from %s", primary)
        return values
    except OSError as e:
        logger.warning("Could not read configuration from %s (%s), trying bundled defaults", primary, e)

    try:
        values = _read_bundled()
        logger.info("Configuration loaded from bundled resource %s", _BUNDLED_NAME)
        return values
    except (OSError, ModuleNotFoundError) as e:
        logger.warning("Bundled configuration unavailable (%s); starting with empty configuration", e)
    return {}


class ConfigurationResolver:
    """
    Resolves a named setting: override store first, base configuration second.

    The base configuration is read-only after construction. Values are
    resolved on every call so late overrides are always honoured.
    """

    def __init__(
        self,
        base: Optional[Mapping[str, str]] = None,
        overrides: Optional[OverrideStore] = None,
    ) -> None:
        self._base: dict[str, str] = dict(base or {})
        self.overrides = overrides if overrides is not None else OverrideStore()

    @classmethod
    def from_file(
        cls,
        path: Optional[str | Path] = None,
        *,
        overrides: Optional[OverrideStore] = None,
    ) -> "ConfigurationResolver":
        return cls(load_base_config(path), overrides)

    @overload
    def get(self, key: str) -> Optional[str]: ...

    @overload
    def get(self, key: str, default: str) -> str: ...

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.overrides.lookup(key)
        if value is not None:
            logger.debug("Using override for %r", key)
            return value
        value = self._base.get(key)
        # Blank entries in the properties file mean "not configured".
        if value is not None and value.strip():
            return value
        return default

    def require(self, key: str) -> str:
        value = self.get(key)
        if value is None or not value.strip():
            raise ConfigurationError(f"Required setting '{key}' is not configured")
        return value

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        raw = self.get(key)
        if raw is None or not raw.strip():
            return default
        try:
            return int(raw.strip())
        except ValueError as e:
            raise ConfigurationError(f"Setting '{key}' must be an integer, got {raw!r}") from e

    def get_bool(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        raw = self.get(key)
        if raw is None or not raw.strip():
            return default
        normalized = raw.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
        raise ConfigurationError(f"Setting '{key}' must be a boolean, got {raw!r}")

    def get_duration(self, key: str, default: Optional[timedelta] = None) -> Optional[timedelta]:
        """Bare numbers are seconds; `ms`, `s`, `m` and `h` suffixes are accepted."""
        raw = self.get(key)
        if raw is None or not raw.strip():
            return default
        match = _DURATION_RE.match(raw)
        if not match:
            raise ConfigurationError(f"Setting '{key}' must be a duration like '30', '30s' or '500ms', got {raw!r}")
        amount = float(match.group(1))
        unit = (match.group(2) or "s").lower()
        return timedelta(seconds=amount * _DURATION_UNITS[unit])

    def base_keys(self) -> list[str]:
        return sorted(self._base)

    # ========== Appium server ==========

    def appium_server_url(self) -> str:
        return self.get("appium.server.url", "http://127.0.0.1:4723")

    # ========== Android ==========

    def android_platform_name(self) -> str:
        return self.get("android.platform.name", "Android")

    def android_platform_version(self) -> Optional[str]:
        return self.get("android.platform.version")

    def android_device_name(self) -> Optional[str]:
        return self.get("android.device.name")

    def android_automation_name(self) -> str:
        return self.get("android.automation.name", "UiAutomator2")

    def android_app_path(self) -> Optional[str]:
        return self.get("android.app.path")

    def android_app_package(self) -> Optional[str]:
        return self.get("android.app.package")

    def android_app_activity(self) -> Optional[str]:
        return self.get("android.app.activity")

    # ========== iOS ==========

    def ios_platform_name(self) -> str:
        return self.get("ios.platform.name", "iOS")

    def ios_platform_version(self) -> Optional[str]:
        return self.get("ios.platform.version")

    def ios_device_name(self) -> Optional[str]:
        return self.get("ios.device.name")

    def ios_automation_name(self) -> str:
        return self.get("ios.automation.name", "XCUITest")

    def ios_app_path(self) -> Optional[str]:
        return self.get("ios.app.path")

    def ios_bundle_id(self) -> Optional[str]:
        return self.get("ios.bundle.id")

    def ios_udid(self) -> str:
        return self.get("ios.udid", "auto")

    # ========== Common capabilities ==========

    def no_reset(self) -> bool:
        return bool(self.get_bool("app.no.reset", False))

    def full_reset(self) -> bool:
        return bool(self.get_bool("app.full.reset", False))

    def new_command_timeout(self) -> timedelta:
        return self.get_duration("new.command.timeout", timedelta(seconds=300))

    def auto_grant_permissions(self) -> bool:
        return bool(self.get_bool("auto.grant.permissions", True))

    # ========== Waits ==========

    def implicit_wait(self) -> timedelta:
        return self.get_duration("implicit.wait", timedelta(seconds=10))

    def explicit_wait(self) -> timedelta:
        return self.get_duration("explicit.wait", timedelta(seconds=30))

    # ========== Execution ==========

    def platform(self) -> str:
        return self.get("platform", "android")

    def execution_mode(self) -> str:
        return self.get("execution.mode", "local")

    def thread_count(self) -> int:
        return self.get_int("thread.count", 3)

    # ========== Reporting / logging / data ==========

    def report_path(self) -> Path:
        return Path(self.get("report.path", "reports/"))

    def screenshot_path(self) -> Path:
        return Path(self.get("screenshot.path", "reports/screenshots/"))

    def report_name(self) -> str:
        return self.get("extent.report.name", "Mobile-Automation-Test-Report")

    def report_title(self) -> str:
        return self.get("extent.report.title", "Mobile Test Execution Report")

    def log_level(self) -> str:
        return self.get("log.level", "INFO")

    def log_path(self) -> Path:
        return Path(self.get("log.path", "logs/"))

    def log_file_name(self) -> str:
        return self.get("log.file.name", "mobile-automation.log")

    def test_data_path(self) -> Path:
        return Path(self.get("test.data.path", "ui_tests/testdata/"))

    # ========== Cloud provider (BrowserStack) ==========

    def cloud_username(self) -> Optional[str]:
        return self.get("browserstack.username")

    def cloud_access_key(self) -> Optional[str]:
        return self.get("browserstack.access.key")

    def cloud_hub_url(self) -> str:
        return self.get("browserstack.hub.url", "https://hub-cloud.browserstack.com/wd/hub")

    def cloud_project(self) -> str:
        return self.get("browserstack.project", "Mobile Automation Framework")

    def cloud_build(self) -> str:
        return self.get("browserstack.build", "Build 1.0")

    def cloud_session_name(self) -> str:
        return self.get("browserstack.name", "Mobile Test Execution")

    def cloud_debug(self) -> bool:
        return bool(self.get_bool("browserstack.debug", True))

    def cloud_network_logs(self) -> bool:
        return bool(self.get_bool("browserstack.network.logs", True))

    def cloud_video(self) -> bool:
        return bool(self.get_bool("browserstack.video", True))

    def cloud_console(self) -> str:
        return self.get("browserstack.console", "errors")

    def cloud_timezone(self) -> str:
        return self.get("browserstack.timezone", "UTC")

    def cloud_android_app_url(self) -> Optional[str]:
        return self.get("browserstack.android.app.url")

    def cloud_ios_app_url(self) -> Optional[str]:
        return self.get("browserstack.ios.app.url")

    def cloud_android_device(self) -> str:
        return self.get("browserstack.android.device", "Google Pixel 7")

    def cloud_android_os_version(self) -> str:
        return self.get("browserstack.android.os.version", "13.0")

    def cloud_ios_device(self) -> str:
        return self.get("browserstack.ios.device", "iPhone 14")

    def cloud_ios_os_version(self) -> str:
        return self.get("browserstack.ios.os.version", "16")


_RESOLVER: Optional[ConfigurationResolver] = None
_RESOLVER_LOCK = threading.Lock()


def get_resolver() -> ConfigurationResolver:
    """
    Process-wide resolver, loaded on first use.

    Prefer passing the resolver explicitly; this accessor exists for entry
    points (CLI, pytest plugin) that have to create one.
    """
    global _RESOLVER
    if _RESOLVER is None:
        with _RESOLVER_LOCK:
            if _RESOLVER is None:
                _RESOLVER = ConfigurationResolver.from_file()
    return _RESOLVER


def reset_resolver() -> None:
    global _RESOLVER
    with _RESOLVER_LOCK:
        _RESOLVER = None
