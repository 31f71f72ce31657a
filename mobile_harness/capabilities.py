"""Translate resolved configuration into a WebDriver new-session request."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from .config import ConfigurationResolver
from .errors import ConfigurationError, InvalidPlatform, MissingAppReference

logger = logging.getLogger(__name__)

# W3C capabilities that go on the wire without a vendor prefix.
_STANDARD_CAPABILITIES = frozenset({"platformName", "browserName", "browserVersion"})


class Platform(str, Enum):
    ANDROID = "android"
    IOS = "ios"

    @classmethod
    def parse(cls, value: "str | Platform") -> "Platform":
        if isinstance(value, Platform):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise InvalidPlatform(f"Invalid platform: {value!r}. Use 'android' or 'ios'")


class ExecutionEnvironment(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud-provider"

    @classmethod
    def parse(cls, value: "str | ExecutionEnvironment") -> "ExecutionEnvironment":
        if isinstance(value, ExecutionEnvironment):
            return value
        normalized = str(value or "").strip().lower()
        if normalized == "local":
            return cls.LOCAL
        if normalized in {"cloud-provider", "cloud", "browserstack"}:
            return cls.CLOUD
        raise ConfigurationError(f"Unknown execution environment: {value!r}. Use 'local' or 'cloud-provider'")


class AppReference(str, Enum):
    APP_PATH = "app_path"
    APP_IDENTIFIER = "app_identifier"
    CLOUD_APP = "cloud_app"


class CapabilitySet(Mapping):
    """
    Immutable capability mapping for one session request.

    `app_reference_kind` records which of the three app slots is populated.
    """

    def __init__(
        self,
        platform: Platform,
        environment: ExecutionEnvironment,
        capabilities: Mapping[str, Any],
        app_reference_kind: AppReference,
    ) -> None:
        self.platform = platform
        self.environment = environment
        self.app_reference_kind = app_reference_kind
        self._caps = MappingProxyType(dict(capabilities))

    def __getitem__(self, key: str) -> Any:
        return self._caps[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._caps)

    def __len__(self) -> int:
        return len(self._caps)

    def __repr__(self) -> str:
        return f"CapabilitySet({self.platform.value}, {self.environment.value}, {dict(self._caps)!r})"

    @property
    def app_path(self) -> Optional[str]:
        return self._caps.get("app") if self.app_reference_kind is AppReference.APP_PATH else None

    @property
    def cloud_app(self) -> Optional[str]:
        return self._caps.get("app") if self.app_reference_kind is AppReference.CLOUD_APP else None

    @property
    def app_package(self) -> Optional[str]:
        return self._caps.get("appPackage")

    @property
    def app_activity(self) -> Optional[str]:
        return self._caps.get("appActivity")

    @property
    def bundle_id(self) -> Optional[str]:
        return self._caps.get("bundleId")

    @property
    def app_identifier(self) -> Optional[str]:
        """Package (android) or bundle id (ios), when configured."""
        return self.app_package or self.bundle_id

    def to_session_payload(self) -> dict[str, Any]:
        always_match: dict[str, Any] = {}
        for key, value in self._caps.items():
            if value is None:
                continue
            if key in _STANDARD_CAPABILITIES or ":" in key:
                always_match[key] = value
            else:
                always_match[f"appium:{key}"] = value
        return {"capabilities": {"alwaysMatch": always_match, "firstMatch": [{}]}}


def _app_slot_count(caps: Mapping[str, Any]) -> int:
    slots = 0
    if caps.get("app"):
        slots += 1
    if caps.get("appPackage") or caps.get("bundleId"):
        slots += 1
    return slots


_BUILD_NAME: Optional[str] = None
_BUILD_NAME_LOCK = threading.Lock()


def generate_build_name(build_version: str, platform: Platform, device: str, *, now: Optional[datetime] = None) -> str:
    """
    Cloud build name, created once per process and reused by every session.

    Format: Build_1.0_Android_GooglePixel7_20251018_143045
    """
    global _BUILD_NAME
    with _BUILD_NAME_LOCK:
        if _BUILD_NAME is None:
            timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
            clean_device = re.sub(r"[^a-zA-Z0-9]", "", device)
            _BUILD_NAME = "_".join(
                [build_version.replace(" ", "_"), platform.value.capitalize(), clean_device, timestamp]
            )
            logger.info("Generated build name: %s", _BUILD_NAME)
        return _BUILD_NAME


def reset_build_name() -> None:
    global _BUILD_NAME
    with _BUILD_NAME_LOCK:
        _BUILD_NAME = None


def _checked_url(key: str, url: str) -> str:
    parts = urlsplit(url.strip())
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ConfigurationError(f"Setting '{key}' must be an http(s) URL with a host, got {url!r}")
    return url.strip()


def resolve_server_url(environment: "str | ExecutionEnvironment", resolver: ConfigurationResolver) -> str:
    """Endpoint for the environment; cloud credentials are embedded in the URL."""
    environment = ExecutionEnvironment.parse(environment)
    if environment is ExecutionEnvironment.LOCAL:
        return _checked_url("appium.server.url", resolver.appium_server_url())

    username = resolver.cloud_username()
    access_key = resolver.cloud_access_key()
    if not username or not access_key:
        raise ConfigurationError("Cloud execution needs browserstack.username and browserstack.access.key")
    parts = urlsplit(_checked_url("browserstack.hub.url", resolver.cloud_hub_url()))
    netloc = f"{quote(username, safe='')}:{quote(access_key, safe='')}@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class CapabilityBuilder:
    """Builds a validated CapabilitySet for a platform and execution environment."""

    def __init__(self, resolver: ConfigurationResolver) -> None:
        self.resolver = resolver

    def build(
        self,
        platform: "str | Platform",
        environment: "str | ExecutionEnvironment",
        *,
        session_name: Optional[str] = None,
    ) -> CapabilitySet:
        platform = Platform.parse(platform)
        environment = ExecutionEnvironment.parse(environment)

        if environment is ExecutionEnvironment.CLOUD:
            caps, reference = self._cloud(platform, session_name=session_name)
        elif platform is Platform.ANDROID:
            caps, reference = self._local_android()
        else:
            caps, reference = self._local_ios()

        if _app_slot_count(caps) != 1:
            raise MissingAppReference(
                f"Exactly one app reference must be configured for {platform.value}/{environment.value}"
            )

        capability_set = CapabilitySet(platform, environment, caps, reference)
        logger.info("%s %s capabilities: %r", environment.value, platform.value, dict(capability_set))
        return capability_set

    def _common(self) -> dict[str, Any]:
        return {
            "noReset": self.resolver.no_reset(),
            "fullReset": self.resolver.full_reset(),
            "newCommandTimeout": int(self.resolver.new_command_timeout().total_seconds()),
        }

    def _local_app(
        self,
        app_path: Optional[str],
        identifier_caps: dict[str, Any],
        *,
        label: str,
    ) -> tuple[dict[str, Any], AppReference]:
        # A configured but missing app file falls back to the installed app identifiers.
        if app_path:
            app_file = Path(app_path).expanduser()
            if app_file.is_file():
                resolved = str(app_file.resolve())
                logger.info("%s app path set to: %s", label, resolved)
                return {"app": resolved}, AppReference.APP_PATH
            logger.warning("%s app file not found at: %s. Using app identifier instead.", label, app_path)
        present = {k: v for k, v in identifier_caps.items() if v}
        if not present:
            raise MissingAppReference(f"{label}: no app path and no app identifier configured")
        return present, AppReference.APP_IDENTIFIER

    def _local_android(self) -> tuple[dict[str, Any], AppReference]:
        r = self.resolver
        caps: dict[str, Any] = {
            "platformName": r.android_platform_name(),
            "platformVersion": r.android_platform_version(),
            "deviceName": r.android_device_name(),
            "automationName": r.android_automation_name(),
        }
        app_caps, reference = self._local_app(
            r.android_app_path(),
            {"appPackage": r.android_app_package(), "appActivity": r.android_app_activity()},
            label="Android",
        )
        if reference is AppReference.APP_IDENTIFIER and "appPackage" not in app_caps:
            raise MissingAppReference("Android: appActivity is configured without appPackage")
        caps.update(app_caps)
        caps.update(self._common())
        caps["autoGrantPermissions"] = r.auto_grant_permissions()
        caps["skipServerInstallation"] = True
        caps["skipDeviceInitialization"] = True
        return caps, reference

    def _local_ios(self) -> tuple[dict[str, Any], AppReference]:
        r = self.resolver
        caps: dict[str, Any] = {
            "platformName": r.ios_platform_name(),
            "platformVersion": r.ios_platform_version(),
            "deviceName": r.ios_device_name(),
            "automationName": r.ios_automation_name(),
        }
        app_caps, reference = self._local_app(r.ios_app_path(), {"bundleId": r.ios_bundle_id()}, label="iOS")
        caps.update(app_caps)
        udid = r.ios_udid()
        if udid and udid.lower() != "auto":
            caps["udid"] = udid
        caps.update(self._common())
        caps["wdaLaunchTimeout"] = 120_000
        caps["showXcodeLog"] = True
        return caps, reference

    def _cloud(self, platform: Platform, *, session_name: Optional[str]) -> tuple[dict[str, Any], AppReference]:
        r = self.resolver
        if platform is Platform.ANDROID:
            device = r.cloud_android_device()
            os_version = r.cloud_android_os_version()
            app_url = r.cloud_android_app_url()
            identifier_caps = {"appPackage": r.android_app_package(), "appActivity": r.android_app_activity()}
            caps: dict[str, Any] = {"platformName": "Android", "automationName": "UiAutomator2"}
        else:
            device = r.cloud_ios_device()
            os_version = r.cloud_ios_os_version()
            app_url = r.cloud_ios_app_url()
            identifier_caps = {"bundleId": r.ios_bundle_id()}
            caps = {"platformName": "iOS", "automationName": "XCUITest"}

        caps["deviceName"] = device
        caps["platformVersion"] = os_version

        # Cloud sessions cannot launch from a local file path.
        if app_url:
            logger.info("Cloud %s app handle: %s", platform.value, app_url)
            caps["app"] = app_url
            reference = AppReference.CLOUD_APP
        else:
            present = {k: v for k, v in identifier_caps.items() if v}
            if not present.get("appPackage") and not present.get("bundleId"):
                raise MissingAppReference(
                    f"Cloud {platform.value} session needs an uploaded app handle or an app identifier"
                )
            logger.warning("Cloud %s app handle not configured; launching installed app %s", platform.value, present)
            caps.update(present)
            reference = AppReference.APP_IDENTIFIER

        vendor: dict[str, Any] = {
            "projectName": r.cloud_project(),
            "buildName": generate_build_name(r.cloud_build(), platform, device),
            "sessionName": session_name or r.cloud_session_name(),
            "debug": r.cloud_debug(),
            "networkLogs": r.cloud_network_logs(),
            "video": r.cloud_video(),
            "timezone": r.cloud_timezone(),
        }
        # Console logs are not supported for iOS app automation.
        if platform is Platform.ANDROID:
            vendor["consoleLogs"] = r.cloud_console()
        caps["bstack:options"] = vendor
        caps.update(self._common())
        return caps, reference
