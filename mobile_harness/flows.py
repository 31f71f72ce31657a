from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .accessibility import extract_accessible_strings
from .capabilities import CapabilityBuilder, Platform
from .config import ConfigurationResolver
from .screenshots import artifact_path
from .session_registry import SessionRegistry, default_worker_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmokeTestResult:
    session_id: str
    screenshot_path: Path
    page_source_path: Path


def _default_artifacts_dir() -> Path:
    return Path(os.environ.get("MOBILE_HARNESS_ARTIFACTS_DIR", "artifacts")).resolve()


def _wait_for_enter(prompt: str) -> None:
    input(f"\nAppium session started. Use the device now (login/navigate), then press Enter to {prompt}...")


def run_smoke_test(
    resolver: ConfigurationResolver,
    *,
    platform: Optional[str] = None,
    artifacts_dir: Optional[str | Path] = None,
    wait_for_enter_before_capture: bool = False,
    registry: Optional[SessionRegistry] = None,
) -> SmokeTestResult:
    """
    Open a session, save a screenshot and the UI XML (/source), then close it.

    This is the fastest way to validate:
    - Appium connectivity and capabilities
    - device/emulator availability
    - whether the app exposes text through accessibility
    """
    target = Platform.parse(platform or resolver.platform())
    capabilities = CapabilityBuilder(resolver).build(target, resolver.execution_mode(), session_name="smoke-test")

    out_dir = Path(artifacts_dir).resolve() if artifacts_dir else _default_artifacts_dir()
    out_dir.mkdir(parents=True, exist_ok=True)

    registry = registry or SessionRegistry(resolver)
    worker_key = default_worker_key()
    session = registry.open(worker_key, capabilities)
    try:
        if wait_for_enter_before_capture:
            _wait_for_enter("capture")

        screenshot_path = artifact_path(out_dir, f"{target.value}_screenshot")
        page_source_path = artifact_path(out_dir, f"{target.value}_page_source", ext="xml")
        screenshot_path.write_bytes(session.client.get_screenshot_png_bytes())
        page_source_path.write_text(session.client.get_page_source(), encoding="utf-8")
        logger.info("Smoke test artifacts written to %s", out_dir)

        return SmokeTestResult(
            session_id=session.session_id,
            screenshot_path=screenshot_path,
            page_source_path=page_source_path,
        )
    finally:
        registry.close(worker_key)


def run_accessibility_dump(
    resolver: ConfigurationResolver,
    *,
    platform: Optional[str] = None,
    max_strings: int = 200,
    wait_for_enter_before_capture: bool = False,
    registry: Optional[SessionRegistry] = None,
) -> list[str]:
    """Open a session, grab /source, and return the accessible strings on screen."""
    target = Platform.parse(platform or resolver.platform())
    capabilities = CapabilityBuilder(resolver).build(target, resolver.execution_mode(), session_name="accessibility-dump")

    registry = registry or SessionRegistry(resolver)
    worker_key = default_worker_key()
    session = registry.open(worker_key, capabilities)
    try:
        if wait_for_enter_before_capture:
            _wait_for_enter("dump strings")

        strings = extract_accessible_strings(session.client.get_page_source(), limit=2000)
        return strings[:max_strings]
    finally:
        registry.close(worker_key)
