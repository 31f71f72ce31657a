from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Hashable, Optional

from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]


def artifact_path(directory: Path, stem: str, *, ext: str = "png") -> Path:
    safe_stem = "".join(c if c.isalnum() or c in ("-", "_") else "_" for c in stem.strip())
    if not safe_stem:
        safe_stem = "screenshot"
    return Path(directory) / f"{safe_stem}_{_timestamp()}.{ext.lstrip('.')}"


def capture_screenshot(
    registry: SessionRegistry,
    worker_key: Hashable,
    directory: Path,
    name: str,
) -> Optional[Path]:
    """
    Save a PNG of the worker's current screen.

    Best effort: returns None (and logs) when there is no open session or
    the capture fails.
    """
    if not registry.is_open(worker_key):
        logger.error("Cannot capture screenshot - no open session for worker %r", worker_key)
        return None
    try:
        png = registry.current(worker_key).client.get_screenshot_png_bytes()
        Path(directory).mkdir(parents=True, exist_ok=True)
        path = artifact_path(directory, name)
        path.write_bytes(png)
    except Exception as e:
        logger.error("Failed to capture screenshot for %s: %s", name, e)
        return None
    logger.info("Screenshot captured: %s", path)
    return path.resolve()


def capture_failure_screenshot(
    registry: SessionRegistry, worker_key: Hashable, directory: Path, test_name: str
) -> Optional[Path]:
    logger.info("Capturing failure screenshot for test: %s", test_name)
    return capture_screenshot(registry, worker_key, directory, f"{test_name}_FAILED")


def capture_success_screenshot(
    registry: SessionRegistry, worker_key: Hashable, directory: Path, test_name: str
) -> Optional[Path]:
    return capture_screenshot(registry, worker_key, directory, f"{test_name}_PASSED")


def cleanup_old_screenshots(directory: Path, days_to_keep: int) -> int:
    """Delete files older than `days_to_keep` days. Returns the number deleted."""
    directory = Path(directory)
    if not directory.is_dir():
        logger.warning("Screenshot directory does not exist: %s", directory)
        return 0

    cutoff = time.time() - days_to_keep * 24 * 60 * 60
    deleted = 0
    for path in directory.iterdir():
        if path.is_file() and path.stat().st_mtime < cutoff:
            try:
                path.unlink()
                deleted += 1
            except OSError as e:
                logger.warning("Could not delete %s: %s", path, e)
    logger.info("Cleaned up %d old screenshot(s) older than %d days", deleted, days_to_keep)
    return deleted
