"""Tests for screenshot capture and retention."""
import os
import re
import time

from mobile_harness.capabilities import CapabilityBuilder
from mobile_harness.screenshots import (
    artifact_path,
    capture_failure_screenshot,
    capture_screenshot,
    capture_success_screenshot,
    cleanup_old_screenshots,
)


def _open(registry, resolver):
    registry.open("w1", CapabilityBuilder(resolver).build("android", "local"))


def test_artifact_path_sanitises_name(tmp_path):
    """Test that unsafe characters are replaced in file names."""
    path = artifact_path(tmp_path, "test_login[valid/creds]")
    assert path.parent == tmp_path
    assert re.fullmatch(r"test_login_valid_creds__\d{8}_\d{6}_\d{3}\.png", path.name)


def test_failure_screenshot_written(registry, resolver, client_factory, tmp_path):
    """Test that a failure screenshot lands on disk with the FAILED suffix."""
    _open(registry, resolver)
    path = capture_failure_screenshot(registry, "w1", tmp_path / "shots", "test_login")

    assert path is not None and path.exists()
    assert path.name.startswith("test_login_FAILED_")
    assert path.read_bytes() == client_factory.last.screenshot


def test_success_screenshot_suffix(registry, resolver, tmp_path):
    """Test the PASSED suffix."""
    _open(registry, resolver)
    path = capture_success_screenshot(registry, "w1", tmp_path, "test_form")
    assert path.name.startswith("test_form_PASSED_")


def test_capture_without_session_returns_none(registry, tmp_path, caplog):
    """Test that capture is best effort when no session is open."""
    assert capture_screenshot(registry, "nobody", tmp_path, "x") is None
    assert "no open session" in caplog.text


def test_capture_failure_returns_none(registry, resolver, client_factory, tmp_path, monkeypatch):
    """Test that a failing screenshot call does not raise."""
    _open(registry, resolver)

    def _boom():
        raise RuntimeError("device disconnected")

    monkeypatch.setattr(client_factory.last, "get_screenshot_png_bytes", _boom)
    assert capture_screenshot(registry, "w1", tmp_path, "x") is None


def test_cleanup_old_screenshots(tmp_path):
    """Test that only files older than the retention window are deleted."""
    old = tmp_path / "old.png"
    new = tmp_path / "new.png"
    old.write_bytes(b"1")
    new.write_bytes(b"2")
    ten_days_ago = time.time() - 10 * 24 * 60 * 60
    os.utime(old, (ten_days_ago, ten_days_ago))

    assert cleanup_old_screenshots(tmp_path, 7) == 1
    assert not old.exists()
    assert new.exists()


def test_cleanup_missing_directory(tmp_path):
    """Test cleanup on a directory that doesn't exist."""
    assert cleanup_old_screenshots(tmp_path / "nope", 7) == 0
