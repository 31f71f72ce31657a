"""Error taxonomy for the harness."""

from __future__ import annotations


class HarnessError(RuntimeError):
    """Base exception for all harness errors."""


# ── Configuration ──────────────────────────────────────────────


class ConfigurationError(HarnessError):
    """A setting is malformed (e.g. non-numeric where an integer is expected)."""


class TestDataError(HarnessError):
    """A test-data file is missing or has the wrong shape."""

    __test__ = False


# ── Capabilities ───────────────────────────────────────────────


class InvalidPlatform(HarnessError):
    """Platform is not one of android/ios."""


class MissingAppReference(HarnessError):
    """No usable app reference (or more than one) for the requested session."""


# ── Session registry ───────────────────────────────────────────


class AlreadyOpen(HarnessError):
    """A session is already open (or opening) for this worker key."""


class NotInitialized(HarnessError):
    """No session is open for this worker key."""


class ConnectionFailed(HarnessError):
    """The remote handshake with the automation server failed."""


# ── Pages ──────────────────────────────────────────────────────


class ElementTimeout(HarnessError):
    """An element did not reach the awaited state in time."""
