from __future__ import annotations

from pathlib import Path

import pytest

from mobile_harness.pages import LoginPage

TESTDATA_DIR = Path(__file__).parent / "testdata"


@pytest.fixture
def login_page(mobile_session, session_registry, worker_key, report_step, report_assertion) -> LoginPage:
    """Fresh session on the login screen."""
    report_step("Verifying login page is displayed")
    page = LoginPage(session_registry, worker_key)
    assert report_assertion("Login page is displayed", page.is_displayed_page())
    return page
