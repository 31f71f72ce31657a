from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import BasePage, PlatformLocator, accessibility_id, android_id

if TYPE_CHECKING:
    from .home import HomePage

logger = logging.getLogger(__name__)

_PKG = "com.example.sampleapp:id"


class LoginPage(BasePage):
    USERNAME = PlatformLocator(android_id(f"{_PKG}/username"), accessibility_id("usernameTextField"))
    PASSWORD = PlatformLocator(android_id(f"{_PKG}/password"), accessibility_id("passwordTextField"))
    LOGIN_BUTTON = PlatformLocator(android_id(f"{_PKG}/loginButton"), accessibility_id("loginButton"))
    ERROR_MESSAGE = PlatformLocator(android_id(f"{_PKG}/errorMessage"), accessibility_id("errorMessage"))
    FORGOT_PASSWORD = PlatformLocator(android_id(f"{_PKG}/forgotPassword"), accessibility_id("forgotPasswordLink"))
    SIGN_UP = PlatformLocator(android_id(f"{_PKG}/signupLink"), accessibility_id("signupLink"))
    APP_LOGO = PlatformLocator(android_id(f"{_PKG}/appLogo"), accessibility_id("appLogo"))

    # ========== ACTIONS ==========

    def enter_username(self, username: str) -> "LoginPage":
        logger.info("Entering username: %s", username)
        self.type_text(self.USERNAME, username)
        return self

    def enter_password(self, password: str) -> "LoginPage":
        logger.info("Entering password")
        self.type_text(self.PASSWORD, password, secret=True)
        return self

    def click_login(self) -> "HomePage":
        from .home import HomePage

        self.click(self.LOGIN_BUTTON)
        return self._page(HomePage)

    def login(self, username: str, password: str) -> "HomePage":
        logger.info("Performing login with username: %s", username)
        self.enter_username(username)
        self.enter_password(password)
        self.hide_keyboard()
        return self.click_login()

    def click_forgot_password(self) -> "LoginPage":
        self.click(self.FORGOT_PASSWORD)
        return self

    def click_sign_up(self) -> "LoginPage":
        self.click(self.SIGN_UP)
        return self

    def clear_fields(self) -> "LoginPage":
        self.clear(self.USERNAME)
        self.clear(self.PASSWORD)
        return self

    # ========== CHECKS ==========

    def is_displayed_page(self) -> bool:
        return self.is_displayed(self.APP_LOGO)

    def is_login_enabled(self) -> bool:
        return self.is_enabled(self.LOGIN_BUTTON)

    def is_error_displayed(self) -> bool:
        return self.is_displayed(self.ERROR_MESSAGE)

    def error_message(self) -> str:
        return self.text_of(self.ERROR_MESSAGE)

    def has_all_elements(self) -> bool:
        return all(
            self.is_displayed(locator)
            for locator in (self.APP_LOGO, self.USERNAME, self.PASSWORD, self.LOGIN_BUTTON)
        )
