from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import BasePage, PlatformLocator, accessibility_id, android_id, xpath

if TYPE_CHECKING:
    from .form import FormPage
    from .login import LoginPage

logger = logging.getLogger(__name__)

_PKG = "com.example.sampleapp:id"


class HomePage(BasePage):
    WELCOME = PlatformLocator(android_id(f"{_PKG}/welcomeText"), accessibility_id("welcomeText"))
    PROFILE_ICON = PlatformLocator(android_id(f"{_PKG}/profileIcon"), accessibility_id("profileIcon"))
    MENU_ICON = PlatformLocator(android_id(f"{_PKG}/menuIcon"), accessibility_id("menuIcon"))
    SEARCH_BAR = PlatformLocator(android_id(f"{_PKG}/searchBar"), accessibility_id("searchBar"))
    DASHBOARD_TAB = PlatformLocator(android_id(f"{_PKG}/dashboardTab"), accessibility_id("dashboardTab"))
    FORMS_TAB = PlatformLocator(android_id(f"{_PKG}/formsTab"), accessibility_id("formsTab"))
    SETTINGS_TAB = PlatformLocator(android_id(f"{_PKG}/settingsTab"), accessibility_id("settingsTab"))
    LOGOUT_BUTTON = PlatformLocator(android_id(f"{_PKG}/logoutButton"), accessibility_id("logoutButton"))
    NOTIFICATION_ICON = PlatformLocator(android_id(f"{_PKG}/notificationIcon"), accessibility_id("notificationIcon"))
    NOTIFICATION_BADGE = PlatformLocator(
        android_id(f"{_PKG}/notificationBadge"), accessibility_id("notificationBadge")
    )
    ITEMS = PlatformLocator(
        xpath(f"//android.widget.ListView[@resource-id='{_PKG}/itemList']/android.widget.TextView"),
        xpath("//XCUIElementTypeTable/XCUIElementTypeCell"),
    )

    def welcome_message(self) -> str:
        return self.text_of(self.WELCOME)

    def open_profile(self) -> "HomePage":
        self.click(self.PROFILE_ICON)
        return self

    def open_menu(self) -> "HomePage":
        self.click(self.MENU_ICON)
        return self

    def search(self, text: str) -> "HomePage":
        logger.info("Searching for: %s", text)
        self.type_text(self.SEARCH_BAR, text)
        self.hide_keyboard()
        return self

    def go_to_dashboard(self) -> "HomePage":
        self.click(self.DASHBOARD_TAB)
        return self

    def go_to_forms(self) -> "FormPage":
        from .form import FormPage

        self.click(self.FORMS_TAB)
        return self._page(FormPage)

    def go_to_settings(self) -> "HomePage":
        self.click(self.SETTINGS_TAB)
        return self

    def logout(self) -> "LoginPage":
        from .login import LoginPage

        logger.info("Logging out")
        self.open_menu()
        self.click(self.LOGOUT_BUTTON)
        return self._page(LoginPage)

    def open_notifications(self) -> "HomePage":
        self.click(self.NOTIFICATION_ICON)
        return self

    # ========== CHECKS ==========

    def is_displayed_page(self) -> bool:
        return self.is_displayed(self.WELCOME)

    def is_user_logged_in(self, expected_username: str) -> bool:
        return expected_username in self.welcome_message()

    def notification_count(self) -> int:
        if not self.is_displayed(self.NOTIFICATION_BADGE):
            return 0
        badge = self.text_of(self.NOTIFICATION_BADGE).strip()
        try:
            return int(badge)
        except ValueError:
            logger.warning("Unable to parse notification count: %r", badge)
            return 0

    def has_navigation_tabs(self) -> bool:
        return all(self.is_displayed(tab) for tab in (self.DASHBOARD_TAB, self.FORMS_TAB, self.SETTINGS_TAB))

    def item_count(self) -> int:
        return self.count(self.ITEMS)

    def click_item(self, index: int) -> "HomePage":
        items = self.find_all(self.ITEMS)
        if not 0 <= index < len(items):
            raise IndexError(f"Home item index {index} out of range ({len(items)} item(s))")
        self.client.click(items[index])
        return self

    def is_loaded(self) -> bool:
        return self.is_displayed_page() and self.is_displayed(self.PROFILE_ICON) and self.has_navigation_tabs()
