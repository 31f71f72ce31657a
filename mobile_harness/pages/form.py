from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import BasePage, PlatformLocator, accessibility_id, android_id, xpath

if TYPE_CHECKING:
    from .home import HomePage

logger = logging.getLogger(__name__)

_PKG = "com.example.sampleapp:id"


def _field(name: str) -> PlatformLocator:
    return PlatformLocator(android_id(f"{_PKG}/{name}"), accessibility_id(name))


def _xpath_literal(value: str) -> str:
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


def country_option(country: str) -> PlatformLocator:
    """Dropdown entry whose visible text is `country`."""
    literal = _xpath_literal(country)
    return PlatformLocator(
        xpath(f"//*[@text={literal}]"),
        xpath(f"//*[@name={literal} or @label={literal}]"),
    )


class FormPage(BasePage):
    TITLE = _field("formTitle")
    NAME = _field("nameField")
    EMAIL = _field("emailField")
    PHONE = _field("phoneField")
    ADDRESS = _field("addressField")
    COUNTRY = _field("countryDropdown")
    TERMS = _field("termsCheckbox")
    NEWSLETTER = _field("newsletterCheckbox")
    SUBMIT = _field("submitButton")
    CANCEL = _field("cancelButton")
    SUCCESS_MESSAGE = _field("successMessage")
    NAME_ERROR = _field("nameError")
    EMAIL_ERROR = _field("emailError")

    def enter_name(self, name: str) -> "FormPage":
        self.type_text(self.NAME, name)
        return self

    def enter_email(self, email: str) -> "FormPage":
        self.type_text(self.EMAIL, email)
        return self

    def enter_phone(self, phone: str) -> "FormPage":
        self.type_text(self.PHONE, phone)
        return self

    def enter_address(self, address: str) -> "FormPage":
        self.type_text(self.ADDRESS, address)
        return self

    def select_country(self, country: str) -> "FormPage":
        logger.info("Selecting country: %s", country)
        self.click(self.COUNTRY)
        self.click(country_option(country))
        return self

    def _set_checkbox(self, locator: PlatformLocator, checked: bool) -> None:
        current = (self.attribute_of(locator, "checked") or "").lower() == "true"
        if current != checked:
            self.click(locator)

    def set_terms(self, checked: bool) -> "FormPage":
        self._set_checkbox(self.TERMS, checked)
        return self

    def set_newsletter(self, checked: bool) -> "FormPage":
        self._set_checkbox(self.NEWSLETTER, checked)
        return self

    def submit(self) -> "FormPage":
        self.hide_keyboard()
        self.click(self.SUBMIT)
        return self

    def cancel(self) -> "HomePage":
        from .home import HomePage

        self.click(self.CANCEL)
        return self._page(HomePage)

    def fill(self, *, name: str, email: str, phone: str, address: str, country: str) -> "FormPage":
        logger.info("Filling form for %s", name)
        self.enter_name(name)
        self.enter_email(email)
        self.enter_phone(phone)
        self.enter_address(address)
        self.select_country(country)
        self.set_terms(True)
        return self

    def clear_all(self) -> "FormPage":
        for locator in (self.NAME, self.EMAIL, self.PHONE, self.ADDRESS):
            self.clear(locator)
        return self

    def scroll_to_submit(self) -> "FormPage":
        self.scroll_to(self.SUBMIT, 5)
        return self

    # ========== CHECKS ==========

    def is_displayed_page(self) -> bool:
        return self.is_displayed(self.TITLE)

    def is_submit_enabled(self) -> bool:
        return self.is_enabled(self.SUBMIT)

    def is_success_displayed(self) -> bool:
        return self.is_displayed(self.SUCCESS_MESSAGE)

    def success_message(self) -> str:
        return self.text_of(self.SUCCESS_MESSAGE)

    def is_name_error_displayed(self) -> bool:
        return self.is_displayed(self.NAME_ERROR)

    def name_error(self) -> str:
        return self.text_of(self.NAME_ERROR)

    def is_email_error_displayed(self) -> bool:
        return self.is_displayed(self.EMAIL_ERROR)

    def email_error(self) -> str:
        return self.text_of(self.EMAIL_ERROR)

    def has_all_fields(self) -> bool:
        return self.is_displayed_page() and all(
            self.is_displayed(locator)
            for locator in (self.NAME, self.EMAIL, self.PHONE, self.ADDRESS, self.COUNTRY, self.TERMS, self.SUBMIT)
        )
