"""Page objects for the sample app under test."""

from .base import BasePage, ElementState, Locator, PlatformLocator
from .form import FormPage
from .home import HomePage
from .login import LoginPage

__all__ = [
    "BasePage",
    "ElementState",
    "Locator",
    "PlatformLocator",
    "FormPage",
    "HomePage",
    "LoginPage",
]
