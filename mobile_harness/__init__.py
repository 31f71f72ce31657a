"""Appium-based mobile UI test harness: configuration, sessions, page objects and reporting."""

from .capabilities import CapabilityBuilder, CapabilitySet, ExecutionEnvironment, Platform
from .config import ConfigurationResolver, OverrideStore, get_resolver
from .session_registry import Session, SessionRegistry

__version__ = "1.0.0"

__all__ = [
    "CapabilityBuilder",
    "CapabilitySet",
    "ConfigurationResolver",
    "ExecutionEnvironment",
    "OverrideStore",
    "Platform",
    "Session",
    "SessionRegistry",
    "get_resolver",
]
