"""Browser session management."""

from .session import BrowserSession

__all__ = ["BrowserSession"]
