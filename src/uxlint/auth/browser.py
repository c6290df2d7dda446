"""Opening the authorization URL in the user's browser.

:class:`WebBrowserLauncher` uses :mod:`webbrowser`; when no browser can be
launched it raises ``BROWSER_FAILED`` so the caller can show the URL for
manual use. :class:`RecordingBrowserLauncher` records URLs instead of
opening them and is used by tests.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Union

from uxlint.exceptions import AuthenticationError, AuthErrorCode

logger = logging.getLogger(__name__)

BROWSER_FAILED_MESSAGE = "Failed to open browser. Please open the authorization URL manually."


class BrowserLauncher(ABC):
    """Capability interface for opening a URL in a browser."""

    @abstractmethod
    async def open_url(self, url: str) -> None:
        """Open *url*.

        Raises:
            AuthenticationError: ``BROWSER_FAILED`` if no browser could be
                opened.
        """

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether a browser can be launched on this host."""


class WebBrowserLauncher(BrowserLauncher):
    """Launch the platform default browser via :mod:`webbrowser`."""

    async def open_url(self, url: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            opened = await loop.run_in_executor(None, webbrowser.open, url)
        except webbrowser.Error as exc:
            logger.warning("Browser launch failed: %s", exc)
            raise AuthenticationError(
                AuthErrorCode.BROWSER_FAILED, BROWSER_FAILED_MESSAGE, cause=exc
            ) from exc
        if not opened:
            logger.warning("No browser could be launched")
            raise AuthenticationError(AuthErrorCode.BROWSER_FAILED, BROWSER_FAILED_MESSAGE)
        logger.debug("Opened authorization URL in browser")

    async def is_available(self) -> bool:
        try:
            webbrowser.get()
        except webbrowser.Error:
            return False
        return True


OpenHook = Callable[[str], Union[None, Awaitable[None]]]


class RecordingBrowserLauncher(BrowserLauncher):
    """Record opened URLs instead of launching a browser.

    Args:
        fail: Raise ``BROWSER_FAILED`` from :meth:`open_url` (after
            recording the URL).
        on_open: Optional hook called with each URL, sync or async. Tests
            use it to simulate the provider redirect.
    """

    def __init__(self, fail: bool = False, on_open: Optional[OpenHook] = None) -> None:
        self.fail = fail
        self.on_open = on_open
        self.opened_urls: list[str] = []

    @property
    def last_url(self) -> Optional[str]:
        return self.opened_urls[-1] if self.opened_urls else None

    async def open_url(self, url: str) -> None:
        self.opened_urls.append(url)
        if self.on_open is not None:
            result = self.on_open(url)
            if asyncio.iscoroutine(result):
                await result
        if self.fail:
            raise AuthenticationError(AuthErrorCode.BROWSER_FAILED, BROWSER_FAILED_MESSAGE)

    async def is_available(self) -> bool:
        return not self.fail
