"""Signed-in/signed-out signal shared by every synchronizer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .const import TOKEN_KEY
from .storage import CredentialStore

_LOGGER = logging.getLogger(__name__)

SessionListener = Callable[[], Awaitable[None] | None]


class CustomerSession:
    """Tracks whether a customer is signed in and announces transitions.

    End listeners run before the token is removed and before anything else is
    awaited, so every collection is emptied the moment the session ends.
    """

    def __init__(self, credentials: CredentialStore, *, token_key: str = TOKEN_KEY) -> None:
        self._credentials = credentials
        self._token_key = token_key
        self._active = False
        self._start_listeners: list[SessionListener] = []
        self._end_listeners: list[SessionListener] = []

    @property
    def is_active(self) -> bool:
        return self._active

    def register_start_listener(self, listener: SessionListener) -> Callable[[], None]:
        return self._register(self._start_listeners, listener)

    def register_end_listener(self, listener: SessionListener) -> Callable[[], None]:
        return self._register(self._end_listeners, listener)

    @staticmethod
    def _register(listeners: list[SessionListener], listener: SessionListener) -> Callable[[], None]:
        if listener not in listeners:
            listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return _unsubscribe

    async def async_restore(self) -> bool:
        """Resume a session when a token survived the last run."""

        token = await self._credentials.async_get_token(self._token_key)
        if token and not self._active:
            self._active = True
            _LOGGER.debug("Restored customer session from stored token")
            await self._notify(self._start_listeners)
        return self._active

    async def async_begin(self, token: str) -> None:
        if not token:
            raise ValueError("a session token is required")
        await self._credentials.async_set_token(self._token_key, token)
        if self._active:
            return
        self._active = True
        _LOGGER.info("Customer session started")
        await self._notify(self._start_listeners)

    async def async_end(self) -> None:
        if not self._active:
            await self._credentials.async_remove_token(self._token_key)
            return
        self._active = False
        _LOGGER.info("Customer session ended")
        await self._notify(self._end_listeners)
        await self._credentials.async_remove_token(self._token_key)

    async def _notify(self, listeners: list[SessionListener]) -> None:
        pending: list[Awaitable[None]] = []
        for listener in list(listeners):
            try:
                result = listener()
            except Exception:
                _LOGGER.exception("Session listener %r failed", listener)
                continue
            if asyncio.iscoroutine(result):
                pending.append(result)
        for outcome in await asyncio.gather(*pending, return_exceptions=True):
            if isinstance(outcome, Exception):
                _LOGGER.error("Session listener failed: %s", outcome, exc_info=outcome)


__all__ = ["CustomerSession", "SessionListener"]
