from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from aiohttp import ClientError, ClientSession

from ..const import DEFAULT_API_TIMEOUT, TOKEN_KEY
from ..storage import CredentialStore
from ..utils.logging import warn_once
from .errors import (
    GatewayAuthError,
    GatewayError,
    GatewayTransientError,
    classify_status,
)

_LOGGER = logging.getLogger(__name__)


class CommerceApiClient:
    """Thin JSON client for the storefront REST API.

    Every call carries the session token from :class:`CredentialStore` and
    every failure leaves as a classified :class:`GatewayError`.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        *,
        session: ClientSession | None = None,
        timeout: float = DEFAULT_API_TIMEOUT,
        token_key: str = TOKEN_KEY,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self._token_key = token_key
        self.last_latency_ms: int | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    async def async_close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def async_request(self, method: str, path: str, *, payload: Mapping[str, Any] | None = None) -> Any:
        """Perform ``method`` on ``path`` and return the ``data`` member of the envelope."""

        token = await self._credentials.async_get_token(self._token_key)
        if not token:
            raise GatewayAuthError("no session token available", reason="missing_token")
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        url = self._url(path)
        session = self._get_session()
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            async with asyncio.timeout(self._timeout):
                async with session.request(method, url, headers=headers, json=payload) as resp:
                    try:
                        body = await resp.json(content_type=None)
                    except ValueError:
                        body = None
                    status = resp.status
        except TimeoutError as err:
            warn_once(_LOGGER, "timeout", "%s %s timed out after %ss", method, path, self._timeout)
            raise GatewayTransientError(
                f"request timeout: server took longer than {self._timeout}s", reason="timeout"
            ) from err
        except ClientError as err:
            warn_once(_LOGGER, "network_error", "%s %s failed: %s", method, path, err)
            raise GatewayTransientError(f"network error: {err}", reason="network") from err
        self.last_latency_ms = int((loop.time() - started) * 1000)

        if status >= 400:
            message = body.get("message") if isinstance(body, Mapping) else None
            error_cls = classify_status(status)
            if status == 404:
                _LOGGER.debug("%s %s not available on this backend", method, path)
            else:
                _LOGGER.warning("API error [%s] %s %s: %s", status, method, path, message or "")
            raise error_cls(message or f"{method} {path} failed: HTTP {status}", status=status, reason=f"http_{status}")

        _LOGGER.debug("%s %s -> %s in %sms", method, path, status, self.last_latency_ms)
        return self._unwrap(body, method, path)

    def _unwrap(self, body: Any, method: str, path: str) -> Any:
        if not isinstance(body, Mapping) or "success" not in body:
            return body
        if body.get("success") is False:
            message = body.get("message") or f"{method} {path} was rejected"
            raise GatewayTransientError(str(message), reason="rejected")
        return body.get("data")


__all__ = ["CommerceApiClient", "GatewayError"]
