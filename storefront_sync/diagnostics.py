from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .const import TOKEN_KEY
from .storefront import Storefront

REDACTED = "**REDACTED**"


def redact(data: Mapping[str, Any], keys: Iterable[str]) -> dict[str, Any]:
    """Return a copy of *data* with sensitive *keys* hidden."""

    hidden = set(keys)
    return {k: (REDACTED if k in hidden and v else v) for k, v in data.items()}


async def async_get_diagnostics(storefront: Storefront) -> dict[str, Any]:
    """Return a support snapshot of the storefront without secrets."""

    token = await storefront.credentials.async_get_token(TOKEN_KEY)
    payload: dict[str, Any] = {
        "config": storefront.config.as_dict(),
        "session": redact({"active": storefront.session.is_active, TOKEN_KEY: token}, {TOKEN_KEY}),
        "api": {
            "base_url": storefront.client.base_url,
            "timeout": storefront.client.timeout,
            "last_latency_ms": storefront.client.last_latency_ms,
        },
        "store_keys": storefront.store.keys(),
    }
    payload.update(storefront.status())
    return payload
