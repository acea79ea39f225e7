from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import voluptuous as vol

from .const import (
    CONF_API_BASE_URL,
    CONF_API_TIMEOUT,
    CONF_CREDENTIALS_FILENAME,
    CONF_DATA_DIR,
    CONF_STORE_FILENAME,
    DEFAULT_API_BASE_URL,
    DEFAULT_API_TIMEOUT,
    DEFAULT_CREDENTIALS_FILENAME,
    DEFAULT_DATA_DIR,
    DEFAULT_STORE_FILENAME,
    ENV_API_BASE_URL,
    ENV_API_TIMEOUT,
    ENV_DATA_DIR,
)


class ConfigError(ValueError):
    """Raised when storefront options fail validation."""


def _url(value: Any) -> str:
    text = str(value or "").strip()
    if not text.startswith(("http://", "https://")):
        raise vol.Invalid(f"expected an http(s) URL, got {value!r}")
    return text.rstrip("/")


def _filename(value: Any) -> str:
    text = str(value or "").strip()
    if not text or "/" in text or "\\" in text:
        raise vol.Invalid(f"invalid file name {value!r}")
    return text


OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_API_BASE_URL, default=DEFAULT_API_BASE_URL): _url,
        vol.Optional(CONF_API_TIMEOUT, default=DEFAULT_API_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Clamp(min=1.0)
        ),
        vol.Optional(CONF_DATA_DIR, default=DEFAULT_DATA_DIR): vol.All(vol.Coerce(str), vol.Length(min=1)),
        vol.Optional(CONF_STORE_FILENAME, default=DEFAULT_STORE_FILENAME): _filename,
        vol.Optional(CONF_CREDENTIALS_FILENAME, default=DEFAULT_CREDENTIALS_FILENAME): _filename,
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(slots=True)
class StorefrontConfig:
    """Runtime options for the storefront client."""

    api_base_url: str = DEFAULT_API_BASE_URL
    api_timeout: float = float(DEFAULT_API_TIMEOUT)
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    store_filename: str = DEFAULT_STORE_FILENAME
    credentials_filename: str = DEFAULT_CREDENTIALS_FILENAME

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> StorefrontConfig:
        cleaned = {key: value for key, value in options.items() if value not in (None, "")}
        try:
            data = OPTIONS_SCHEMA(cleaned)
        except vol.Invalid as err:
            raise ConfigError(str(err)) from err
        return cls(
            api_base_url=data[CONF_API_BASE_URL],
            api_timeout=data[CONF_API_TIMEOUT],
            data_dir=Path(data[CONF_DATA_DIR]).expanduser(),
            store_filename=data[CONF_STORE_FILENAME],
            credentials_filename=data[CONF_CREDENTIALS_FILENAME],
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StorefrontConfig:
        env = os.environ if environ is None else environ
        return cls.from_options(
            {
                CONF_API_BASE_URL: env.get(ENV_API_BASE_URL),
                CONF_API_TIMEOUT: env.get(ENV_API_TIMEOUT),
                CONF_DATA_DIR: env.get(ENV_DATA_DIR),
            }
        )

    @property
    def store_path(self) -> Path:
        return self.data_dir / self.store_filename

    @property
    def credentials_path(self) -> Path:
        return self.data_dir / self.credentials_filename

    def as_dict(self) -> dict[str, Any]:
        return {
            CONF_API_BASE_URL: self.api_base_url,
            CONF_API_TIMEOUT: self.api_timeout,
            CONF_DATA_DIR: str(self.data_dir),
            CONF_STORE_FILENAME: self.store_filename,
            CONF_CREDENTIALS_FILENAME: self.credentials_filename,
        }
