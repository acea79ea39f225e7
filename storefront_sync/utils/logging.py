from __future__ import annotations

import logging
import time

_LAST_WARNED: dict[str, float] = {}
_MAX_CODES = 256


def warn_once(logger: logging.Logger, code: str, message: str, *args: object, window: float = 60.0) -> bool:
    """Emit ``message`` at warning level at most once per ``window`` seconds per ``code``.

    Returns ``True`` when the warning was written. Suppressed repeats are still
    logged at debug level so nothing is lost when debugging a flaky network.
    """

    now = time.monotonic()
    last = _LAST_WARNED.get(code)
    if last is not None and now - last <= window:
        logger.debug("[%s] " + message, code, *args)
        return False
    if len(_LAST_WARNED) >= _MAX_CODES:
        _LAST_WARNED.pop(min(_LAST_WARNED, key=_LAST_WARNED.__getitem__), None)
    _LAST_WARNED[code] = now
    logger.warning("[%s] " + message, code, *args)
    return True


def reset_warnings() -> None:
    """Forget every rate-limited code."""

    _LAST_WARNED.clear()
