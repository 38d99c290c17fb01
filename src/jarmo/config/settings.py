from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import os
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8000

ENABLE_ENV = "JARMO_ENABLE"
_FALSE_VALUES = {"", "0", "false", "no", "off"}

Resolver = Callable[[Any, Any, int], Any]
ErrorHandler = Callable[[Exception], None]


def default_resolve(request: Any, response: Any, duration: int) -> dict:
    return {
        "response_time": duration,
        "response_status": getattr(response, "status_code", 0) or 0,
    }


def default_error(err: Exception) -> None:
    logger.error(
        "[%s] Failed to send UDP packet(s), %s",
        datetime.now(timezone.utc).isoformat(),
        err,
    )


@dataclass(frozen=True)
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    resolve: Resolver = default_resolve
    on_error: ErrorHandler = default_error


def get_settings(
    host: Optional[str] = None,
    port: Optional[int] = None,
    resolve: Optional[Resolver] = None,
    on_error: Optional[ErrorHandler] = None,
) -> Settings:
    """
    Build the middleware configuration once at setup time.
    Every field falls back to its default on its own; host and port
    defaults can come from JARMO_HOST / JARMO_PORT.
    """
    return Settings(
        host=host or os.getenv("JARMO_HOST") or DEFAULT_HOST,
        port=port or int(os.getenv("JARMO_PORT") or DEFAULT_PORT),
        resolve=resolve or default_resolve,
        on_error=on_error or default_error,
    )


def is_enabled(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    value = env.get(ENABLE_ENV)
    if value is None:
        return False
    return value.strip().lower() not in _FALSE_VALUES
