"""Startup-time helpers for safe config logging."""

from pixpay.common.config import CommonSettings
from pixpay.common.logging import logger


SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")


def _safe_value(name: str, value) -> str:
    """Return a printable value with redaction for secret-like setting names."""

    if value is None or value == "":
        return "<unset>"
    if any(marker in name.upper() for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def log_startup_config(config: CommonSettings, keys: list[str]) -> dict[str, str]:
    """Log selected settings for quick troubleshooting and return what was logged."""

    logged = {"service": config.service_name}
    for key in keys:
        logged[key] = _safe_value(key, getattr(config, key, None))
    logger.info("startup_config=%s", logged)
    return logged
