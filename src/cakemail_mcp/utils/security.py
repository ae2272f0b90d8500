"""Log sanitization and secure logging setup.

Cakemail credentials travel as form fields (``username``/``password``)
and bearer tokens; none of them may reach the logs.
"""

import copy
import logging
import re
import sys
from typing import Any, Dict

SENSITIVE_PATTERNS = {
    "jwt_token": re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
    "bearer_token": re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
    "basic_auth": re.compile(r"Basic\s+[A-Za-z0-9+/=]+", re.IGNORECASE),
}

# key=value or "key": "value" pairs whose value is a secret
SECRET_FIELD_PATTERN = re.compile(
    r"(?P<key>password|refresh_token|access_token|client_secret)"
    r"(?P<sep>['\"]?\s*[:=]\s*['\"]?)"
    r"(?P<value>[^'\"&\s,}]+)",
    re.IGNORECASE,
)

SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-access-token",
    "x-refresh-token",
}


def sanitize_string(value: str) -> str:
    """Redact tokens and secret fields from a string.

    :param value: String to sanitize
    :type value: str
    :return: String with sensitive values replaced by placeholders
    :rtype: str
    """
    if not value:
        return value
    for pattern_name, pattern in SENSITIVE_PATTERNS.items():
        value = pattern.sub(f"<{pattern_name}:REDACTED>", value)
    return SECRET_FIELD_PATTERN.sub(
        lambda m: f"{m.group('key')}{m.group('sep')}<REDACTED>", value
    )


def sanitize_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize HTTP headers for logging.

    :param headers: Dictionary of HTTP headers
    :type headers: Dict[str, Any]
    :return: Sanitized headers dictionary
    :rtype: Dict[str, Any]
    """
    if not headers:
        return headers
    sanitized = copy.deepcopy(dict(headers))
    for key, value in sanitized.items():
        if key.lower() in SENSITIVE_HEADERS:
            if isinstance(value, str) and value:
                sanitized[key] = f"<REDACTED:length={len(value)}>"
            else:
                sanitized[key] = "<REDACTED>"
        elif isinstance(value, str):
            sanitized[key] = sanitize_string(value)
    return sanitized


class SanitizingFormatter(logging.Formatter):
    """Formatter that removes credentials from every log record."""

    def format(self, record: logging.LogRecord) -> str:
        if record.args:
            try:
                record.msg = sanitize_string(record.msg % record.args)
                record.args = None
            except (TypeError, ValueError):
                record.msg = sanitize_string(str(record.msg))
                record.args = tuple(
                    sanitize_string(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
        else:
            record.msg = sanitize_string(str(record.msg))
        return super().format(record)


_LOGGING_CONFIGURED = False


def setup_secure_logging(level: str = "INFO") -> None:
    """Set up logging with automatic sanitization.

    Logs go to stderr so the stdio transport keeps stdout for protocol
    messages. Repeated calls are ignored.

    :param level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    :type level: str
    """
    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED:
        logging.getLogger(__name__).debug(
            "Logging already configured, skipping duplicate setup"
        )
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        SanitizingFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )

    # httpx logs every request line at INFO
    for logger_name in ["httpx", "httpcore"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
