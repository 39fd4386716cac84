"""Credential masking for anything that ends up in logs"""

import re
from typing import Any, Dict, List, Union


REDACTED = "***REDACTED***"

SENSITIVE_KEYS = ("password", "passwd", "pwd", "secret", "token", "apikey")

_STRING_PATTERNS = [
    (re.compile(r'"password"\s*:\s*"([^"]+)"', re.IGNORECASE), f'"password": "{REDACTED}"'),
    (re.compile(r"'password'\s*:\s*'([^']+)'", re.IGNORECASE), f"'password': '{REDACTED}'"),
    (re.compile(r"password=([^\s&]+)", re.IGNORECASE), f"password={REDACTED}"),
    (re.compile(r"(token|api[_-]?key)\s*[:=]\s*['\"]*([a-zA-Z0-9_\-\.]+)['\"]*", re.IGNORECASE), rf"\1: {REDACTED}"),
]


def sanitize_credentials(data: Union[str, Dict[str, Any], List, None]) -> Any:
    """
    Mask credentials in a string, dict or list (recursively)

    Args:
        data: Value that may contain sensitive data

    Returns:
        Copy of the value with secrets replaced
    """
    if isinstance(data, str):
        return mask_password_in_logs(data)
    if isinstance(data, dict):
        return {key: _sanitize_item(key, value) for key, value in data.items()}
    if isinstance(data, list):
        return [sanitize_credentials(item) for item in data]
    return data


def _sanitize_item(key: str, value: Any) -> Any:
    normalized = str(key).lower().replace("_", "").replace("-", "")
    if value and any(sensitive in normalized for sensitive in SENSITIVE_KEYS):
        return REDACTED
    return sanitize_credentials(value)


def mask_password_in_logs(log_message: str) -> str:
    """Mask password/token patterns inside a free-form log message"""
    if not log_message:
        return log_message
    sanitized = log_message
    for pattern, replacement in _STRING_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized
