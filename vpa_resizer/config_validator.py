"""
Configuration Validator
Validates command-line and environment configuration values
"""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

# RFC 1123 label, which is what Kubernetes accepts as a namespace name
_NAMESPACE_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "text")


class ConfigValidator:
    """Validate configuration values"""

    @staticmethod
    def validate_minutes(value, name: str) -> int:
        """Validate a non-negative whole number of minutes"""
        try:
            val = int(str(value).strip())
        except ValueError as e:
            raise ValueError(f"Invalid {name}: {value}. Must be a whole number of minutes") from e
        if val < 0:
            raise ValueError(f"{name} must be non-negative, got {val}")
        return val

    @staticmethod
    def validate_batch_size(value) -> int:
        """Validate batch size"""
        try:
            val = int(str(value).strip())
        except ValueError as e:
            raise ValueError(f"Invalid BATCH_SIZE: {value}. Must be an integer") from e
        if val < 1:
            raise ValueError(f"BATCH_SIZE must be at least 1, got {val}")
        if val > 100:
            raise ValueError(f"BATCH_SIZE should be at most 100, got {val}")
        return val

    @staticmethod
    def validate_api_timeout(value) -> float:
        """Validate Kubernetes API request timeout in seconds"""
        try:
            val = float(str(value).strip())
        except ValueError as e:
            raise ValueError(f"Invalid API_TIMEOUT: {value}. Must be a number") from e
        if val <= 0:
            raise ValueError(f"API_TIMEOUT must be positive, got {val}")
        if val > 600:
            raise ValueError(f"API_TIMEOUT should be at most 600 seconds, got {val}")
        return val

    @staticmethod
    def validate_rate_limit(value) -> int:
        """Validate calls per second; 0 disables rate limiting"""
        try:
            val = int(str(value).strip())
        except ValueError as e:
            raise ValueError(f"Invalid K8S_API_RATE_LIMIT: {value}. Must be an integer") from e
        if val < 0:
            raise ValueError(f"K8S_API_RATE_LIMIT must be non-negative, got {val}")
        return val

    @staticmethod
    def validate_namespace(name: str) -> str:
        """Validate a Kubernetes namespace name"""
        name = (name or "").strip()
        if not name:
            raise ValueError("Namespace is required")
        if len(name) > 63:
            raise ValueError(f"Namespace too long (max 63 chars): {name}")
        if not _NAMESPACE_RE.match(name):
            raise ValueError(
                f"Invalid namespace: {name}. Must consist of lower case alphanumeric characters or '-'"
            )
        return name

    @staticmethod
    def validate_url(url: Optional[str], name: str) -> Optional[str]:
        """Validate an optional http(s) URL"""
        if not url:
            return None
        url = url.strip()
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid {name} format: {url}. Must start with http:// or https://")
        if len(url) > 2048:
            raise ValueError(f"{name} too long (max 2048 chars)")
        return url

    @staticmethod
    def validate_log_level(level: str) -> str:
        """Validate log level"""
        val = (level or "").strip().upper()
        if val not in LOG_LEVELS:
            raise ValueError(f"Invalid LOG_LEVEL: {level}. Must be one of {', '.join(LOG_LEVELS)}")
        return val

    @staticmethod
    def validate_log_format(fmt: str) -> str:
        """Validate console log format"""
        val = (fmt or "").strip().lower()
        if val == "structured":
            val = "json"
        if val not in LOG_FORMATS:
            raise ValueError(f"Invalid LOG_FORMAT: {fmt}. Must be one of {', '.join(LOG_FORMATS)}")
        return val

    @staticmethod
    def parse_bool(value) -> bool:
        return str(value).strip().lower() in ("1", "true", "yes", "on")
