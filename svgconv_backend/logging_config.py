import logging
import re
import sys
from typing import Optional


class SensitiveDataFilter(logging.Filter):
    """Mask credentials that end up in log messages."""

    PATTERNS = [
        (re.compile(r'(api[_-]?key["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(token["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(secret["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(bearer\s+)([^\s,}\'\"]+)', re.IGNORECASE), r'\1***MASKED***'),
        # Bare JWTs: three base64url segments.
        (re.compile(r'eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*'), '***MASKED***'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        # Mask the rendered message; a placeholder like "%s" may itself match.
        if isinstance(record.msg, str):
            try:
                message = record.getMessage()
            except (TypeError, ValueError):
                message = record.msg
            record.msg = self._mask_value(message)
            record.args = ()

        return True

    def _mask_value(self, value):
        if isinstance(value, str):
            for pattern, replacement in self.PATTERNS:
                value = pattern.sub(replacement, value)
        return value


def setup_logging(log_level: Optional[str] = None, logger_name: str = "svgconv_backend") -> logging.Logger:
    """
    Configure the service logger hierarchy.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Unknown values fall back to INFO.
        logger_name: Root of the hierarchy to configure; module loggers below it
            (``logging.getLogger(__name__)``) inherit the handler.

    Returns:
        The configured logger.
    """
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    if logger.handlers:
        for existing in logger.handlers:
            existing.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        )
    )
    handler.addFilter(SensitiveDataFilter())

    logger.addHandler(handler)
    logger.propagate = False

    return logger
