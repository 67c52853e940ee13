"""
Validation helpers shared by the job and invoice endpoints.
"""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

SQL_INJECTION_PATTERNS = [
    r'[\'";]',          # Quotes, semicolons
    r'--',              # SQL comments
    r'/\*',             # SQL block comments
    r'\*/',
    r'DROP\s+TABLE',
    r'DELETE\s+FROM',
    r'INSERT\s+INTO',
    r'UPDATE\s+SET',
    r'UNION\s+SELECT',
    r'EXEC\s+',
    r'EXECUTE\s+',
]

SAFE_SEARCH_PATTERN = re.compile(r'^[\w\s\-.,:@#+()/&]+$')


def sanitize_filter_value(value) -> Optional[str]:
    """
    Sanitize a free-text search value.
    Returns None for empty or unsafe input so callers can skip the filter.
    """
    if not value:
        return None

    value = str(value).strip()
    if not value:
        return None

    for pattern in SQL_INJECTION_PATTERNS:
        if re.search(pattern, value, re.IGNORECASE):
            logger.warning(f"SQL injection pattern detected: {pattern} in value: {value}")
            return None

    if not SAFE_SEARCH_PATTERN.match(value):
        logger.warning(f"Potentially unsafe filter value detected: {value}")
        return None

    return value


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
