"""
Input sanitization for security.

Credential fields are stripped of markup and script fragments before any
processing; free text written to the audit trail is cleaned with nh3.
"""
import re
from typing import Optional

import nh3

CREDENTIAL_MAX_LENGTH = 128
AUDIT_DETAILS_MAX_LENGTH = 500

# Patterns for dangerous content in credential fields
DANGEROUS_PATTERNS = [
    r'[<>]',  # Markup delimiters
    r'javascript:',  # JavaScript protocol
    r'on\w+=',  # Event handlers (onclick=, onload=, ...)
]

COMPILED_PATTERNS = [re.compile(pattern, re.IGNORECASE) for pattern in DANGEROUS_PATTERNS]


def sanitize_credential(value: Optional[str], max_length: int = CREDENTIAL_MAX_LENGTH) -> str:
    """
    Sanitize a login form field.

    Removes markup delimiters, ``javascript:`` and inline event handlers,
    trims surrounding whitespace and caps the length.

    Examples:
        >>> sanitize_credential("  superadmin ")
        'superadmin'
        >>> sanitize_credential("<script>x</script>")
        'scriptx/script'
    """
    if not value:
        return ""

    sanitized = value
    for pattern in COMPILED_PATTERNS:
        sanitized = pattern.sub('', sanitized)

    return sanitized.strip()[:max_length]


def sanitize_text(text: Optional[str], max_length: int = AUDIT_DETAILS_MAX_LENGTH) -> str:
    """
    Sanitize free text (remove all HTML) and truncate.

    Args:
        text: Text to sanitize
        max_length: Maximum length of the result

    Returns:
        Sanitized text with HTML removed
    """
    if not text:
        return ""

    # Entities stay escaped so the stored text can never be re-interpreted as markup
    clean_text = nh3.clean(text, tags=set())

    return clean_text.strip()[:max_length]


def sanitize_identifier(value: Optional[str], max_length: int = 64) -> str:
    """Sanitize an entity name or document id taken from a query string."""
    if not value:
        return ""
    return re.sub(r'[^A-Za-z0-9_\-]', '', value)[:max_length]
