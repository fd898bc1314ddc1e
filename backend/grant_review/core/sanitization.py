"""
Input sanitization for reviewer and applicant free text.

Decision reasons, info-request messages and notes end up in applicant-facing
emails and the reviewer portal, so all markup is stripped before storage.
"""

import bleach
from typing import Optional


def sanitize_text(text: str) -> str:
    """
    Sanitize plain text input by removing all HTML.

    Args:
        text: Text string to sanitize

    Returns:
        Plain text string with HTML removed
    """
    if not text:
        return ""

    return bleach.clean(text, tags=[], strip=True)


def sanitize_optional_text(text: Optional[str]) -> Optional[str]:
    """Sanitize and trim optional text; blank input becomes None."""
    if text is None:
        return None
    cleaned = sanitize_text(text).strip()
    return cleaned or None

