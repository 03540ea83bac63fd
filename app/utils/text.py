"""Text utilities for instructor-entered feedback."""
import re
from typing import Optional


def sanitize_feedback(text: Optional[str]) -> Optional[str]:
    """Clean free-form tutor feedback before it is stored.

    Removes control characters that could break JSON or terminal output,
    collapses runs of spaces and more than two consecutive newlines, and
    strips each line. Blank feedback becomes None.

    Examples:
        >>> sanitize_feedback("  Good   work!\\n\\n\\n\\nCheck step 2. ")
        'Good work!\\n\\nCheck step 2.'
        >>> sanitize_feedback("   ")
    """
    if text is None:
        return None

    text = str(text)

    # Keep \t, \n, \r
    text = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F-\x9F]', '', text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    text = '\n'.join(line.strip() for line in text.split('\n')).strip()

    return text or None
