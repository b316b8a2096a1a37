"""
Copy sanitizer - replaces corporate jargon in generated consumer-facing text
"""
import re
from typing import List, Pattern, Tuple

BANNED_PHRASES: List[Tuple[Pattern, str]] = [
    (re.compile(r'technical debt', re.IGNORECASE), 'ongoing maintenance cost'),
    (re.compile(r'non-production environments?', re.IGNORECASE), 'casual or secondary use'),
    (re.compile(r'\benterprise\b', re.IGNORECASE), 'professional'),
    (re.compile(r'\bstakeholder', re.IGNORECASE), 'user'),
    (re.compile(r'\bleverage\b', re.IGNORECASE), 'use'),
    (re.compile(r'\bsynergy\b', re.IGNORECASE), 'compatibility'),
    (re.compile(r'ecosystem lock-in', re.IGNORECASE), 'vendor dependency'),
    (re.compile(r'\brobust\b', re.IGNORECASE), 'reliable'),
    (re.compile(r'\bscalable\b', re.IGNORECASE), 'expandable'),
    (re.compile(r'high raw (\w+ )?capacity', re.IGNORECASE), r'large advertised \1capacity'),
]


def sanitize_copy(text: str) -> str:
    for pattern, replacement in BANNED_PHRASES:
        text = pattern.sub(replacement, text)
    return text


def sanitize_copy_list(items: List[str]) -> List[str]:
    return [sanitize_copy(item) for item in items]
