"""Trailing boilerplate detection for extracted article text.

Pages saved from the web often end with related-article lists, newsletter
prompts, or author bios. These are cut by pattern before generation.
"""

import re

# Earliest match wins. Matches in the first half of the text are ignored so a
# passing mention near the top never discards the body.
ENDING_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"♦\s*\n"),
    re.compile(r"New Yorker Favorites", re.IGNORECASE),
    re.compile(r"^\s*Read More\b", re.IGNORECASE | re.MULTILINE),
    re.compile(r"Related Articles", re.IGNORECASE),
    re.compile(r"^\s*More from\b", re.IGNORECASE | re.MULTILINE),
    re.compile(r"Sign up for our (?:daily )?newsletter", re.IGNORECASE),
    re.compile(r"Share this article", re.IGNORECASE),
    re.compile(r"Follow us on", re.IGNORECASE),
    re.compile(r"About the Author", re.IGNORECASE),
    re.compile(r"\b\w+ is a staff writer", re.IGNORECASE),
    re.compile(r"Originally published", re.IGNORECASE),
    re.compile(r"^\s*Comments\s*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"Subscribe now", re.IGNORECASE),
    re.compile(r"Your Privacy Choices", re.IGNORECASE),
]


def find_content_end(text: str, *, min_fraction: float = 0.5) -> int | None:
    """Offset where trailing boilerplate starts, or None if none is found."""
    floor = int(len(text) * min_fraction)
    earliest: int | None = None
    for pattern in ENDING_PATTERNS:
        match = pattern.search(text, floor)
        if match and (earliest is None or match.start() < earliest):
            earliest = match.start()
    return earliest


def trim_boilerplate(text: str) -> tuple[str, bool]:
    """Cut trailing boilerplate.

    Returns:
        (main content, whether anything was trimmed)
    """
    end = find_content_end(text)
    if end is None:
        return text, False
    main = text[:end].rstrip()
    if not main:
        return text, False
    return main, True
