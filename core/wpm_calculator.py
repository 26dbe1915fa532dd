"""Word count and WPM calculation utilities."""


def count_words(text: str) -> int:
    """Count words in text.

    A word is any non-empty run of non-whitespace characters, so leading,
    trailing and repeated whitespace never produce empty words.

    Args:
        text: Text to count

    Returns:
        Number of words
    """
    if not text:
        return 0
    return len(text.split())


def calculate_wpm(word_count: int, elapsed_seconds: float) -> int:
    """Calculate words per minute.

    Args:
        word_count: Number of words written
        elapsed_seconds: Time elapsed since the session started

    Returns:
        WPM rounded to the nearest integer, or 0 if no time has elapsed
    """
    if elapsed_seconds <= 0:
        return 0

    minutes = elapsed_seconds / 60.0
    # Python's round() rounds halves to even; keep halves rounding up
    return int((word_count / minutes) + 0.5)
