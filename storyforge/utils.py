from typing import List

PRESERVED_WORDS = 200
PRESERVED_RATIO = 0.95


def count_words(text: str) -> int:
    return len(text.split())


def extract_first_words(text: str, limit: int = PRESERVED_WORDS) -> str:
    return " ".join(text.split()[:limit])


def _first_words(text: str) -> List[str]:
    return extract_first_words(text).lower().split()


def first_words_preserved(original: str, expanded: str) -> bool:
    """Check the expansion opens with (nearly) the same words as the prompt.

    Words are compared position by position; at least 95% of the prompt's
    first 200 words must match.
    """
    original_words = _first_words(original)
    if not original_words:
        return True
    expanded_words = _first_words(expanded)
    matches = sum(1 for a, b in zip(original_words, expanded_words) if a == b)
    return matches / len(original_words) >= PRESERVED_RATIO


def mask_key(key: str) -> str:
    if len(key) <= 12:
        return "***"
    return f"{key[:8]}...{key[-4:]}"
