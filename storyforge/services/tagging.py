"""Keyword and phrase heuristics that tag stories, chunks and prompts.

Every tag family is a table of ``(tag, rule)`` pairs evaluated in order, so a
new tag is a new row rather than a new branch.
"""

import re
from typing import Callable, Dict, List, Sequence, Tuple

from ..models import StoryMeta

TITLE_MAX_CHARS = 100
THEME_MIN_MATCHES = 2

THEME_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "revenge": ("revenge", "payback", "get back", "retaliation", "justice", "reckoning"),
    "betrayal": ("betray", "cheat", "deceive", "lie", "backstab", "unfaithful"),
    "family_drama": ("sister", "brother", "mother", "father", "family", "parent"),
    "financial_fraud": ("money", "credit", "fraud", "steal", "bank", "account", "debt"),
    "relationships": ("wedding", "marriage", "boyfriend", "girlfriend", "love", "dating"),
    "legal_consequences": ("lawyer", "court", "police", "fbi", "arrest", "prison"),
    "social_humiliation": ("embarrass", "shame", "public", "humiliate", "expose"),
    "manipulation": ("manipulate", "control", "scheme", "plan", "trick"),
}

PLOT_PHRASES: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("backstory_opening", ("when i was", "growing up")),
    ("discovery_moment", ("i discovered", "i found out")),
    ("planning_phase", ("i planned", "i decided")),
    ("execution_scene", ("the day of", "at the")),
    ("aftermath_resolution", ("months later", "years later")),
)

DETAILED_SENTENCE_CHARS = 100
CONCISE_SENTENCE_CHARS = 50
DIALOGUE_MIN_QUOTES = 10
FIRST_PERSON_MIN_COUNT = 20
INTENSE_WORDS = ("furious", "devastated")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_FIRST_PERSON = re.compile(r"\bi\b", re.IGNORECASE)
_REPEATED_BANG = re.compile(r"!{2,}")


def average_sentence_length(text: str) -> float:
    # re.split always yields at least one segment, trailing empties included.
    sentences = _SENTENCE_SPLIT.split(text)
    return sum(len(s) for s in sentences) / len(sentences)


def _is_detailed(text: str) -> bool:
    return average_sentence_length(text) > DETAILED_SENTENCE_CHARS


def _is_concise(text: str) -> bool:
    avg = average_sentence_length(text)
    return avg < CONCISE_SENTENCE_CHARS and not avg > DETAILED_SENTENCE_CHARS


def _is_dialogue_heavy(text: str) -> bool:
    return text.count('"') > DIALOGUE_MIN_QUOTES


def _is_first_person(text: str) -> bool:
    if "i " not in text.lower():
        return False
    return len(_FIRST_PERSON.findall(text)) > FIRST_PERSON_MIN_COUNT


def _is_emotionally_intense(text: str) -> bool:
    if _REPEATED_BANG.search(text):
        return True
    lowered = text.lower()
    return any(word in lowered for word in INTENSE_WORDS)


STYLE_RULES: Sequence[Tuple[str, Callable[[str], bool]]] = (
    ("detailed_descriptive", _is_detailed),
    ("concise_punchy", _is_concise),
    ("dialogue_heavy", _is_dialogue_heavy),
    ("first_person_narrative", _is_first_person),
    ("emotionally_intense", _is_emotionally_intense),
)


def extract_themes(text: str) -> List[str]:
    """Return every theme with at least two distinct keywords present in ``text``."""
    lowered = text.lower()
    themes: List[str] = []
    for theme, keywords in THEME_KEYWORDS.items():
        matches = sum(1 for keyword in keywords if keyword in lowered)
        if matches >= THEME_MIN_MATCHES:
            themes.append(theme)
    return themes


def analyze_plot_structure(story: str) -> List[str]:
    lowered = story.lower()
    return [tag for tag, phrases in PLOT_PHRASES if any(p in lowered for p in phrases)]


def analyze_writing_style(story: str) -> List[str]:
    return [tag for tag, rule in STYLE_RULES if rule(story)]


def extract_title(story: str) -> str:
    for line in story.split("\n"):
        if line.strip():
            return line.strip()[:TITLE_MAX_CHARS] + "..."
    return "Untitled"


def analyze_story(story: str, story_id: str) -> StoryMeta:
    return StoryMeta(
        id=story_id,
        title=extract_title(story),
        main_themes=tuple(extract_themes(story)),
        character_count=len(story),
        plot_structure=tuple(analyze_plot_structure(story)),
        writing_style=tuple(analyze_writing_style(story)),
    )
