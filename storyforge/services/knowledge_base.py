import logging
import os
import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..models import StoryChunk, StoryMeta
from .chunker import MAX_CHUNK_WORDS, OVERLAP_WORDS, chunk_story
from .tagging import analyze_story, extract_themes

logger = logging.getLogger(__name__)


STORY_MARKER = re.compile(r"Story\d+:\s*")

MIN_SIMILARITY = 0.05
THEME_BONUS = 0.1
EXAMPLE_PREVIEW_CHARS = 1000
DEFAULT_THEMES = ("revenge", "betrayal", "family_drama")

STOP_WORDS = frozenset(
    "the and but for you are any can had her was one our out day get has him his how "
    "its may new now old see two who boy did man car way use she all not from they "
    "said each which their time will about would there could other after first well "
    "water been call where find right think came just like long make many over such "
    "take than them were".split()
)

BONUS_KEYWORDS = (
    "revenge",
    "betrayal",
    "sister",
    "wedding",
    "money",
    "credit",
    "fraud",
    "family",
    "marriage",
    "boyfriend",
    "girlfriend",
    "cheat",
    "lie",
    "steal",
    "plan",
    "scheme",
    "humiliate",
    "expose",
    "justice",
    "payback",
)

WRITING_GUIDELINES = """WRITING GUIDELINES:
- Follow the EXACT narrative style shown in the examples above
- Use first-person perspective throughout
- Include detailed character development and realistic dialogue  
- Build tension through careful pacing and plot progression
- Create emotional engagement with specific details and consequences
- Structure with clear acts: setup → conflict → planning → execution → resolution
- Include realistic aftermath and long-term consequences
- Match the tone, pacing, and emotional intensity of the reference examples
- Use similar themes and plot structures when appropriate"""

FALLBACK_CONTEXT = (
    "Knowledge base not available. Using default narrative guidelines for story expansion."
)


class KnowledgeBaseError(Exception):
    """Base class for fatal knowledge base initialisation failures."""


class CorpusUnavailable(KnowledgeBaseError):
    """The corpus file is missing or cannot be read."""


class CorpusEmpty(KnowledgeBaseError):
    """The corpus file holds no extractable story."""


class InvalidChunkSettings(KnowledgeBaseError):
    """Chunk window settings are not usable integers or overlap the window."""


def _int_setting(value, env_var: str, default: int) -> int:
    if value is None:
        value = os.getenv(env_var, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidChunkSettings(f"{env_var} must be an integer, got {value!r}") from None


def read_corpus(path: str) -> str:
    if not os.path.exists(path):
        raise CorpusUnavailable(f"{path} not found. Working directory: {os.getcwd()}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise CorpusUnavailable(f"Failed to read {path}: {exc}") from exc

    if not content.strip():
        raise CorpusEmpty(f"{path} is empty")
    return content


def extract_stories(content: str) -> List[str]:
    # text ahead of the first marker is never a story
    segments = STORY_MARKER.split(content)[1:]
    return [story for story in segments if story.strip()]


def _tokenize(text: str) -> set:
    words = re.split(r"\W+", text.lower())
    return {w for w in words if len(w) > 2 and w not in STOP_WORDS}


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard overlap of content words plus a bonus per shared theme keyword."""
    set1 = _tokenize(text1)
    set2 = _tokenize(text2)
    union = set1 | set2
    base_score = len(set1 & set2) / len(union) if union else 0.0

    lower1 = text1.lower()
    lower2 = text2.lower()
    theme_bonus = sum(THEME_BONUS for kw in BONUS_KEYWORDS if kw in lower1 and kw in lower2)

    return min(base_score + theme_bonus, 1.0)


class KnowledgeBase:
    """Story corpus split into tagged, overlapping chunks for prompt context."""

    def __init__(
        self,
        corpus_path: Optional[str] = None,
        max_chunk_words: Optional[int] = None,
        overlap_words: Optional[int] = None,
    ) -> None:
        self.corpus_path = corpus_path or os.getenv("KNOWLEDGE_BASE_PATH", "Data.txt")
        self.max_chunk_words = _int_setting(max_chunk_words, "KNOWLEDGE_BASE_CHUNK_WORDS", MAX_CHUNK_WORDS)
        self.overlap_words = _int_setting(overlap_words, "KNOWLEDGE_BASE_OVERLAP_WORDS", OVERLAP_WORDS)
        if not 0 <= self.overlap_words < self.max_chunk_words:
            raise InvalidChunkSettings(
                f"Chunk overlap must satisfy 0 <= overlap < window, got overlap={self.overlap_words} "
                f"window={self.max_chunk_words}"
            )

        self.chunks: Tuple[StoryChunk, ...] = ()
        self.story_metas: Tuple[StoryMeta, ...] = ()

    def initialize(self) -> None:
        logger.info("Loading knowledge base from %s", self.corpus_path)
        self.load_text(read_corpus(self.corpus_path))
        logger.info(
            "Processed %s stories into %s chunks", len(self.story_metas), len(self.chunks)
        )

    def load_text(self, content: str) -> None:
        stories = extract_stories(content)
        if not stories:
            raise CorpusEmpty("No stories found in corpus")

        metas: List[StoryMeta] = []
        chunks: List[StoryChunk] = []
        for index, story in enumerate(stories, start=1):
            story_id = f"story_{index}"
            metas.append(analyze_story(story, story_id))
            chunks.extend(chunk_story(story, story_id, self.max_chunk_words, self.overlap_words))

        self.story_metas = tuple(metas)
        self.chunks = tuple(chunks)

    def search_relevant_chunks(self, query: str, max_results: int = 5) -> List[StoryChunk]:
        scored = []
        for chunk in self.chunks:
            score = calculate_similarity(query, chunk.content)
            if score > MIN_SIMILARITY:
                scored.append((chunk, score))

        # sorted() is stable, so equal scores keep corpus order.
        scored = sorted(scored, key=lambda item: item[1], reverse=True)
        return [chunk for chunk, _ in scored[:max_results]]

    def find_examples_by_theme(self, themes: Iterable[str], max_results: int = 3) -> List[StoryChunk]:
        wanted = set(themes)
        matching = [chunk for chunk in self.chunks if wanted.intersection(chunk.themes)]
        return matching[:max_results]

    def get_writing_style_examples(
        self, style_features: Iterable[str], max_results: int = 2
    ) -> List[StoryChunk]:
        wanted = set(style_features)
        matching = [meta for meta in self.story_metas if wanted.intersection(meta.writing_style)]

        examples: List[StoryChunk] = []
        for meta in matching[:max_results]:
            first = next((c for c in self.chunks if c.story_id == meta.id), None)
            if first is not None:
                examples.append(first)
        return examples

    def select_examples(self, user_prompt: str) -> List[StoryChunk]:
        results = self.search_relevant_chunks(user_prompt, 2)
        if not results:
            prompt_themes = extract_themes(user_prompt)
            if prompt_themes:
                results = self.find_examples_by_theme(prompt_themes, 2)
        if not results:
            results = self.find_examples_by_theme(DEFAULT_THEMES, 2)
        return results

    def generate_context_for_prompt(self, user_prompt: str) -> str:
        parts = ["REFERENCE EXAMPLES FROM KNOWLEDGE BASE:\n\n"]
        for index, chunk in enumerate(self.select_examples(user_prompt), start=1):
            parts.append(f"EXAMPLE {index} - Themes: [{', '.join(chunk.themes)}]\n")
            parts.append("NARRATIVE STYLE REFERENCE:\n")
            parts.append(f"{chunk.content[:EXAMPLE_PREVIEW_CHARS]}\n")
            if len(chunk.content) > EXAMPLE_PREVIEW_CHARS:
                parts.append("...\n")
            parts.append("\n" + "=" * 50 + "\n\n")
        parts.append(WRITING_GUIDELINES)
        return "".join(parts)

    def get_all_themes(self) -> List[str]:
        themes: Dict[str, None] = {}
        for chunk in self.chunks:
            for theme in chunk.themes:
                themes.setdefault(theme, None)
        return list(themes)

    def get_stats(self) -> Dict[str, object]:
        word_counts = np.array([chunk.word_count for chunk in self.chunks], dtype=np.int64)
        average = int(np.floor(word_counts.mean() + 0.5)) if word_counts.size else 0
        return {
            "total_stories": len(self.story_metas),
            "total_chunks": len(self.chunks),
            "total_words": int(word_counts.sum()),
            "available_themes": self.get_all_themes(),
            "average_chunk_size": average,
        }


class KnowledgeBaseProvider:
    """Builds the knowledge base once, on first use, and remembers failures."""

    def __init__(self, corpus_path: Optional[str] = None) -> None:
        self.corpus_path = corpus_path
        self._lock = threading.Lock()
        self._loaded = False
        self._knowledge_base: Optional[KnowledgeBase] = None

    def get(self) -> Optional[KnowledgeBase]:
        if not self._loaded:
            with self._lock:
                if not self._loaded:
                    self._knowledge_base = self._build()
                    self._loaded = True
        return self._knowledge_base

    def _build(self) -> Optional[KnowledgeBase]:
        try:
            knowledge_base = KnowledgeBase(self.corpus_path)
            knowledge_base.initialize()
        except KnowledgeBaseError as exc:
            logger.warning("Knowledge base initialization failed, continuing without RAG: %s", exc)
            return None
        logger.info("Knowledge base ready for RAG queries")
        return knowledge_base

    @property
    def available(self) -> bool:
        return self.get() is not None

    def context_for(self, prompt: str) -> str:
        knowledge_base = self.get()
        if knowledge_base is None:
            return FALLBACK_CONTEXT
        context = knowledge_base.generate_context_for_prompt(prompt)
        stats = knowledge_base.get_stats()
        logger.info(
            "RAG context generated from %s stories with %s chunks",
            stats["total_stories"],
            stats["total_chunks"],
        )
        return context

    def stats(self) -> Optional[Dict[str, object]]:
        knowledge_base = self.get()
        return knowledge_base.get_stats() if knowledge_base is not None else None
