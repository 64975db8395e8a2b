from typing import List

from ..models import StoryChunk
from .tagging import extract_themes

MAX_CHUNK_WORDS = 800
OVERLAP_WORDS = 100


def create_chunk(content: str, story_id: str, chunk_index: int) -> StoryChunk:
    return StoryChunk(
        id=f"{story_id}_chunk_{chunk_index}",
        content=content,
        story_id=story_id,
        chunk_index=chunk_index,
        word_count=len(content.split()),
        themes=tuple(extract_themes(content)),
    )


def chunk_story(
    story: str,
    story_id: str,
    max_chunk_words: int = MAX_CHUNK_WORDS,
    overlap_words: int = OVERLAP_WORDS,
) -> List[StoryChunk]:
    """Slide a word window over ``story``.

    Consecutive chunks share ``overlap_words`` words. The walk stops once the
    next start index is within ``overlap_words`` of the end, so a story of at
    most ``overlap_words`` words becomes a single chunk.
    """
    if not 0 <= overlap_words < max_chunk_words:
        raise ValueError("overlap_words must satisfy 0 <= overlap_words < max_chunk_words")

    words = story.split()
    total_words = len(words)
    chunks: List[StoryChunk] = []

    start = 0
    while start < total_words:
        end = min(start + max_chunk_words, total_words)
        content = " ".join(words[start:end])
        if content:
            chunks.append(create_chunk(content, story_id, len(chunks)))

        start = end - overlap_words
        if start >= total_words - overlap_words:
            break

    return chunks
