from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class StoryMeta:
    id: str
    title: str
    main_themes: Tuple[str, ...]
    character_count: int
    plot_structure: Tuple[str, ...]
    writing_style: Tuple[str, ...]


@dataclass(frozen=True)
class StoryChunk:
    id: str
    content: str
    story_id: str
    chunk_index: int
    word_count: int
    themes: Tuple[str, ...] = field(default_factory=tuple)


@dataclass
class StoryRecord:
    id: str
    content: str
    timestamp: int
    expires_at: int


@dataclass
class GenerationResult:
    content: str
    model: str
    word_count: int
    first_words_preserved: bool


@dataclass
class VoiceoverResult:
    audio_path: str
    duration: int
    file_size: int
    format: str
    character_count: int
    provider: Optional[str] = None
