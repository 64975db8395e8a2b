import pytest

from storyforge.services.chunker import OVERLAP_WORDS, chunk_story


def make_story(n_words):
    return " ".join(f"w{i}" for i in range(n_words))


def rebuild(chunks, overlap=OVERLAP_WORDS):
    words = chunks[0].content.split()
    for chunk in chunks[1:]:
        words.extend(chunk.content.split()[overlap:])
    return words


def test_1700_words_yield_three_windows():
    chunks = chunk_story(make_story(1700), "story_1")
    assert [c.content.split()[0] for c in chunks] == ["w0", "w700", "w1400"]
    assert [c.content.split()[-1] for c in chunks] == ["w799", "w1499", "w1699"]
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert [c.id for c in chunks] == ["story_1_chunk_0", "story_1_chunk_1", "story_1_chunk_2"]


@pytest.mark.parametrize("n_words", [1, 50, 99, 100])
def test_short_story_is_single_chunk(n_words):
    story = make_story(n_words)
    chunks = chunk_story(story, "story_1")
    assert len(chunks) == 1
    assert chunks[0].content == story


@pytest.mark.parametrize(
    "n_words,expected",
    [(101, 1), (800, 1), (801, 2), (899, 2), (900, 2), (1500, 2), (1501, 3), (2200, 3), (2201, 4)],
)
def test_chunk_counts_at_boundaries(n_words, expected):
    assert len(chunk_story(make_story(n_words), "s")) == expected


@pytest.mark.parametrize("n_words", [101, 800, 801, 1500, 1501, 1700, 3333])
def test_chunks_rebuild_story_words(n_words):
    story = make_story(n_words)
    chunks = chunk_story(story, "s")
    assert rebuild(chunks) == story.split()
    for left, right in zip(chunks, chunks[1:]):
        assert left.content.split()[-OVERLAP_WORDS:] == right.content.split()[:OVERLAP_WORDS]


def test_word_count_matches_content():
    story = "  line one\n\nline   two\tthree  " + make_story(900)
    for chunk in chunk_story(story, "s"):
        assert chunk.word_count == len(chunk.content.split())


def test_chunk_themes_come_from_chunk_text():
    opening = "revenge payback " + make_story(798)
    story = opening + " " + make_story(800)
    chunks = chunk_story(story, "s")
    assert "revenge" in chunks[0].themes
    assert "revenge" not in chunks[-1].themes


def test_custom_window():
    chunks = chunk_story(make_story(25), "s", max_chunk_words=10, overlap_words=2)
    assert [len(c.content.split()) for c in chunks] == [10, 10, 9]
    assert rebuild(chunks, overlap=2) == make_story(25).split()


def test_invalid_window_rejected():
    with pytest.raises(ValueError):
        chunk_story("a b c", "s", max_chunk_words=10, overlap_words=10)
