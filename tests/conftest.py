import os
import sys
from pathlib import Path
import pytest

# Ensure repository root is importable during test collection
REPO_ROOT = str(Path(__file__).resolve().parents[1])
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)


SAMPLE_CORPUS = (
    "Story1:\nA sister stole a wedding dress and wore it.\n"
    "Story2:\nA coworker stole credit for a project."
)


@pytest.fixture(autouse=True)
def _isolate_test_env(monkeypatch, tmp_path):
    # Keep storage, output and corpus lookups inside the test directory
    monkeypatch.chdir(tmp_path)
    # Disable external services
    monkeypatch.setenv("GOOGLE_API_KEY", "")
    monkeypatch.setenv("ELEVENLABS_API_KEY", "")
    monkeypatch.setenv("FISH_API_KEY", "")
    monkeypatch.setenv("SUPABASE_URL", "")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "")
    monkeypatch.setenv("STORY_ARCHIVE", "local")
    monkeypatch.setenv("CLEANUP_API_KEY", "")
    monkeypatch.delenv("KNOWLEDGE_BASE_PATH", raising=False)
    monkeypatch.delenv("KNOWLEDGE_BASE_CHUNK_WORDS", raising=False)
    monkeypatch.delenv("KNOWLEDGE_BASE_OVERLAP_WORDS", raising=False)


@pytest.fixture()
def corpus_file(tmp_path):
    path = tmp_path / "Data.txt"
    path.write_text(SAMPLE_CORPUS, encoding="utf-8")
    return path
