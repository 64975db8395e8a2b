import pytest

from storyforge import create_app
from storyforge.models import GenerationResult
from storyforge.services.knowledge_base import FALLBACK_CONTEXT


@pytest.fixture()
def app(monkeypatch, corpus_file):
    monkeypatch.setenv("KNOWLEDGE_BASE_PATH", str(corpus_file))
    app = create_app()
    app.config.update({"TESTING": True})
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "OK"
    assert data["knowledge_base_available"] is True
    assert "POST /expand-story" in data["endpoints"]


def test_knowledge_stats(client):
    resp = client.get("/knowledge-stats")
    assert resp.status_code == 200
    stats = resp.get_json()["knowledge_base"]
    assert stats["total_stories"] == 2
    assert stats["total_chunks"] == 2


def test_knowledge_stats_unavailable(monkeypatch, tmp_path):
    monkeypatch.setenv("KNOWLEDGE_BASE_PATH", str(tmp_path / "missing.txt"))
    client = create_app().test_client()
    resp = client.get("/knowledge-stats")
    assert resp.status_code == 503
    resp = client.post("/knowledge-context", json={"prompt": "sister wedding"})
    assert resp.get_json()["context"] == FALLBACK_CONTEXT


def test_knowledge_context(client):
    resp = client.post("/knowledge-context", json={"prompt": "sister wedding dress"})
    assert resp.status_code == 200
    context = resp.get_json()["context"]
    assert "A sister stole a wedding dress" in context
    assert "WRITING GUIDELINES:" in context


def test_knowledge_context_validation(client):
    assert client.post("/knowledge-context", json={}).status_code == 400


def test_expand_story_validation(client):
    assert client.post("/expand-story", json={}).status_code == 400


def test_expand_story_without_key(client):
    resp = client.post("/expand-story", json={"story_prompt": "My sister stole my wedding dress."})
    assert resp.status_code == 500
    assert "GOOGLE_API_KEY" in resp.get_json()["details"]


def test_expand_story_success(app, client, monkeypatch):
    calls = {}

    def fake_expand(story_prompt, custom_prompt=None, api_key=None):
        calls["prompt"] = story_prompt
        return GenerationResult(content="A long story", model="gemini-test", word_count=3, first_words_preserved=False)

    monkeypatch.setattr(app.config["STORY_GENERATOR"], "expand_story", fake_expand)
    resp = client.post("/expand-story", json={"story_prompt": "  prompt text  "})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["content"] == "A long story"
    assert data["model"] == "gemini-test"
    assert calls["prompt"] == "prompt text"


def test_voiceover_validation(client):
    assert client.post("/generate-voiceover", json={"provider": "fish"}).status_code == 400
    resp = client.post("/generate-voiceover", json={"text": "hello", "provider": "nope"})
    assert resp.status_code == 400
    assert resp.get_json()["providers"] == ["elevenlabs", "fish"]
    resp = client.post("/generate-voiceover", json={"text": "hello", "provider": "elevenlabs"})
    assert resp.status_code == 503
    assert "ELEVENLABS_API_KEY" in resp.get_json()["details"]


def test_story_archive_flow(client):
    resp = client.post("/api/stories", json={"content": "Once upon a time."})
    assert resp.status_code == 200
    story_id = resp.get_json()["storyId"]

    resp = client.post("/api/stories/append", json={"storyId": story_id, "content": " The end.", "chunkIndex": 1, "isLastChunk": True})
    assert resp.status_code == 200
    assert resp.get_json()["isComplete"] is True

    resp = client.get(f"/api/stories?id={story_id}")
    assert resp.status_code == 200
    assert resp.get_json()["story"]["content"] == "Once upon a time. The end."

    assert client.delete(f"/api/stories?id={story_id}").status_code == 200
    assert client.get(f"/api/stories?id={story_id}").status_code == 404


def test_story_archive_validation(client):
    assert client.post("/api/stories", json={}).status_code == 400
    assert client.get("/api/stories").status_code == 400
    assert client.delete("/api/stories").status_code == 400
    assert client.post("/api/stories/append", json={"content": "x"}).status_code == 400
    assert client.post("/api/stories/append", json={"content": "x", "storyId": "missing"}).status_code == 404


def test_cleanup_requires_key_when_configured(client, monkeypatch):
    monkeypatch.setenv("CLEANUP_API_KEY", "secret")
    assert client.get("/api/cleanup").status_code == 401
    resp = client.get("/api/cleanup", headers={"x-api-key": "secret"})
    assert resp.status_code == 200
    assert resp.get_json()["deletedCount"] == 0
    assert client.get("/api/cleanup?key=secret").status_code == 200


def test_voiceover_provider_failure_is_bad_gateway(client, monkeypatch):
    from storyforge.services import voice

    def refused(url, **kwargs):
        raise voice.requests.ConnectionError("connection refused")

    monkeypatch.setattr(voice.requests, "post", refused)
    monkeypatch.setattr(voice.time, "sleep", lambda _: None)
    resp = client.post("/generate-voiceover", json={"text": "hello", "provider": "fish", "api_key": "k"})
    assert resp.status_code == 502
    assert resp.get_json()["error"] == "Failed to generate voiceover"


def test_knowledge_context_falls_back_on_bad_chunk_settings(client, monkeypatch):
    monkeypatch.setenv("KNOWLEDGE_BASE_OVERLAP_WORDS", "900")
    resp = client.post("/knowledge-context", json={"prompt": "sister wedding"})
    assert resp.status_code == 200
    assert resp.get_json()["context"] == FALLBACK_CONTEXT
    assert client.get("/knowledge-stats").status_code == 503
