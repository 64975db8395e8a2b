import os
from dataclasses import asdict
from typing import Any, Dict

from flask import Blueprint, Response, current_app, jsonify, request, send_file

from .services.generator import GenerationError
from .services.voice import VOICE_PROVIDERS, VoiceKeyMissing, VoiceoverError, create_voice


bp = Blueprint("api", __name__)

ENDPOINTS = {
    "POST /expand-story": "Expand a story with RAG context from the knowledge base",
    "POST /knowledge-context": "Preview the RAG context built for a prompt",
    "GET /knowledge-stats": "Knowledge base statistics",
    "POST /generate-voiceover": "Render text to audio with elevenlabs or fish",
    "POST /api/stories": "Save a story for 48 hours",
    "GET /api/stories?id=": "Fetch a saved story",
    "DELETE /api/stories?id=": "Delete a saved story",
    "POST /api/stories/append": "Append a chunk to a saved story",
    "GET /api/cleanup": "Remove expired stories",
}


def _status() -> Dict[str, Any]:
    return {
        "status": "OK",
        "message": "StoryForge story expander with RAG knowledge base and voiceover is running",
        "knowledge_base_available": current_app.config["KNOWLEDGE_BASE"].available,
        "endpoints": ENDPOINTS,
    }


@bp.route("/", methods=["GET"])
def home() -> Response:
    return jsonify(_status())


@bp.route("/api/health", methods=["GET"])
def health_check() -> Response:
    return jsonify(_status())


@bp.route("/knowledge-stats", methods=["GET"])
def knowledge_stats() -> Response:
    stats = current_app.config["KNOWLEDGE_BASE"].stats()
    if stats is None:
        return jsonify(
            {
                "error": "Knowledge base not available",
                "message": "The knowledge base could not be initialized",
            }
        ), 503
    return jsonify({"success": True, "knowledge_base": stats})


@bp.route("/knowledge-context", methods=["POST"])
def knowledge_context() -> Response:
    data = request.get_json(silent=True) or {}
    prompt = (data.get("prompt") or "").strip()
    if not prompt:
        return jsonify({"error": "Missing required field: prompt"}), 400
    context = current_app.config["KNOWLEDGE_BASE"].context_for(prompt)
    return jsonify({"prompt": prompt, "context": context})


@bp.route("/expand-story", methods=["POST"])
def expand_story() -> Response:
    data = request.get_json(silent=True) or {}
    story_prompt = (data.get("story_prompt") or "").strip()
    if not story_prompt:
        return jsonify({"error": "Missing required field: story_prompt"}), 400

    generator = current_app.config["STORY_GENERATOR"]
    try:
        result = generator.expand_story(
            story_prompt,
            custom_prompt=data.get("custom_prompt"),
            api_key=data.get("api_key"),
        )
    except GenerationError as exc:
        return jsonify({"error": "Failed to expand story", "details": str(exc)}), 500

    return jsonify({"success": True, **asdict(result)})


@bp.route("/generate-voiceover", methods=["POST"])
def generate_voiceover() -> Response:
    data = request.get_json(silent=True) or {}
    text = (data.get("text") or "").strip()
    provider = (data.get("provider") or "fish").lower()
    if not text:
        return jsonify({"error": "Missing required field: text"}), 400
    if provider not in VOICE_PROVIDERS:
        return jsonify(
            {
                "error": f"Unknown voice provider: {provider}",
                "providers": sorted(VOICE_PROVIDERS),
            }
        ), 400

    try:
        voice = create_voice(provider, api_key=data.get("api_key"))
    except VoiceKeyMissing as exc:
        return jsonify({"error": "Voiceover provider not configured", "details": str(exc)}), 503

    try:
        result = voice.synthesize(text, remove_silence=bool(data.get("remove_silence", True)))
    except VoiceoverError as exc:
        return jsonify({"error": "Failed to generate voiceover", "details": str(exc)}), 502

    response = send_file(
        result.audio_path,
        mimetype="audio/mpeg" if result.format == "mp3" else f"audio/{result.format}",
        as_attachment=True,
        download_name=os.path.basename(result.audio_path),
    )
    response.headers["X-Audio-Duration"] = str(result.duration)
    response.headers["X-Character-Count"] = str(result.character_count)
    return response


@bp.route("/api/stories", methods=["POST"])
def save_story() -> Response:
    data = request.get_json(silent=True) or {}
    content = data.get("content")
    if not content or not isinstance(content, str):
        return jsonify({"error": "Story content is required"}), 400
    record = current_app.config["STORY_ARCHIVE"].save(content)
    return jsonify(
        {
            "success": True,
            "storyId": record.id,
            "message": "Story saved successfully. It will expire in 48 hours.",
            "expiresAt": record.expires_at,
        }
    )


@bp.route("/api/stories", methods=["GET"])
def get_story() -> Response:
    story_id = request.args.get("id")
    if not story_id:
        return jsonify({"error": "Story ID is required"}), 400
    record = current_app.config["STORY_ARCHIVE"].get(story_id)
    if record is None:
        return jsonify({"error": "Story not found or expired"}), 404
    return jsonify({"success": True, "story": asdict(record)})


@bp.route("/api/stories", methods=["DELETE"])
def delete_story() -> Response:
    story_id = request.args.get("id")
    if not story_id:
        return jsonify({"error": "Story ID is required"}), 400
    current_app.config["STORY_ARCHIVE"].delete(story_id)
    return jsonify({"success": True, "message": "Story deleted successfully"})


@bp.route("/api/stories/append", methods=["POST"])
def append_story() -> Response:
    data = request.get_json(silent=True) or {}
    content = data.get("content")
    story_id = data.get("storyId")
    if not content or not story_id:
        return jsonify({"error": "Story content and storyId are required"}), 400

    record = current_app.config["STORY_ARCHIVE"].append(story_id, content)
    if record is None:
        return jsonify({"error": "Story not found"}), 404

    chunk_index = data.get("chunkIndex", "unknown")
    return jsonify(
        {
            "success": True,
            "storyId": record.id,
            "message": f"Chunk {chunk_index} appended successfully.",
            "isComplete": data.get("isLastChunk") is True,
        }
    )


@bp.route("/api/cleanup", methods=["GET"])
def cleanup_stories() -> Response:
    expected_key = os.getenv("CLEANUP_API_KEY")
    if expected_key:
        provided = request.headers.get("x-api-key") or request.args.get("key")
        if provided != expected_key:
            return jsonify({"error": "Unauthorized"}), 401

    deleted = current_app.config["STORY_ARCHIVE"].cleanup()
    return jsonify(
        {
            "success": True,
            "message": f"Cleanup completed. Deleted {deleted} expired stories.",
            "deletedCount": deleted,
        }
    )
