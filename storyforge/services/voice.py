import logging
import os
import re
import time
from datetime import datetime, timezone
from typing import List, Optional

import requests
from pydub import AudioSegment

from ..models import VoiceoverResult

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 150
REQUEST_TIMEOUT = 300


class VoiceoverError(Exception):
    pass


class VoiceKeyMissing(VoiceoverError):
    """No API key was configured for the selected provider."""


def estimate_duration(text: str, speed: float = 1.0) -> int:
    words = len(text.split())
    return int(round(words / (WORDS_PER_MINUTE * speed) * 60))


def output_path(fmt: str, prefix: str = "voiceover") -> str:
    output_dir = os.path.abspath(os.getenv("VOICEOVER_OUTPUT_DIR", "output"))
    os.makedirs(output_dir, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
    return os.path.join(output_dir, f"{prefix}_{timestamp}.{fmt}")


def silence_filter(threshold_db: int = -45, min_silence_ms: int = 45) -> str:
    seconds = min_silence_ms / 1000
    return (
        f"silenceremove=start_periods=1:start_duration={seconds}:"
        f"start_threshold={threshold_db}dB:detection=peak,"
        f"silenceremove=stop_periods=-1:stop_duration={seconds}:"
        f"stop_threshold={threshold_db}dB:detection=peak,"
        "apad=pad_dur=0.023"
    )


def trim_silence(path: str, fmt: str = "mp3", threshold_db: int = -45, min_silence_ms: int = 45) -> str:
    """Strip leading and inner silence with ffmpeg; keep the input file on failure."""
    base, _ = os.path.splitext(path)
    trimmed_path = f"{base}_no_silence.{fmt}"
    try:
        sound = AudioSegment.from_file(path, format=fmt)
        sound.export(
            trimmed_path,
            format=fmt,
            parameters=["-af", silence_filter(threshold_db, min_silence_ms)],
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Silence removal failed, using original audio %s: %s", path, exc)
        return path

    if not os.path.exists(trimmed_path):
        logger.warning("Silence removal produced no output, using original audio %s", path)
        return path
    os.remove(path)
    return trimmed_path


def _raise_for_provider(name: str, env_var: str, response: requests.Response) -> None:
    if response.ok:
        return
    if response.status_code == 401:
        raise VoiceoverError(f"Invalid {name} API key. Please check your {env_var} environment variable.")
    if response.status_code == 402:
        raise VoiceoverError(f"Insufficient {name} credits. Please check your account balance.")
    if response.status_code == 429:
        raise VoiceoverError(f"{name} rate limit exceeded. Please try again later.")
    raise VoiceoverError(f"{name} API error: {response.status_code} {response.text[:200]}")


def _write_stream(response: requests.Response, path: str) -> None:
    with open(path, "wb") as f:
        for block in response.iter_content(chunk_size=65536):
            if block:
                f.write(block)


class ElevenLabsVoice:
    """Short-form voiceover through ElevenLabs, capped at 4000 characters."""

    name = "elevenlabs"
    base_url = "https://api.elevenlabs.io/v1"
    default_voice_id = "jpjWfzKyhJIgrlqr39h8"
    default_model = "eleven_monolingual_v1"
    max_characters = 4000

    def __init__(self, api_key: Optional[str] = None) -> None:
        self.api_key = api_key or os.getenv("ELEVENLABS_API_KEY")
        if not self.api_key:
            raise VoiceKeyMissing("ElevenLabs API key is required. Set ELEVENLABS_API_KEY.")

    def synthesize(
        self,
        text: str,
        path: Optional[str] = None,
        voice_id: Optional[str] = None,
        stability: float = 0.5,
        similarity_boost: float = 0.5,
        remove_silence: bool = True,
    ) -> VoiceoverResult:
        if len(text) > self.max_characters:
            logger.info("Text truncated from %s to %s characters for ElevenLabs", len(text), self.max_characters)
            text = text[: self.max_characters].strip()

        path = path or output_path("mp3", prefix="elevenlabs")
        voice_id = voice_id or self.default_voice_id
        logger.info("Generating ElevenLabs voiceover: %s characters, voice %s", len(text), voice_id)

        try:
            response = requests.post(
                f"{self.base_url}/text-to-speech/{voice_id}",
                headers={
                    "Accept": "audio/mpeg",
                    "Content-Type": "application/json",
                    "xi-api-key": self.api_key,
                },
                json={
                    "text": text,
                    "model_id": self.default_model,
                    "voice_settings": {"stability": stability, "similarity_boost": similarity_boost},
                },
                stream=True,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise VoiceoverError(f"ElevenLabs request failed: {exc}") from exc
        _raise_for_provider("ElevenLabs", "ELEVENLABS_API_KEY", response)
        _write_stream(response, path)

        if remove_silence:
            path = trim_silence(path, "mp3")

        return VoiceoverResult(
            audio_path=path,
            duration=estimate_duration(text),
            file_size=os.path.getsize(path),
            format="mp3",
            character_count=len(text),
            provider=self.name,
        )


def split_text(text: str, max_chars: int = 1500) -> List[str]:
    """Split on sentence ends into pieces of at most ``max_chars`` characters."""
    if len(text) <= max_chars:
        return [text]

    pieces: List[str] = []
    current = ""
    for sentence in re.split(r"[.!?]+", text):
        sentence = sentence.strip()
        if not sentence:
            continue

        candidate = f"{current}. {sentence}" if current else sentence
        if len(candidate) <= max_chars:
            current = candidate
            continue

        if current:
            pieces.append(current + ".")
        if len(sentence) <= max_chars:
            current = sentence
            continue

        # a single overlong sentence falls back to word boundaries
        current = ""
        for word in sentence.split():
            candidate = f"{current} {word}" if current else word
            if len(candidate) <= max_chars:
                current = candidate
            else:
                if current:
                    pieces.append(current)
                current = word

    if current:
        pieces.append(current + ".")
    return pieces


class FishAudioVoice:
    """Long-form voiceover through Fish Audio, stitched together from pieces."""

    name = "fish"
    base_url = "https://api.fish.audio/v1"
    default_model = "s1"
    default_voice_id = "c54cdcf2baad4f56be377a2473730942"
    max_piece_chars = 1500
    max_attempts = 3

    def __init__(self, api_key: Optional[str] = None) -> None:
        self.api_key = api_key or os.getenv("FISH_API_KEY")
        if not self.api_key:
            raise VoiceKeyMissing("Fish Audio API key is required. Set FISH_API_KEY.")

    def _request(self, text: str, path: str, fmt: str, speed: float) -> None:
        payload = {
            "text": text.strip(),
            "format": fmt,
            "normalize": True,
            "latency": "normal",
            "reference_id": self.default_voice_id,
        }
        if speed != 1.0:
            payload["prosody"] = {"speed": max(0.5, min(2.0, speed)), "volume": 0}

        try:
            response = requests.post(
                f"{self.base_url}/tts",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "model": self.default_model,
                },
                json=payload,
                stream=True,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise VoiceoverError(f"Fish Audio request failed: {exc}") from exc
        _raise_for_provider("Fish Audio", "FISH_API_KEY", response)
        _write_stream(response, path)

    def _request_with_retry(self, text: str, path: str, fmt: str, speed: float) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                self._request(text, path, fmt, speed)
                return
            except VoiceoverError as exc:
                logger.warning("Fish Audio piece failed (attempt %s/%s): %s", attempt, self.max_attempts, exc)
                if attempt == self.max_attempts:
                    raise
                time.sleep(2 ** (attempt - 1))

    def synthesize(
        self,
        text: str,
        path: Optional[str] = None,
        fmt: str = "mp3",
        speed: float = 1.0,
        remove_silence: bool = True,
    ) -> VoiceoverResult:
        path = path or output_path(fmt)
        pieces = split_text(text, self.max_piece_chars)
        logger.info("Generating Fish Audio voiceover: %s characters in %s pieces", len(text), len(pieces))

        if len(pieces) == 1:
            self._request_with_retry(pieces[0], path, fmt, speed)
        else:
            piece_paths: List[str] = []
            try:
                combined = AudioSegment.empty()
                for index, piece in enumerate(pieces):
                    piece_path = output_path(fmt, prefix=f"chunk_{index}")
                    piece_paths.append(piece_path)
                    self._request_with_retry(piece, piece_path, fmt, speed)
                    combined += AudioSegment.from_file(piece_path, format=fmt)
                combined.export(path, format=fmt)
            finally:
                for piece_path in piece_paths:
                    if os.path.exists(piece_path):
                        os.remove(piece_path)

        if remove_silence:
            path = trim_silence(path, fmt)

        return VoiceoverResult(
            audio_path=path,
            duration=estimate_duration(text, speed),
            file_size=os.path.getsize(path),
            format=fmt,
            character_count=len(text),
            provider=self.name,
        )


VOICE_PROVIDERS = {
    ElevenLabsVoice.name: ElevenLabsVoice,
    FishAudioVoice.name: FishAudioVoice,
}


def create_voice(provider: str, api_key: Optional[str] = None):
    try:
        voice_cls = VOICE_PROVIDERS[provider]
    except KeyError:
        raise VoiceoverError(f"Unknown voice provider: {provider}") from None
    return voice_cls(api_key=api_key)
