import json
import logging
import os
import threading
import time
import uuid
from dataclasses import asdict
from typing import Dict, List, Optional

from supabase import Client, create_client

from ..models import StoryRecord

logger = logging.getLogger(__name__)

EXPIRATION_HOURS = 48
EXPIRATION_MS = EXPIRATION_HOURS * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def new_record(content: str) -> StoryRecord:
    timestamp = now_ms()
    return StoryRecord(
        id=str(uuid.uuid4()),
        content=content,
        timestamp=timestamp,
        expires_at=timestamp + EXPIRATION_MS,
    )


class LocalStoryArchive:
    """Stories kept in memory and mirrored to one JSON file each."""

    def __init__(self, storage_dir: Optional[str] = None) -> None:
        self.storage_dir = storage_dir or os.getenv("STORY_STORAGE_DIR", "storage")
        os.makedirs(self.storage_dir, exist_ok=True)
        self._cache: Dict[str, StoryRecord] = {}
        self._lock = threading.Lock()

    def _path(self, story_id: str) -> str:
        return os.path.join(self.storage_dir, f"{os.path.basename(story_id)}.json")

    def _write(self, record: StoryRecord) -> None:
        with open(self._path(record.id), "w", encoding="utf-8") as f:
            json.dump(asdict(record), f)

    def _remove(self, story_id: str) -> bool:
        existed = self._cache.pop(story_id, None) is not None
        path = self._path(story_id)
        if os.path.exists(path):
            os.remove(path)
            existed = True
        return existed

    def _load(self, story_id: str) -> Optional[StoryRecord]:
        record = self._cache.get(story_id)
        if record is None:
            path = self._path(story_id)
            if not os.path.exists(path):
                return None
            with open(path, "r", encoding="utf-8") as f:
                record = StoryRecord(**json.load(f))
            self._cache[story_id] = record
        return record

    def save(self, content: str) -> StoryRecord:
        record = new_record(content)
        with self._lock:
            self._cache[record.id] = record
            self._write(record)
        logger.info("Story saved with ID %s (%s words)", record.id, len(content.split()))
        return record

    def _load_live(self, story_id: str) -> Optional[StoryRecord]:
        record = self._load(story_id)
        if record is not None and record.expires_at < now_ms():
            self._remove(story_id)
            logger.info("Story %s has expired", story_id)
            return None
        return record

    def get(self, story_id: str) -> Optional[StoryRecord]:
        with self._lock:
            return self._load_live(story_id)

    def append(self, story_id: str, content: str) -> Optional[StoryRecord]:
        with self._lock:
            record = self._load_live(story_id)
            if record is None:
                return None
            record.content += content
            self._write(record)
            return record

    def delete(self, story_id: str) -> bool:
        with self._lock:
            return self._remove(story_id)

    def cleanup(self) -> int:
        deleted = 0
        current = now_ms()
        with self._lock:
            for story_id, record in list(self._cache.items()):
                if record.expires_at < current:
                    self._remove(story_id)
                    deleted += 1

            for filename in os.listdir(self.storage_dir):
                if not filename.endswith(".json"):
                    continue
                path = os.path.join(self.storage_dir, filename)
                try:
                    with open(path, "r", encoding="utf-8") as f:
                        expired = json.load(f)["expires_at"] < current
                except (ValueError, KeyError, TypeError) as exc:
                    logger.warning("Removing unreadable story file %s: %s", filename, exc)
                    expired = True
                if expired:
                    os.remove(path)
                    self._cache.pop(filename[: -len(".json")], None)
                    deleted += 1
        logger.info("Cleanup removed %s expired stories", deleted)
        return deleted


class SupabaseStoryArchive:
    """Stories in a Supabase ``stories`` table."""

    table = "stories"

    def __init__(self, supabase_url: Optional[str] = None, supabase_key: Optional[str] = None) -> None:
        self.supabase_url = supabase_url or os.getenv("SUPABASE_URL")
        self.supabase_key = supabase_key or os.getenv("SUPABASE_ANON_KEY")
        if not self.supabase_url or not self.supabase_key:
            raise ValueError("Supabase URL and key must be provided via params or environment variables")
        self.supabase: Client = create_client(self.supabase_url, self.supabase_key)

    @staticmethod
    def _record(row: Dict) -> StoryRecord:
        return StoryRecord(
            id=row["id"],
            content=row["content"],
            timestamp=int(row["timestamp"]),
            expires_at=int(row["expires_at"]),
        )

    def save(self, content: str) -> StoryRecord:
        record = new_record(content)
        self.supabase.table(self.table).insert(asdict(record)).execute()
        logger.info("Story saved with ID %s", record.id)
        return record

    def get(self, story_id: str) -> Optional[StoryRecord]:
        result = self.supabase.table(self.table).select("*").eq("id", story_id).limit(1).execute()
        rows: List[Dict] = getattr(result, "data", [])
        if not rows:
            return None
        record = self._record(rows[0])
        if record.expires_at < now_ms():
            self.delete(story_id)
            return None
        return record

    def append(self, story_id: str, content: str) -> Optional[StoryRecord]:
        record = self.get(story_id)
        if record is None:
            return None
        record.content += content
        self.supabase.table(self.table).update({"content": record.content}).eq("id", story_id).execute()
        return record

    def delete(self, story_id: str) -> bool:
        result = self.supabase.table(self.table).delete().eq("id", story_id).execute()
        return bool(getattr(result, "data", []))

    def cleanup(self) -> int:
        result = self.supabase.table(self.table).delete().lt("expires_at", now_ms()).execute()
        deleted = len(getattr(result, "data", []) or [])
        logger.info("Cleanup removed %s expired stories", deleted)
        return deleted


def create_story_archive():
    if os.getenv("STORY_ARCHIVE", "local").lower() == "supabase":
        try:
            return SupabaseStoryArchive()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Supabase story archive not initialized, using local storage: %s", exc)
    return LocalStoryArchive()
