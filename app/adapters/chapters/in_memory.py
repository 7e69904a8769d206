"""In-memory chapter repository.

Notes:
- Per-process only: data is lost on restart.
- ``(subject, class, chapter)`` is unique, compared case-insensitively.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import itertools
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from app.adapters.chapters.base import AbstractChapterRepository, InsertFailure
from app.schemas.chapter import Chapter, ChapterCreate


def _natural_key(chapter: ChapterCreate) -> tuple[str, str, str]:
    return (
        chapter.subject.lower(),
        chapter.class_name.lower(),
        chapter.chapter.lower(),
    )


class InMemoryChapterRepository(AbstractChapterRepository):
    """Dictionary-backed chapter store."""

    def __init__(self, *, now: Callable[[], datetime] | None = None) -> None:
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        self._chapters: dict[str, Chapter] = {}
        self._order: dict[str, int] = {}
        self._natural_keys: set[tuple[str, str, str]] = set()
        self._sequence = itertools.count()

    def _matching_locked(self, filters: dict[str, Any]) -> list[Chapter]:
        return [
            chapter
            for chapter in self._chapters.values()
            if all(getattr(chapter, field) == value for field, value in filters.items())
        ]

    async def find(self, filters: dict[str, Any], *, skip: int, limit: int) -> list[Chapter]:
        with self._lock:
            matches = self._matching_locked(filters)
            matches.sort(
                key=lambda c: (c.created_at, self._order[c.id]),
                reverse=True,
            )
            return matches[skip : skip + limit]

    async def count(self, filters: dict[str, Any]) -> int:
        with self._lock:
            return len(self._matching_locked(filters))

    async def get(self, chapter_id: str) -> Chapter | None:
        with self._lock:
            return self._chapters.get(chapter_id)

    async def insert_many(
        self, chapters: list[ChapterCreate]
    ) -> tuple[list[Chapter], list[InsertFailure]]:
        inserted: list[Chapter] = []
        failures: list[InsertFailure] = []

        with self._lock:
            for index, chapter in enumerate(chapters):
                natural_key = _natural_key(chapter)
                if natural_key in self._natural_keys:
                    failures.append(
                        InsertFailure(
                            index=index,
                            chapter=chapter,
                            message=(
                                "Duplicate chapter: "
                                f"{chapter.subject} / {chapter.class_name} / {chapter.chapter}"
                            ),
                        )
                    )
                    continue

                timestamp = self._now()
                stored = Chapter(
                    **chapter.model_dump(),
                    id=uuid.uuid4().hex,
                    created_at=timestamp,
                    updated_at=timestamp,
                )
                self._chapters[stored.id] = stored
                self._order[stored.id] = next(self._sequence)
                self._natural_keys.add(natural_key)
                inserted.append(stored)

        return inserted, failures
