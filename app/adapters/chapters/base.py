"""Chapter repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from app.schemas.chapter import Chapter, ChapterCreate


@dataclass(frozen=True)
class InsertFailure:
    """A chapter the store refused during a bulk insert.

    Attributes:
        index: Position of the chapter in the list given to ``insert_many``.
        chapter: The rejected chapter.
        message: Store error message.
    """

    index: int
    chapter: ChapterCreate
    message: str


class AbstractChapterRepository(ABC):
    """Interface for the chapter record store."""

    @abstractmethod
    async def find(self, filters: dict[str, Any], *, skip: int, limit: int) -> list[Chapter]:
        """Return matching chapters, newest first."""
        raise NotImplementedError

    @abstractmethod
    async def count(self, filters: dict[str, Any]) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get(self, chapter_id: str) -> Chapter | None:
        raise NotImplementedError

    @abstractmethod
    async def insert_many(
        self, chapters: list[ChapterCreate]
    ) -> tuple[list[Chapter], list[InsertFailure]]:
        """Insert chapters independently of each other.

        A failure on one chapter does not stop the others (unordered bulk
        insert semantics).

        Returns:
            Tuple of (inserted chapters, failures).
        """
        raise NotImplementedError
