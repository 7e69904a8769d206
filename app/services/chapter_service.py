"""Chapter catalogue service: cached listings and admin bulk upload.

Listings are served cache-first. On a miss the repository is queried, the
response is built and written through to the cache. Successful uploads drop
every cached listing so the next read sees the new records.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import ValidationError

from app.adapters.chapters.base import AbstractChapterRepository
from app.core.errors import NotFoundAppError, ValidationAppError
from app.schemas.chapter import (
    Chapter,
    ChapterCreate,
    ChapterListResponse,
    ChapterQuery,
    ChapterSummary,
    FailedChapter,
    UploadResult,
)
from app.services.cache_service import CacheService

logger = logging.getLogger(__name__)

LISTING_ENDPOINT = "/api/v1/chapters"


def _format_validation_errors(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return messages


def _summarize(item: Any) -> ChapterSummary:
    if not isinstance(item, dict):
        return ChapterSummary()
    return ChapterSummary(
        subject=item.get("subject"),
        chapter=item.get("chapter"),
        class_name=item.get("class"),
    )


class ChapterService:
    """Business logic for reading and uploading chapters."""

    def __init__(self, *, repository: AbstractChapterRepository, cache: CacheService) -> None:
        self._repository = repository
        self._cache = cache

    async def list_chapters(self, query: ChapterQuery) -> dict[str, Any]:
        """Return one page of chapters matching ``query``.

        Args:
            query: Validated filters and pagination.

        Returns:
            ChapterListResponse payload (wire field names). ``cached`` is
            True when served from the cache.
        """
        cache_key = self._cache.generate_cache_key(LISTING_ENDPOINT, query.cache_params())

        cached = await self._cache.get(cache_key)
        if isinstance(cached, dict):
            return {**cached, "cached": True}

        filters = query.filters()
        skip = (query.page - 1) * query.limit
        chapters = await self._repository.find(filters, skip=skip, limit=query.limit)
        total = await self._repository.count(filters)
        total_pages = math.ceil(total / query.limit)

        response = ChapterListResponse(
            count=len(chapters),
            total_chapters=total,
            total_pages=total_pages,
            current_page=query.page,
            has_next_page=query.page < total_pages,
            has_prev_page=query.page > 1,
            data=[chapter.to_public() for chapter in chapters],
            cached=False,
        ).model_dump(mode="json", by_alias=True)

        await self._cache.set(cache_key, response)
        return response

    async def get_chapter(self, chapter_id: str) -> Chapter:
        chapter = await self._repository.get(chapter_id)
        if chapter is None:
            raise NotFoundAppError(
                code="chapter_not_found",
                message="Chapter not found",
                details={"chapter_id": chapter_id},
            )
        return chapter

    async def upload_chapters(self, items: Any) -> UploadResult:
        """Validate and store a batch of chapters.

        Each item is validated and inserted independently; invalid or
        rejected items are reported with their index instead of failing the
        whole batch.

        Raises:
            ValidationAppError: If ``items`` is not a non-empty list.
        """
        if not isinstance(items, list) or not items:
            raise ValidationAppError(
                code="empty_upload",
                message="Chapters data must be a non-empty array",
            )

        valid: list[ChapterCreate] = []
        valid_indexes: list[int] = []
        failed: list[FailedChapter] = []

        for index, item in enumerate(items):
            try:
                valid.append(ChapterCreate.model_validate(item))
                valid_indexes.append(index)
            except ValidationError as exc:
                failed.append(
                    FailedChapter(
                        index=index,
                        chapter=_summarize(item),
                        errors=_format_validation_errors(exc),
                    )
                )

        inserted: list[Chapter] = []
        if valid:
            inserted, insert_failures = await self._repository.insert_many(valid)
            for failure in insert_failures:
                failed.append(
                    FailedChapter(
                        index=valid_indexes[failure.index],
                        chapter=ChapterSummary(
                            subject=failure.chapter.subject,
                            chapter=failure.chapter.chapter,
                            class_name=failure.chapter.class_name,
                        ),
                        errors=[failure.message],
                    )
                )

        if inserted:
            await self._cache.invalidate_chapter_cache()

        failed.sort(key=lambda f: f.index)
        logger.info(
            "chapters.uploaded",
            extra={"uploaded": len(inserted), "failed": len(failed)},
        )

        return UploadResult(
            uploaded_count=len(inserted),
            failed_count=len(failed),
            uploaded_chapters=[
                ChapterSummary(
                    id=chapter.id,
                    subject=chapter.subject,
                    chapter=chapter.chapter,
                    class_name=chapter.class_name,
                )
                for chapter in inserted
            ],
            failed_chapters=failed,
        )

    async def invalidate_cache(self) -> bool:
        """Drop every cached listing; False if the cache could not be reached."""
        return await self._cache.invalidate_chapter_cache()
