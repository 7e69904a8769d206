from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request, status

from app.adapters.chapters.base import AbstractChapterRepository
from app.adapters.chapters.in_memory import InMemoryChapterRepository
from app.core.auth import require_admin
from app.core.file_validation import read_chapters_payload
from app.schemas.chapter import ChapterQuery, ChapterStatus, UploadResponse
from app.services.chapter_service import ChapterService

router = APIRouter(tags=["Chapters"])

# Process-wide record store
_repository: AbstractChapterRepository = InMemoryChapterRepository()


def get_chapter_service(request: Request) -> ChapterService:
    """Dependency returning the chapter service (overridable in tests)."""
    return ChapterService(repository=_repository, cache=request.app.state.cache)


ServiceDep = Annotated[ChapterService, Depends(get_chapter_service)]


@router.get("/chapters")
async def list_chapters(
    service: ServiceDep,
    class_name: Annotated[str | None, Query(alias="class")] = None,
    unit: str | None = None,
    status_filter: Annotated[ChapterStatus | None, Query(alias="status")] = None,
    weak_chapters: Annotated[
        str | None, Query(alias="weakChapters", pattern="^(true|false)$")
    ] = None,
    subject: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> dict[str, Any]:
    """List chapters with filtering and pagination.

    Served from the response cache when possible; the ``cached`` flag in the
    body tells which path answered.
    """
    query = ChapterQuery(
        class_name=class_name.strip() if class_name else class_name,
        unit=unit.strip() if unit else unit,
        status=status_filter,
        weak_chapters=weak_chapters,
        subject=subject.strip() if subject else subject,
        page=page,
        limit=limit,
    )
    return await service.list_chapters(query)


@router.get("/chapter/{chapter_id}")
async def get_chapter(chapter_id: str, service: ServiceDep) -> dict[str, Any]:
    """Return a single chapter by id (404 if unknown)."""
    chapter = await service.get_chapter(chapter_id)
    return {"success": True, "data": chapter.to_public()}


@router.post(
    "/chapters",
    status_code=status.HTTP_201_CREATED,
    response_model=UploadResponse,
    dependencies=[Depends(require_admin)],
)
async def upload_chapters(request: Request, service: ServiceDep) -> UploadResponse:
    """Bulk upload chapters (admin only).

    Accepts a JSON array body or a multipart ``file`` holding a JSON array.
    Items are validated one by one; invalid items are reported in
    ``failedChapters`` while valid ones are stored.
    """
    items = await read_chapters_payload(request)
    result = await service.upload_chapters(items)
    return UploadResponse(
        message=f"{result.uploaded_count} chapters uploaded successfully",
        data=result,
    )


@router.delete("/chapters/cache", dependencies=[Depends(require_admin)])
async def invalidate_chapter_cache(service: ServiceDep) -> dict[str, Any]:
    """Drop every cached chapter listing (admin only)."""
    invalidated = await service.invalidate_cache()
    return {"success": True, "invalidated": invalidated}
