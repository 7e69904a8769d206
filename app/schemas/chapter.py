"""Pydantic schemas for chapter records, queries and API responses.

Field names on the wire are camelCase (``yearWiseQuestionCount``,
``isWeakChapter``) and ``class`` is exposed through an alias since it is a
Python keyword.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

ChapterStatus = Literal["Not Started", "In Progress", "Completed"]


class YearWiseQuestionCount(BaseModel):
    """Number of exam questions asked from a chapter, per year."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    y2019: int = Field(0, ge=0, alias="2019")
    y2020: int = Field(0, ge=0, alias="2020")
    y2021: int = Field(0, ge=0, alias="2021")
    y2022: int = Field(0, ge=0, alias="2022")
    y2023: int = Field(0, ge=0, alias="2023")
    y2024: int = Field(0, ge=0, alias="2024")
    y2025: int = Field(0, ge=0, alias="2025")

    def total(self) -> int:
        return sum(self.model_dump().values())


class ChapterCreate(BaseModel):
    """A chapter as submitted through the admin upload."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    subject: str = Field(..., min_length=1, description="Subject the chapter belongs to.")
    chapter: str = Field(..., min_length=1, description="Chapter name.")
    class_name: str = Field(..., alias="class", min_length=1, description="Class / grade.")
    unit: str = Field(..., min_length=1, description="Unit within the subject.")
    year_wise_question_count: YearWiseQuestionCount = Field(
        ..., alias="yearWiseQuestionCount"
    )
    question_solved: int = Field(
        ..., alias="questionSolved", ge=0, description="Questions solved so far."
    )
    status: ChapterStatus
    is_weak_chapter: bool = Field(..., alias="isWeakChapter")


class Chapter(ChapterCreate):
    """A stored chapter record."""

    id: str
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @computed_field(alias="totalQuestions")  # type: ignore[prop-decorator]
    @property
    def total_questions(self) -> int:
        return self.year_wise_question_count.total()

    def to_public(self) -> dict[str, Any]:
        """JSON-ready representation using wire field names."""
        return self.model_dump(mode="json", by_alias=True)


class ChapterQuery(BaseModel):
    """Validated filters and pagination for the chapter listing."""

    model_config = ConfigDict(populate_by_name=True)

    class_name: str | None = Field(None, alias="class")
    unit: str | None = None
    status: ChapterStatus | None = None
    weak_chapters: Literal["true", "false"] | None = Field(None, alias="weakChapters")
    subject: str | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    def cache_params(self) -> dict[str, Any]:
        """Query parameters as they take part in the cache key."""
        return self.model_dump(by_alias=True)

    def filters(self) -> dict[str, Any]:
        """Repository filters; unset parameters do not filter."""
        filters: dict[str, Any] = {}
        if self.class_name:
            filters["class_name"] = self.class_name
        if self.unit:
            filters["unit"] = self.unit
        if self.status:
            filters["status"] = self.status
        if self.subject:
            filters["subject"] = self.subject
        if self.weak_chapters:
            filters["is_weak_chapter"] = self.weak_chapters == "true"
        return filters


class ChapterListResponse(BaseModel):
    """Paginated chapter listing. ``cached`` is a diagnostic marker only."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    count: int
    total_chapters: int = Field(..., alias="totalChapters")
    total_pages: int = Field(..., alias="totalPages")
    current_page: int = Field(..., alias="currentPage")
    has_next_page: bool = Field(..., alias="hasNextPage")
    has_prev_page: bool = Field(..., alias="hasPrevPage")
    data: list[dict[str, Any]]
    cached: bool = False


class ChapterSummary(BaseModel):
    """Short identification of a chapter inside upload reports."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    subject: Any = None
    chapter: Any = None
    class_name: Any = Field(None, alias="class")


class FailedChapter(BaseModel):
    index: int
    chapter: ChapterSummary
    errors: list[str]


class UploadResult(BaseModel):
    """Per-item outcome of a bulk upload."""

    model_config = ConfigDict(populate_by_name=True)

    uploaded_count: int = Field(..., alias="uploadedCount")
    failed_count: int = Field(..., alias="failedCount")
    uploaded_chapters: list[ChapterSummary] = Field(..., alias="uploadedChapters")
    failed_chapters: list[FailedChapter] = Field(..., alias="failedChapters")


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    data: UploadResult
