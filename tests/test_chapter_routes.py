"""Route-level tests for the chapter catalogue.

The app runs inside ``with TestClient(...)`` so the lifespan connects the
fakeredis-backed cache and every request shares one event loop.
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from app.adapters.chapters.in_memory import InMemoryChapterRepository
from app.api.routes.chapters import get_chapter_service
from app.core.app_factory import create_app
from app.services.chapter_service import ChapterService
from tests.factories import ADMIN_HEADERS, make_chapter


@pytest.fixture
def repository() -> InMemoryChapterRepository:
    return InMemoryChapterRepository()


@pytest.fixture
def client(connection, cache, repository):
    app = create_app(connection=connection, cache=cache)
    app.dependency_overrides[get_chapter_service] = lambda: ChapterService(
        repository=repository, cache=cache
    )
    with TestClient(app) as test_client:
        yield test_client


def _seed(client: TestClient, *chapters: dict) -> dict:
    resp = client.post("/api/v1/chapters", json=list(chapters), headers=ADMIN_HEADERS)
    assert resp.status_code == 201
    return resp.json()


class TestListChapters:

    def test_empty_catalogue(self, client) -> None:
        body = client.get("/api/v1/chapters").json()

        assert body["success"] is True
        assert body["count"] == 0
        assert body["totalChapters"] == 0
        assert body["totalPages"] == 0
        assert body["currentPage"] == 1
        assert body["hasNextPage"] is False
        assert body["hasPrevPage"] is False
        assert body["data"] == []

    def test_second_read_is_served_from_cache(self, client) -> None:
        _seed(client, make_chapter())

        first = client.get("/api/v1/chapters", params={"subject": "Physics"}).json()
        second = client.get("/api/v1/chapters", params={"subject": "Physics"}).json()

        assert first["cached"] is False
        assert second["cached"] is True
        assert second["data"] == first["data"]

    def test_parameter_order_shares_cache_entry(self, client) -> None:
        _seed(client, make_chapter())

        client.get("/api/v1/chapters?subject=Physics&page=1")
        body = client.get("/api/v1/chapters?page=1&subject=Physics").json()

        assert body["cached"] is True

    def test_unknown_parameters_are_ignored(self, client) -> None:
        client.get("/api/v1/chapters")
        body = client.get("/api/v1/chapters", params={"utm_source": "mail"}).json()

        assert body["cached"] is True

    def test_upload_invalidates_listings(self, client) -> None:
        _seed(client, make_chapter())
        client.get("/api/v1/chapters")

        _seed(client, make_chapter(chapter="Laws of Motion"))
        body = client.get("/api/v1/chapters").json()

        assert body["cached"] is False
        assert body["totalChapters"] == 2

    def test_filters_and_pagination(self, client) -> None:
        _seed(
            client,
            make_chapter(chapter="Kinematics", isWeakChapter=True),
            make_chapter(chapter="Optics", unit="Optics 1", status="Completed"),
            make_chapter(subject="Chemistry", chapter="Mole Concept", **{"class": "Class 12"}),
        )

        weak = client.get("/api/v1/chapters", params={"weakChapters": "true"}).json()
        assert [c["chapter"] for c in weak["data"]] == ["Kinematics"]

        completed = client.get("/api/v1/chapters", params={"status": "Completed"}).json()
        assert [c["chapter"] for c in completed["data"]] == ["Optics"]

        class_12 = client.get("/api/v1/chapters", params={"class": "Class 12"}).json()
        assert class_12["totalChapters"] == 1
        assert class_12["data"][0]["class"] == "Class 12"

        page = client.get("/api/v1/chapters", params={"limit": 2, "page": 2}).json()
        assert page["count"] == 1
        assert page["totalPages"] == 2
        assert page["hasPrevPage"] is True
        assert page["hasNextPage"] is False

    def test_newest_first(self, client) -> None:
        _seed(client, make_chapter(chapter="First"))
        _seed(client, make_chapter(chapter="Second"))

        body = client.get("/api/v1/chapters").json()

        assert [c["chapter"] for c in body["data"]] == ["Second", "First"]

    @pytest.mark.parametrize(
        "params",
        [
            {"limit": 0},
            {"limit": 101},
            {"page": 0},
            {"weakChapters": "maybe"},
            {"status": "Done"},
        ],
    )
    def test_invalid_query_is_400(self, client, params) -> None:
        resp = client.get("/api/v1/chapters", params=params)

        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid query parameters"

    def test_cache_outage_still_serves(self, client, redis_server) -> None:
        _seed(client, make_chapter())
        redis_server.connected = False

        first = client.get("/api/v1/chapters")
        second = client.get("/api/v1/chapters")

        assert first.status_code == 200
        assert first.json()["totalChapters"] == 1
        assert second.json()["cached"] is False


class TestGetChapter:

    def test_get_by_id(self, client) -> None:
        uploaded = _seed(client, make_chapter())
        chapter_id = uploaded["data"]["uploadedChapters"][0]["id"]

        resp = client.get(f"/api/v1/chapter/{chapter_id}")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["id"] == chapter_id
        assert data["totalQuestions"] == 6
        assert data["yearWiseQuestionCount"]["2019"] == 2
        assert "createdAt" in data

    def test_unknown_id_is_404(self, client) -> None:
        resp = client.get("/api/v1/chapter/missing")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "chapter_not_found"


class TestUploadChapters:

    def test_requires_admin_key(self, client) -> None:
        missing = client.post("/api/v1/chapters", json=[make_chapter()])
        wrong = client.post("/api/v1/chapters", json=[make_chapter()], headers={"X-API-Key": "nope"})

        assert missing.status_code == 401
        assert wrong.status_code == 403
        assert wrong.json() == {"success": False, "error": "Not authorized to access this route"}

    def test_partial_failures_are_reported(self, client) -> None:
        resp = client.post(
            "/api/v1/chapters",
            json=[make_chapter(), {"subject": "Maths", "chapter": "Limits"}],
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "1 chapters uploaded successfully"
        data = body["data"]
        assert data["uploadedCount"] == 1
        assert data["failedCount"] == 1
        failed = data["failedChapters"][0]
        assert failed["index"] == 1
        assert failed["chapter"]["subject"] == "Maths"
        assert failed["errors"]

    def test_duplicates_are_rejected_per_item(self, client) -> None:
        _seed(client, make_chapter())

        data = _seed(client, make_chapter(), make_chapter(chapter="Work and Energy"))["data"]

        assert data["uploadedCount"] == 1
        assert data["failedCount"] == 1
        assert data["failedChapters"][0]["index"] == 0
        assert "Duplicate" in data["failedChapters"][0]["errors"][0]

    def test_empty_array_is_400(self, client) -> None:
        resp = client.post("/api/v1/chapters", json=[], headers=ADMIN_HEADERS)

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "empty_upload"

    def test_non_array_body_is_400(self, client) -> None:
        resp = client.post("/api/v1/chapters", json={"subject": "Physics"}, headers=ADMIN_HEADERS)

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_chapters_data"

    def test_json_file_upload(self, client) -> None:
        payload = json.dumps([make_chapter(), make_chapter(chapter="Gravitation")])

        resp = client.post(
            "/api/v1/chapters",
            files={"file": ("chapters.json", payload, "application/json")},
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 201
        assert resp.json()["data"]["uploadedCount"] == 2

    def test_non_json_file_is_rejected(self, client) -> None:
        resp = client.post(
            "/api/v1/chapters",
            files={"file": ("chapters.csv", "subject,chapter", "text/csv")},
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_file_type"

    def test_malformed_json_file_is_rejected(self, client) -> None:
        resp = client.post(
            "/api/v1/chapters",
            files={"file": ("chapters.json", "[{not json", "application/json")},
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_json_file"


class TestCacheMaintenance:

    def test_admin_can_drop_listing_cache(self, client) -> None:
        client.get("/api/v1/chapters")
        assert client.get("/api/v1/chapters").json()["cached"] is True

        resp = client.delete("/api/v1/chapters/cache", headers=ADMIN_HEADERS)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "invalidated": True}
        assert client.get("/api/v1/chapters").json()["cached"] is False

    def test_requires_admin_key(self, client) -> None:
        assert client.delete("/api/v1/chapters/cache").status_code == 401



class TestHealthAndFallback:

    def test_health_reports_cache(self, client) -> None:
        body = client.get("/health").json()

        assert body["success"] is True
        assert body["message"] == "Server is running"
        assert body["cache"]["status"] == "healthy"

    def test_unknown_route(self, client) -> None:
        resp = client.get("/api/v1/unknown")

        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Route /api/v1/unknown not found"}
