"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- API Key security scheme (``X-API-Key``) applied to admin operations only

Catalogue reads and the health check are public, so the key requirement is
attached per operation rather than globally.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

ADMIN_METHODS = {"post", "put", "patch", "delete"}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and security.

    - Injects components.securitySchemes for API Key auth (header ``X-API-Key``)
    - Marks write operations as requiring the key; reads stay ``security: []``
    - Documents the 429 response every operation can return
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin key, required for uploads and cache maintenance.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Chapters",
                "description": "Browse the chapter catalogue and upload new chapters.",
            },
            {
                "name": "Health",
                "description": "Liveness check including response cache status.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for method, operation in methods.items():
                if not isinstance(operation, dict):
                    continue
                operation["security"] = (
                    [{"ApiKeyAuth": []}] if method in ADMIN_METHODS else []
                )
                operation.setdefault("responses", {}).setdefault(
                    "429", {"description": "Rate limit exceeded"}
                )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
