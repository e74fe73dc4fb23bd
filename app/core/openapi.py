"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- Tags metadata
- Admin API key security scheme (``X-API-Key``) on operational routes only

Object and health routes are public and stay unauthenticated in the docs.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

ADMIN_PATH_PREFIXES = ("/debug/", "/_scheduled/")


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and the admin scheme."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "AdminApiKey",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin key from APP_ADMIN_API_KEYS, required on operational routes.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Objects",
                "description": "Public object download and upload, behind admission control and rate limits.",
            },
            {
                "name": "Admin",
                "description": "Operational routes: object listing and janitor trigger.",
            },
            {
                "name": "Health",
                "description": "Liveness check.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for path, methods in paths.items():
            if not path.startswith(ADMIN_PATH_PREFIXES):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = [{"AdminApiKey": []}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
