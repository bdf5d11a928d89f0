"""OpenAPI metadata and customization utilities.

Enriches the generated schema with tags metadata and documents the shared
error envelope on the phrase endpoints, keeping documentation concerns out
of the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_ERROR_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "error": {
            "type": "object",
            "properties": {
                "code": {"type": "string"},
                "message": {"type": "string"},
                "request_id": {"type": "string", "nullable": True},
                "details": {"type": "object"},
            },
            "required": ["code", "message"],
        }
    },
}

# Error responses per (method, path) on top of FastAPI's generated ones
_PHRASE_ERRORS: Dict[tuple[str, str], Dict[str, str]] = {
    ("post", "/phrase"): {
        "400": "Phrase does not match the passphrase format.",
        "409": "Phrase is already registered.",
        "429": "Client request budget exhausted for the current window.",
        "503": "Rendezvous store unavailable.",
    },
    ("get", "/phrase/{phrase}"): {
        "404": "No entry under this phrase (never registered, claimed or expired).",
        "429": "Client request budget exhausted for the current window.",
        "503": "Rendezvous store unavailable.",
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and error responses."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("schemas", {}).setdefault("ErrorResponse", _ERROR_SCHEMA)

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Phrase",
                "description": "Register an address under a passphrase and claim it once.",
            },
            {
                "name": "Health",
                "description": "Liveness and readiness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for (method, path), errors in _PHRASE_ERRORS.items():
            operation = paths.get(path, {}).get(method)
            if not isinstance(operation, dict):
                continue
            responses = operation.setdefault("responses", {})
            for status_code, description in errors.items():
                responses.setdefault(
                    status_code,
                    {
                        "description": description,
                        "content": {
                            "application/json": {
                                "schema": {"$ref": "#/components/schemas/ErrorResponse"}
                            }
                        },
                    },
                )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
