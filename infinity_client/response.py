"""Response Decoder - BOM stripping and JSON-or-text decoding."""

from __future__ import annotations

import json
from typing import Any, Mapping

import structlog

from infinity_client.models import QueryType

logger = structlog.get_logger(__name__)

UTF8_BOM = b"\xef\xbb\xbf"

# Always parsed as JSON
JSON_QUERY_TYPES = frozenset({QueryType.JSON, QueryType.GRAPHQL})
# Parsed as JSON only when the response says it is JSON
SNIFFED_QUERY_TYPES = frozenset({QueryType.UQL, QueryType.GROQ})


def decode_text(body: bytes) -> str:
    """Decode UTF-8 without losing bytes.

    Invalid bytes become lone surrogates, so
    ``text.encode("utf-8", "surrogateescape")`` gives back the original body.
    """
    return body.decode("utf-8", errors="surrogateescape")


def remove_bom(body: bytes) -> bytes:
    if body.startswith(UTF8_BOM):
        return body[len(UTF8_BOM):]
    return body


def can_parse_as_json(query_type: QueryType, response_headers: Mapping[str, str]) -> bool:
    """Decide whether a body should be parsed as JSON.

    response_headers must do case-insensitive lookups (httpx.Headers does).
    """
    if query_type in JSON_QUERY_TYPES:
        return True
    if query_type in SNIFFED_QUERY_TYPES:
        content_type = response_headers.get("content-type") or ""
        return "application/json" in content_type.lower()
    return False


def decode_body(
    body: bytes,
    query_type: QueryType,
    response_headers: Mapping[str, str],
) -> tuple[Any, str | None]:
    """Decode a response body.

    Returns:
        Tuple of (data, decode_error). data is the parsed JSON value, or the
        text when JSON is not expected or fails to parse; decode_error is
        set only in the latter case.
    """
    body = remove_bom(body)
    text = decode_text(body)
    if not can_parse_as_json(query_type, response_headers):
        return text, None
    try:
        return json.loads(text), None
    except json.JSONDecodeError as e:
        logger.error("error un-marshaling JSON response", error=str(e))
        return text, str(e)
