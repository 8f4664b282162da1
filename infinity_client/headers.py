"""Per-request headers: accept/content type, custom headers and request-time auth.

Headers are kept as ordered (name, value) pairs. _add_header appends like a
multi-valued header; _set_header replaces every existing value of the name
(case insensitive). With include_secrets=False every credential-bearing value
is replaced by REDACTED_PLACEHOLDER, so the result is safe to display.
"""

from __future__ import annotations

import base64

from infinity_client.models import ApiKeyType, AuthMethod, Query, QueryType, Settings
from infinity_client.urls import REDACTED_PLACEHOLDER, replace_secrets

HEADER_ACCEPT = "Accept"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_AUTHORIZATION = "Authorization"
HEADER_ID_TOKEN = "X-ID-Token"
HEADER_ZCAP_KEY = "Key"

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_FORM_URLENCODED = "application/x-www-form-urlencoded"

ACCEPT_BY_QUERY_TYPE = {
    QueryType.JSON: "application/json;q=0.9,text/plain",
    QueryType.GRAPHQL: "application/json;q=0.9,text/plain",
    QueryType.CSV: "text/csv; charset=utf-8",
    QueryType.XML: "text/xml;q=0.9,text/plain",
}

Headers = list[tuple[str, str]]


def _set_header(headers: Headers, name: str, value: str) -> None:
    headers[:] = [(k, v) for k, v in headers if k.lower() != name.lower()]
    headers.append((name, value))


def _add_header(headers: Headers, name: str, value: str) -> None:
    if name.lower() in (HEADER_ACCEPT.lower(), HEADER_CONTENT_TYPE.lower()):
        _set_header(headers, name, value)
    else:
        headers.append((name, value))


def get_header(headers: Headers, name: str) -> str | None:
    """First value of *name*, or None."""
    for key, value in headers:
        if key.lower() == name.lower():
            return value
    return None


def apply_accept_header(headers: Headers, query: Query) -> None:
    accept = ACCEPT_BY_QUERY_TYPE.get(query.type)
    if accept:
        _set_header(headers, HEADER_ACCEPT, accept)


def apply_content_type_header(headers: Headers, content_type: str | None) -> None:
    if content_type:
        _set_header(headers, HEADER_CONTENT_TYPE, content_type)


def apply_custom_headers(headers: Headers, settings: Settings, include_secrets: bool) -> None:
    for name, value in settings.custom_headers.items():
        _add_header(headers, name, value if include_secrets else REDACTED_PLACEHOLDER)


def apply_query_headers(headers: Headers, settings: Settings, query: Query, include_secrets: bool) -> None:
    for header in query.url_options.headers:
        value = REDACTED_PLACEHOLDER
        if include_secrets:
            value = replace_secrets(header.value, settings, include_secrets)
        _add_header(headers, header.key, value)


def apply_basic_auth(headers: Headers, settings: Settings, include_secrets: bool) -> None:
    if settings.auth_method != AuthMethod.BASIC:
        return
    if not settings.username and not settings.password:
        return
    credential = REDACTED_PLACEHOLDER
    if include_secrets:
        userinfo = f"{settings.username}:{settings.password}".encode("utf-8")
        credential = base64.b64encode(userinfo).decode("ascii")
    _set_header(headers, HEADER_AUTHORIZATION, f"Basic {credential}")


def apply_bearer_token(headers: Headers, settings: Settings, include_secrets: bool) -> None:
    if settings.auth_method != AuthMethod.BEARER_TOKEN:
        return
    token = settings.bearer_token if include_secrets else REDACTED_PLACEHOLDER
    _add_header(headers, HEADER_AUTHORIZATION, f"Bearer {token}")


def apply_api_key_header(headers: Headers, settings: Settings, include_secrets: bool) -> None:
    if settings.auth_method != AuthMethod.API_KEY or settings.api_key_type != ApiKeyType.HEADER:
        return
    value = settings.api_key_value if include_secrets else REDACTED_PLACEHOLDER
    if settings.api_key_key and value:
        _add_header(headers, settings.api_key_key, value)


def apply_forwarded_identity(
    headers: Headers,
    settings: Settings,
    request_headers: dict[str, str],
    include_secrets: bool,
) -> None:
    """Forward the caller's Authorization and ID token headers.

    Inbound names match case-insensitively; absent headers are not sent.
    """
    if settings.auth_method != AuthMethod.FORWARD_OAUTH:
        return
    authorization = REDACTED_PLACEHOLDER
    id_token = ""
    if include_secrets:
        inbound = {name.lower(): value for name, value in request_headers.items()}
        authorization = inbound.get(HEADER_AUTHORIZATION.lower(), "")
        id_token = inbound.get(HEADER_ID_TOKEN.lower(), "")
    if authorization:
        _add_header(headers, HEADER_AUTHORIZATION, authorization)
    if id_token:
        _add_header(headers, HEADER_ID_TOKEN, id_token)


def apply_zcap_key(headers: Headers, settings: Settings, include_secrets: bool) -> None:
    """Mark a zCap request with its capability document, for display."""
    if settings.auth_method != AuthMethod.ZCAP:
        return
    value = settings.zcap_json_path if include_secrets else REDACTED_PLACEHOLDER
    if value:
        _add_header(headers, HEADER_ZCAP_KEY, value)


def build_headers(
    settings: Settings,
    query: Query,
    content_type: str | None,
    request_headers: dict[str, str] | None,
    include_secrets: bool,
) -> Headers:
    """All headers of a request, in the order they are applied."""
    headers: Headers = []
    apply_accept_header(headers, query)
    apply_content_type_header(headers, content_type)
    apply_custom_headers(headers, settings, include_secrets)
    apply_query_headers(headers, settings, query, include_secrets)
    apply_basic_auth(headers, settings, include_secrets)
    apply_bearer_token(headers, settings, include_secrets)
    apply_api_key_header(headers, settings, include_secrets)
    apply_forwarded_identity(headers, settings, request_headers or {}, include_secrets)
    apply_zcap_key(headers, settings, include_secrets)
    return headers
