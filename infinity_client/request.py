"""Resolved request assembly: URL, headers and body of a remote query."""

from __future__ import annotations

from infinity_client.body import encode_query_body
from infinity_client.headers import build_headers
from infinity_client.models import Query, ResolvedRequest, Settings
from infinity_client.urls import get_query_url


def build_request(
    settings: Settings,
    query: Query,
    request_headers: dict[str, str] | None = None,
    include_secrets: bool = True,
) -> ResolvedRequest:
    """Build the request of a remote query.

    With include_secrets=False the request is for display only: every
    secret in the URL and headers is redacted.
    """
    body = encode_query_body(query)
    return ResolvedRequest(
        method=query.url_options.method.upper() or "GET",
        url=get_query_url(settings, query, include_secrets),
        headers=build_headers(settings, query, body.content_type, request_headers, include_secrets),
        content=body.content,
    )
