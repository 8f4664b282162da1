"""Command Introspection View - redacted URL and curl command of a query.

The view is always built with include_secrets=False, so no secret value
ever reaches it: auth headers, custom and query header values and templated
URL secrets are replaced by the fixed placeholder before rendering.
"""

from __future__ import annotations

from infinity_client.errors import InfinityError
from infinity_client.models import Query, QuerySource, ResolvedRequest, Settings
from infinity_client.request import build_request

SECTION_RULE = "###############"


def canonical_header_key(name: str) -> str:
    """Canonical MIME form: ``x-id-token`` -> ``X-Id-Token``."""
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


def shell_quote(value: str) -> str:
    """Single-quote *value* for a POSIX shell."""
    return "'" + value.replace("'", "'\\''") + "'"


def to_curl_command(request: ResolvedRequest) -> str:
    """Render a request as a curl invocation.

    Headers are grouped by canonical name (repeated values joined by a
    space) and sorted.
    """
    command = ["curl", "-X", shell_quote(request.method)]
    if request.content is not None:
        command += ["-d", shell_quote(request.content.decode("utf-8", errors="replace"))]

    grouped: dict[str, list[str]] = {}
    for name, value in request.headers:
        grouped.setdefault(canonical_header_key(name), []).append(value)
    for name in sorted(grouped):
        command += ["-H", shell_quote(f"{name}: {' '.join(grouped[name])}")]

    command.append(shell_quote(request.url))
    return " ".join(command)


def _section(title: str, body: str) -> str:
    return f"{SECTION_RULE}\n## {title}\n{SECTION_RULE}\n\n{body}"


def render_executed_url(settings: Settings, query: Query) -> str:
    """Two-section report: the redacted URL and the equivalent curl command.

    Empty for inline and blob sources, which have no URL.
    """
    if query.source in (QuerySource.INLINE, QuerySource.AZURE_BLOB):
        return ""
    try:
        request = build_request(settings, query, include_secrets=False)
    except InfinityError:
        return f"error retrieving full url. {query.url}"
    return "\n".join([
        _section("URL", request.url) + "\n",
        _section("Curl Command", to_curl_command(request)),
    ])
