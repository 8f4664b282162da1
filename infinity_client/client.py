"""Client - builds, gates, sends and decodes the request of one query.

Flow for a remote query:
    URL Builder + Body Encoder -> Host Allow-List Gate -> httpx client (with
    the auth chain installed) -> Response Decoder

The zCap method never touches the HTTP transport: the request is handed to
the Mercury bridge. Inline sources are decoded without any network call, and
azure-blob sources go through the blob client.

The client holds only immutable settings and a shared httpx client, so one
instance can serve concurrent queries.
"""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog

from infinity_client.auth import apply_auth_chain
from infinity_client.blob import build_blob_client, download_blob
from infinity_client.errors import (
    BlobError,
    ConfigurationError,
    ServerError,
    TransportError,
    UnauthorizedURLError,
)
from infinity_client.introspection import render_executed_url
from infinity_client.mercury import MercuryBridge
from infinity_client.models import (
    AuthMethod,
    MercuryOperation,
    Query,
    QueryResult,
    QuerySource,
    Settings,
)
from infinity_client.request import build_request
from infinity_client.response import decode_body, decode_text
from infinity_client.transport import build_http_client
from infinity_client.urls import can_allow_url, get_query_url

logger = structlog.get_logger(__name__)

ALLOWED_HOSTS_MESSAGE = (
    "requested URL is not allowed. To allow this URL, update the datasource "
    "config Security -> Allowed Hosts section"
)


class InfinityClient:
    """Executes queries for one data source.

    Usage:
        client = InfinityClient.from_settings(settings)
        try:
            result = client.get_results(query)
        finally:
            client.close()

    Or with context manager:
        with InfinityClient.from_settings(settings) as client:
            result = client.get_results(query)
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.Client,
        blob_client: Any = None,
        mercury_executable: str | None = None,
    ) -> None:
        self.settings = settings
        self.http_client = http_client
        self.blob_client = blob_client
        self._mercury_executable = mercury_executable

    @classmethod
    def from_settings(cls, settings: Settings, mercury_executable: str | None = None) -> "InfinityClient":
        """Build the transport, install the auth chain and, for azureBlob, the blob client.

        Raises:
            ConfigurationError: If the transport, an auth decorator or the
                blob client cannot be built.
        """
        http_client = build_http_client(settings)
        if http_client is None:
            raise ConfigurationError("invalid http client")
        try:
            activated = apply_auth_chain(http_client, settings)
            blob_client = None
            if settings.auth_method == AuthMethod.AZURE_BLOB:
                blob_client = build_blob_client(settings)
        except ConfigurationError:
            http_client.close()
            raise
        logger.debug("client created", auth_method=settings.auth_method.value, auth_decorators=activated)
        return cls(settings, http_client, blob_client=blob_client, mercury_executable=mercury_executable)

    def __enter__(self) -> "InfinityClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self.http_client.close()

    def get_executed_url(self, query: Query) -> str:
        """Redacted URL and curl command of a query, for debugging."""
        return render_executed_url(self.settings, query)

    def get_results(self, query: Query, request_headers: dict[str, str] | None = None) -> QueryResult:
        """Run a query and decode its payload.

        Args:
            query: The query to run.
            request_headers: Headers of the inbound call, used by forwarded
                identity authentication.

        Raises:
            InfinityError: Subclass per failure kind; status_code carries the
                HTTP-equivalent status.
            MercuryError: For zCap calls.
        """
        if query.source == QuerySource.INLINE:
            data, decode_error = decode_body(query.data.encode("utf-8"), query.type, {})
            return QueryResult(data=data, status_code=200, decode_error=decode_error)
        if query.source == QuerySource.AZURE_BLOB:
            return self._get_blob_results(query)
        if self.settings.auth_method == AuthMethod.ZCAP:
            return self._get_zcap_results(query)
        return self._send(query, request_headers or {})

    def _get_blob_results(self, query: Query) -> QueryResult:
        if self.blob_client is None:
            raise BlobError("invalid azure blob client")
        body = download_blob(self.blob_client, query.az_blob_container_name, query.az_blob_name)
        data, decode_error = decode_body(body, query.type, {})
        return QueryResult(data=data, status_code=200, decode_error=decode_error)

    def _get_zcap_results(self, query: Query) -> QueryResult:
        """Hand the call to the Mercury bridge.

        The adapter has already applied its own status handling, so a
        completed run is reported as 200 and its data segment is the body.
        """
        operation = self.settings.zcap_operation
        if operation == MercuryOperation.REQUEST:
            target = get_query_url(self.settings, query, include_secrets=True)
            if not can_allow_url(target, self.settings.allowed_hosts):
                logger.error(
                    "url is not in the allowed list",
                    url=get_query_url(self.settings, query, include_secrets=False),
                )
                raise UnauthorizedURLError(ALLOWED_HOSTS_MESSAGE)
        else:
            target = self.settings.zcap_json_path

        start_time = time.perf_counter()
        output = MercuryBridge(executable=self._mercury_executable).run(operation, target)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        logger.info("entered in ZCAP", content=output.content.decode("utf-8", errors="replace"))
        return QueryResult(
            data=decode_text(output.data),
            status_code=200,
            duration_ms=elapsed_ms,
        )

    def _send(self, query: Query, request_headers: dict[str, str]) -> QueryResult:
        request = build_request(self.settings, query, request_headers, include_secrets=True)
        redacted_url = get_query_url(self.settings, query, include_secrets=False)

        if not can_allow_url(request.url, self.settings.allowed_hosts):
            logger.error(
                "url is not in the allowed list. make sure to match the base URL with the settings",
                url=redacted_url,
            )
            raise UnauthorizedURLError(ALLOWED_HOSTS_MESSAGE)

        extensions = {}
        if self.settings.server_name:
            extensions["sni_hostname"] = self.settings.server_name

        logger.debug("requesting URL", url=redacted_url, method=request.method)
        start_time = time.perf_counter()
        try:
            response = self.http_client.request(
                request.method,
                request.url,
                headers=request.headers,
                content=request.content,
                extensions=extensions or None,
            )
        except httpx.HTTPError as e:
            logger.error(
                "error getting response from server. no response received",
                url=redacted_url,
                error=str(e),
            )
            raise TransportError(
                f"error getting response from url {redacted_url}. no response received. Error: {e}"
            ) from e
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        if response.status_code >= 400:
            status_line = f"{response.status_code} {response.reason_phrase}".strip()
            raise ServerError(status_line, status_code=response.status_code)

        data, decode_error = decode_body(response.content, query.type, response.headers)
        return QueryResult(
            data=data,
            status_code=response.status_code,
            duration_ms=elapsed_ms,
            decode_error=decode_error,
        )
