"""Transport Factory - TLS context, proxy policy and timeout for the base client.

The base client carries no authentication; auth.apply_auth_chain() decorates
it afterwards.
"""

from __future__ import annotations

import ssl
import tempfile
from pathlib import Path
from typing import Any

import httpx
import structlog

from infinity_client.errors import ConfigurationError
from infinity_client.models import ProxyType, Settings

logger = structlog.get_logger(__name__)


class TLSConfigError(ConfigurationError):
    """Raised when TLS material in the settings is missing or unparsable."""


def build_ssl_context(settings: Settings) -> ssl.SSLContext:
    """Build the client TLS context.

    A configured CA certificate replaces the system trust store rather than
    extending it.

    Raises:
        TLSConfigError: If client auth is enabled without a usable cert/key
            pair, or if the CA certificate cannot be parsed.
    """
    ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

    if settings.tls_auth_with_ca_cert and settings.tls_ca_cert:
        try:
            ssl_context.load_verify_locations(cadata=settings.tls_ca_cert)
        except (ssl.SSLError, ValueError) as e:
            raise TLSConfigError(f"invalid TLS CA certificate: {e}") from e
    else:
        ssl_context.load_default_certs()

    if settings.tls_skip_verify:
        # check_hostname must be cleared before verify_mode can be relaxed
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE

    if settings.tls_client_auth:
        if not settings.tls_client_cert or not settings.tls_client_key:
            raise TLSConfigError("invalid Client cert or key")
        _load_client_certificate(ssl_context, settings.tls_client_cert, settings.tls_client_key)

    return ssl_context


def _load_client_certificate(ssl_context: ssl.SSLContext, cert_pem: str, key_pem: str) -> None:
    """Load a PEM cert/key pair held in memory.

    The ssl module only reads key material from files, so the pair is
    written to a private temporary directory that is removed on return.
    """
    with tempfile.TemporaryDirectory(prefix="infinity-tls-") as tmp_dir:
        cert_path = Path(tmp_dir) / "client.crt"
        key_path = Path(tmp_dir) / "client.key"
        cert_path.write_text(cert_pem, encoding="utf-8")
        key_path.write_text(key_pem, encoding="utf-8")
        key_path.chmod(0o600)
        try:
            ssl_context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        except ssl.SSLError as e:
            raise TLSConfigError(f"invalid Client cert or key: {e}") from e


def build_client_kwargs(settings: Settings) -> dict[str, Any]:
    """Build kwargs for httpx.Client: TLS, proxy selection and timeout.

    Raises:
        TLSConfigError: On bad TLS material.
        ConfigurationError: On an unparsable explicit proxy URL.
    """
    timeout = float(settings.timeout_in_seconds) if settings.timeout_in_seconds > 0 else None
    kwargs: dict[str, Any] = {
        "verify": build_ssl_context(settings),
        "timeout": timeout,
        "trust_env": False,
        "follow_redirects": True,
    }

    if settings.proxy_type == ProxyType.NONE:
        logger.debug("proxy type is set to none. Not using the proxy")
    elif settings.proxy_type == ProxyType.URL:
        logger.debug("proxy type is set to url. Using the proxy", proxy_url=settings.proxy_url)
        try:
            kwargs["proxy"] = httpx.Proxy(settings.proxy_url)
        except (httpx.InvalidURL, ValueError) as e:
            raise ConfigurationError(f"invalid proxy url: {e}") from e
    else:
        # Proxy comes from HTTP_PROXY/HTTPS_PROXY/ALL_PROXY/NO_PROXY
        kwargs["trust_env"] = True

    return kwargs


def build_http_client(settings: Settings) -> httpx.Client | None:
    """Build the unauthenticated base client.

    Returns:
        The client, or None when the transport cannot be constructed. Callers
        must treat None as a fatal client creation error.
    """
    try:
        kwargs = build_client_kwargs(settings)
    except ConfigurationError as e:
        logger.error("error building http transport", error=str(e))
        return None
    return httpx.Client(**kwargs)
