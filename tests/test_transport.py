"""Tests for TLS, proxy and timeout configuration of the base client."""

import ssl

import httpx
import pytest

from infinity_client.errors import ConfigurationError
from infinity_client.transport import (
    TLSConfigError,
    build_client_kwargs,
    build_http_client,
    build_ssl_context,
)
from infinity_client.models import Settings


class TestBuildSSLContext:
    def test_default_verifies(self):
        context = build_ssl_context(Settings())
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname

    def test_skip_verify(self):
        context = build_ssl_context(Settings(tls_skip_verify=True))
        assert context.verify_mode == ssl.CERT_NONE
        assert not context.check_hostname

    def test_client_auth_requires_cert_and_key(self):
        with pytest.raises(TLSConfigError, match="invalid Client cert or key"):
            build_ssl_context(Settings(tls_client_auth=True, tls_client_cert="cert-only"))

    def test_client_auth_with_valid_pair(self, certificate_pem, private_key_pem):
        settings = Settings(tls_client_auth=True, tls_client_cert=certificate_pem, tls_client_key=private_key_pem)
        assert isinstance(build_ssl_context(settings), ssl.SSLContext)

    def test_client_auth_with_garbage(self):
        settings = Settings(tls_client_auth=True, tls_client_cert="not a cert", tls_client_key="not a key")
        with pytest.raises(TLSConfigError):
            build_ssl_context(settings)

    def test_ca_cert_replaces_system_roots(self, certificate_pem):
        context = build_ssl_context(Settings(tls_auth_with_ca_cert=True, tls_ca_cert=certificate_pem))
        ca_certs = context.get_ca_certs()
        assert len(ca_certs) == 1
        assert ca_certs[0]["subject"] == ((("commonName", "localhost"),),)

    def test_invalid_ca_cert(self):
        with pytest.raises(TLSConfigError, match="invalid TLS CA certificate"):
            build_ssl_context(Settings(tls_auth_with_ca_cert=True, tls_ca_cert="garbage"))

    def test_ca_flag_without_cert_uses_system_roots(self):
        context = build_ssl_context(Settings(tls_auth_with_ca_cert=True))
        assert context.verify_mode == ssl.CERT_REQUIRED


class TestBuildClientKwargs:
    def test_defaults(self):
        kwargs = build_client_kwargs(Settings())
        assert kwargs["timeout"] == 60.0
        assert kwargs["trust_env"] is True
        assert kwargs["follow_redirects"] is True
        assert "proxy" not in kwargs

    def test_zero_timeout_disables_timeout(self):
        assert build_client_kwargs(Settings(timeout_in_seconds=0))["timeout"] is None

    def test_proxy_none_ignores_environment(self):
        kwargs = build_client_kwargs(Settings(proxy_type="none"))
        assert kwargs["trust_env"] is False
        assert "proxy" not in kwargs

    def test_proxy_url(self):
        kwargs = build_client_kwargs(Settings(proxy_type="url", proxy_url="http://proxy.local:3128"))
        assert isinstance(kwargs["proxy"], httpx.Proxy)
        assert kwargs["proxy"].url == httpx.URL("http://proxy.local:3128")
        assert kwargs["trust_env"] is False

    @pytest.mark.parametrize("proxy_url", ["", "proxy.local:3128"])
    def test_invalid_proxy_url(self, proxy_url):
        with pytest.raises(ConfigurationError, match="invalid proxy url"):
            build_client_kwargs(Settings(proxy_type="url", proxy_url=proxy_url))


class TestBuildHTTPClient:
    def test_builds_client(self):
        client = build_http_client(Settings(proxy_type="none", timeout_in_seconds=5))
        try:
            assert isinstance(client, httpx.Client)
            assert client.timeout == httpx.Timeout(5.0)
            assert client.auth is None
        finally:
            client.close()

    def test_returns_none_on_bad_tls(self):
        assert build_http_client(Settings(tls_client_auth=True)) is None

    def test_returns_none_on_bad_proxy(self):
        assert build_http_client(Settings(proxy_type="url", proxy_url="")) is None
