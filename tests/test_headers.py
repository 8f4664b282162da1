"""Tests for per-request header assembly."""

import base64

from infinity_client.headers import build_headers, get_header
from infinity_client.models import KeyValuePair, Query, QueryType, Settings, URLOptions


def headers_for(settings: Settings, query: Query | None = None, request_headers=None, include_secrets=True):
    query = query or Query(url="https://foo.com", type=QueryType.HTML)
    return build_headers(settings, query, None, request_headers, include_secrets)


class TestAcceptAndContentType:
    def test_accept_per_query_type(self):
        assert get_header(headers_for(Settings(), Query(type="json")), "Accept") == "application/json;q=0.9,text/plain"
        assert get_header(headers_for(Settings(), Query(type="graphql")), "Accept") == "application/json;q=0.9,text/plain"
        assert get_header(headers_for(Settings(), Query(type="csv")), "Accept") == "text/csv; charset=utf-8"
        assert get_header(headers_for(Settings(), Query(type="xml")), "Accept") == "text/xml;q=0.9,text/plain"

    def test_no_accept_for_other_types(self):
        assert get_header(headers_for(Settings(), Query(type="html")), "Accept") is None

    def test_content_type_from_body(self):
        headers = build_headers(Settings(), Query(type="html"), "text/plain", None, True)
        assert headers == [("Content-Type", "text/plain")]

    def test_custom_accept_replaces_default(self):
        settings = Settings(custom_headers={"accept": "application/xml"})
        headers = headers_for(settings, Query(type="json"))
        assert headers == [("accept", "application/xml")]


class TestCustomAndQueryHeaders:
    def test_custom_headers_sent_as_configured(self):
        headers = headers_for(Settings(custom_headers={"X-Tenant": "acme"}))
        assert get_header(headers, "x-tenant") == "acme"

    def test_custom_headers_redacted(self):
        headers = headers_for(Settings(custom_headers={"X-Tenant": "acme"}), include_secrets=False)
        assert get_header(headers, "X-Tenant") == "xxxxxxxx"

    def test_query_headers_are_templated(self):
        settings = Settings(secure_query_fields={"token": "abc123"})
        query = Query(
            type="html",
            url_options=URLOptions(headers=[KeyValuePair(key="X-Token", value="Token ${__qs.token}")]),
        )
        assert get_header(headers_for(settings, query), "X-Token") == "Token abc123"
        assert get_header(headers_for(settings, query, include_secrets=False), "X-Token") == "xxxxxxxx"

    def test_repeated_headers_are_kept(self):
        query = Query(
            type="html",
            url_options=URLOptions(headers=[KeyValuePair(key="X-A", value="1"), KeyValuePair(key="X-A", value="2")]),
        )
        assert headers_for(Settings(), query) == [("X-A", "1"), ("X-A", "2")]


class TestAuthHeaders:
    def test_basic_auth(self):
        headers = headers_for(Settings(auth_method="basicAuth", username="hello", password="world"))
        expected = base64.b64encode(b"hello:world").decode()
        assert get_header(headers, "Authorization") == f"Basic {expected}"

    def test_basic_auth_redacted(self):
        headers = headers_for(Settings(basic_auth_enabled=True, username="hello", password="world"), include_secrets=False)
        assert headers == [("Authorization", "Basic xxxxxxxx")]

    def test_basic_auth_without_credentials_adds_nothing(self):
        assert headers_for(Settings(auth_method="basicAuth")) == []

    def test_basic_auth_overrides_custom_authorization(self):
        settings = Settings(
            auth_method="basicAuth", username="u", password="p", custom_headers={"Authorization": "Token x"}
        )
        assert [name for name, _ in headers_for(settings)] == ["Authorization"]

    def test_bearer_token(self):
        headers = headers_for(Settings(auth_method="bearerToken", bearer_token="t0k"))
        assert headers == [("Authorization", "Bearer t0k")]

    def test_api_key_header(self):
        settings = Settings(auth_method="apiKey", api_key_key="X-API-Key", api_key_value="k3y")
        assert headers_for(settings) == [("X-API-Key", "k3y")]
        assert headers_for(settings, include_secrets=False) == [("X-API-Key", "xxxxxxxx")]

    def test_api_key_in_query_adds_no_header(self):
        settings = Settings(auth_method="apiKey", api_key_key="key", api_key_value="k3y", api_key_type="query")
        assert headers_for(settings) == []

    def test_forwarded_identity(self):
        settings = Settings(forward_oauth_identity=True)
        inbound = {"Authorization": "Bearer user-token", "X-ID-Token": "id-token"}
        headers = headers_for(settings, request_headers=inbound)
        assert headers == [("Authorization", "Bearer user-token"), ("X-ID-Token", "id-token")]

    def test_forwarded_identity_ignores_header_case(self):
        inbound = {"authorization": "Bearer user-token", "x-id-token": "id-token"}
        headers = headers_for(Settings(auth_method="oauthPassThru"), request_headers=inbound)
        assert headers == [("Authorization", "Bearer user-token"), ("X-ID-Token", "id-token")]

    def test_forwarded_identity_without_inbound_authorization(self):
        headers = headers_for(Settings(auth_method="oauthPassThru"), request_headers={})
        assert get_header(headers, "Authorization") is None

    def test_forwarded_identity_redacted_hides_id_token(self):
        settings = Settings(auth_method="oauthPassThru")
        inbound = {"Authorization": "Bearer user-token", "X-ID-Token": "id-token"}
        headers = headers_for(settings, request_headers=inbound, include_secrets=False)
        assert headers == [("Authorization", "xxxxxxxx")]

    def test_zcap_key(self):
        settings = Settings(auth_method="zcap", zcap_json_path="https://edv.example/doc")
        assert headers_for(settings) == [("Key", "https://edv.example/doc")]
        assert headers_for(settings, include_secrets=False) == [("Key", "xxxxxxxx")]

    def test_auth_method_none_adds_nothing(self):
        settings = Settings(username="u", password="p", bearer_token="t", api_key_key="k", api_key_value="v")
        assert headers_for(settings) == []
