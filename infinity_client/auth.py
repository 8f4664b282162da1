"""Auth Middleware Chain - transport-level authentication for the base client.

AUTH_CHAIN is an ordered list of steps. Each step is consulted against the
configured authentication method and only a matching step installs its
httpx.Auth on the client; the others leave the client untouched. The
matchers are mutually exclusive, so at most one decorator is active per
client.

Basic, bearer, API key, forwarded identity and zCap are not transport
decorators: they are applied per request in headers.py and urls.py.
"""

from __future__ import annotations

import base64
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Generator
from urllib.parse import quote_plus

import httpx
import jwt
import structlog
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from infinity_client.errors import ConfigurationError, InfinityError
from infinity_client.models import AuthMethod, OAuth2Settings, OAuth2Type, Settings

logger = structlog.get_logger(__name__)

JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# OAuth2Settings.auth_style values
AUTH_STYLE_AUTO_DETECT = 0
AUTH_STYLE_IN_PARAMS = 1
AUTH_STYLE_IN_HEADER = 2


class AuthConfigError(ConfigurationError):
    """Raised when the selected authentication method is misconfigured."""


class TokenError(InfinityError):
    """Raised when an OAuth2 token endpoint does not hand out a token."""

    status_code = 401


# =============================================================================
# OAuth2
# =============================================================================


class OAuth2TokenAuth(httpx.Auth, ABC):
    """Base for OAuth2 grants: fetch a token, cache it, send it as a header.

    The token request is yielded from the auth flow, so it travels over the
    same transport (TLS, proxy) as the data request but is not itself
    authenticated by this flow.
    """

    requires_response_body = True

    # Refresh tokens this many seconds before they expire
    EXPIRY_DELTA = 10.0

    def __init__(self, token_url: str, scopes: list[str]) -> None:
        self._token_url = token_url
        self._scopes = scopes
        self._lock = threading.Lock()
        self._token: str | None = None
        self._token_type = "Bearer"
        self._expires_at: float | None = None

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        header = self._cached_header()
        if header is None:
            token_response = yield from self._request_token()
            header = self._store_token(token_response)
        request.headers["Authorization"] = header
        yield request

    @abstractmethod
    def _request_token(self) -> Generator[httpx.Request, httpx.Response, httpx.Response]:
        """Yield the token request(s) of the grant and return the final response."""

    def _cached_header(self) -> str | None:
        with self._lock:
            if self._token is None:
                return None
            if self._expires_at is not None and time.monotonic() >= self._expires_at:
                return None
            return f"{self._token_type} {self._token}"

    def _store_token(self, response: httpx.Response) -> str:
        if response.status_code >= 400:
            raise TokenError(
                f"oauth2: cannot fetch token from {self._token_url}: "
                f"{response.status_code} {response.reason_phrase}"
            )
        try:
            payload: Any = response.json()
        except ValueError as e:
            raise TokenError(f"oauth2: cannot parse token response: {e}") from e
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise TokenError("oauth2: server response missing access_token")

        token_type = str(payload.get("token_type") or "Bearer")
        if token_type.lower() == "bearer":
            token_type = "Bearer"
        expires_at = None
        expires_in = payload.get("expires_in")
        if expires_in:
            expires_at = time.monotonic() + float(expires_in) - self.EXPIRY_DELTA

        with self._lock:
            self._token = str(payload["access_token"])
            self._token_type = token_type
            self._expires_at = expires_at
        logger.debug("oauth2 token acquired", token_url=self._token_url, expires_in=expires_in)
        return f"{token_type} {payload['access_token']}"

    def _scope_params(self) -> dict[str, str]:
        if self._scopes:
            return {"scope": " ".join(self._scopes)}
        return {}


class OAuth2ClientCredentialsAuth(OAuth2TokenAuth):
    """OAuth2 client credentials grant (RFC 6749 section 4.4)."""

    def __init__(self, config: OAuth2Settings) -> None:
        super().__init__(config.token_url, config.scopes)
        self._client_id = config.client_id
        self._client_secret = config.client_secret
        self._auth_style = config.auth_style

    def _request_token(self) -> Generator[httpx.Request, httpx.Response, httpx.Response]:
        in_header = self._auth_style != AUTH_STYLE_IN_PARAMS
        response = yield self._token_request(in_header)
        # Auto detection tries the header first and falls back to params
        if self._auth_style == AUTH_STYLE_AUTO_DETECT and response.status_code in (400, 401):
            response = yield self._token_request(in_header=False)
        return response

    def _token_request(self, in_header: bool) -> httpx.Request:
        data = {"grant_type": "client_credentials", **self._scope_params()}
        headers = {}
        if in_header:
            userinfo = f"{quote_plus(self._client_id)}:{quote_plus(self._client_secret)}"
            encoded = base64.b64encode(userinfo.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
        else:
            data["client_id"] = self._client_id
            data["client_secret"] = self._client_secret
        return httpx.Request("POST", self._token_url, data=data, headers=headers)


class OAuth2JWTAuth(OAuth2TokenAuth):
    """OAuth2 JWT bearer grant (RFC 7523) with an RS256 signed assertion."""

    ASSERTION_LIFETIME = 3600

    def __init__(self, config: OAuth2Settings) -> None:
        super().__init__(config.token_url, config.scopes)
        self._email = config.email
        self._subject = config.subject
        self._private_key_id = config.private_key_id
        try:
            self._private_key = serialization.load_pem_private_key(
                config.private_key.encode("utf-8"), password=None
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise AuthConfigError(f"invalid oauth2 jwt private key: {e}") from e

    def build_assertion(self) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": self._email,
            "aud": self._token_url,
            "iat": now,
            "exp": now + self.ASSERTION_LIFETIME,
            **self._scope_params(),
        }
        if self._subject:
            claims["sub"] = self._subject
        headers = {"kid": self._private_key_id} if self._private_key_id else None
        return jwt.encode(claims, self._private_key, algorithm="RS256", headers=headers)

    def _request_token(self) -> Generator[httpx.Request, httpx.Response, httpx.Response]:
        data = {"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": self.build_assertion()}
        response = yield httpx.Request("POST", self._token_url, data=data)
        return response


# =============================================================================
# AWS
# =============================================================================


class AWSSigV4Auth(httpx.Auth):
    """Sign each request with AWS Signature Version 4 using static keys."""

    requires_request_body = True

    # Hop-by-hop headers a proxy may rewrite; signing them breaks the signature
    UNSIGNED_HEADERS = frozenset({"connection"})

    def __init__(self, access_key: str, secret_key: str, region: str, service: str) -> None:
        self._credentials = Credentials(access_key, secret_key)
        self._region = region
        self._service = service

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() not in self.UNSIGNED_HEADERS
        }
        aws_request = AWSRequest(
            method=request.method,
            url=str(request.url),
            data=request.content,
            headers=headers,
        )
        SigV4Auth(self._credentials, self._service, self._region).add_auth(aws_request)
        for key, value in aws_request.headers.items():
            request.headers[key] = value
        yield request


# =============================================================================
# Chain
# =============================================================================


def _build_digest_auth(settings: Settings) -> httpx.Auth:
    return httpx.DigestAuth(settings.username, settings.password)


def _build_client_credentials_auth(settings: Settings) -> httpx.Auth:
    if not settings.oauth2.token_url:
        raise AuthConfigError("oauth2 client credentials requires a token url")
    return OAuth2ClientCredentialsAuth(settings.oauth2)


def _build_jwt_auth(settings: Settings) -> httpx.Auth:
    if not settings.oauth2.token_url:
        raise AuthConfigError("oauth2 jwt requires a token url")
    return OAuth2JWTAuth(settings.oauth2)


def _build_aws_auth(settings: Settings) -> httpx.Auth:
    aws = settings.aws
    if not aws.access_key or not aws.secret_key:
        raise AuthConfigError("aws authentication requires an access key and a secret key")
    return AWSSigV4Auth(aws.access_key, aws.secret_key, aws.region, aws.service)


def _is_oauth2(settings: Settings, oauth2_type: OAuth2Type) -> bool:
    return settings.auth_method == AuthMethod.OAUTH2 and settings.oauth2.oauth2_type == oauth2_type


@dataclass(frozen=True)
class AuthStep:
    """One decorator of the chain, activated when matches(settings) holds."""

    name: str
    matches: Callable[[Settings], bool]
    build: Callable[[Settings], httpx.Auth]


AUTH_CHAIN: tuple[AuthStep, ...] = (
    AuthStep(
        "digest",
        lambda s: s.auth_method == AuthMethod.DIGEST,
        _build_digest_auth,
    ),
    AuthStep(
        "oauth2_client_credentials",
        lambda s: _is_oauth2(s, OAuth2Type.CLIENT_CREDENTIALS),
        _build_client_credentials_auth,
    ),
    AuthStep(
        "oauth2_jwt",
        lambda s: _is_oauth2(s, OAuth2Type.JWT),
        _build_jwt_auth,
    ),
    AuthStep(
        "aws",
        lambda s: s.auth_method == AuthMethod.AWS,
        _build_aws_auth,
    ),
)


def active_auth_steps(settings: Settings) -> list[str]:
    """Names of the chain steps that match the settings."""
    return [step.name for step in AUTH_CHAIN if step.matches(settings)]


def apply_auth_chain(client: httpx.Client, settings: Settings) -> list[str]:
    """Install the matching decorators on the client.

    Returns:
        Names of the steps that activated (empty when none matched).

    Raises:
        AuthConfigError: If the matching method is misconfigured.
    """
    activated = []
    for step in AUTH_CHAIN:
        if not step.matches(settings):
            continue
        client.auth = step.build(settings)
        activated.append(step.name)
        logger.debug("auth decorator applied", decorator=step.name)
    return activated
